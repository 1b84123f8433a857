"""In-memory state owned by the realtime core."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from typing import Any


@dataclass(frozen=True)
class UserIdentity:
    """Verified user attached to a connection for its whole lifetime."""

    id: str
    username: str
    name: str = ""
    avatar: str = ""

    @classmethod
    def from_user(cls, user: Any) -> UserIdentity:
        return cls(
            id=str(user.pk),
            username=user.username,
            name=getattr(user, "display_name", "") or user.username,
            avatar=getattr(user, "avatar", "") or "",
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "username": self.username,
            "name": self.name,
            "avatar": self.avatar,
        }


@dataclass(eq=False)
class Connection:
    sid: str
    user: UserIdentity
    rooms: set[str] = field(default_factory=set)
    # Set synchronously when disconnect starts; no delivery after that point.
    closing: bool = False
