"""In-memory collaborators for exercising the realtime core without sockets."""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from typing import Any

from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from chatblog.realtime.models import UserIdentity


def make_token(user_id: Any, *, lifetime: timedelta | None = None) -> str:
    token = AccessToken()
    token[api_settings.USER_ID_CLAIM] = str(user_id)
    if lifetime is not None:
        token.set_exp(lifetime=lifetime)
    return str(token)


class FakeGateway:
    def __init__(self) -> None:
        self.users: dict[str, UserIdentity] = {}
        self.memberships: set[tuple[str, str]] = set()
        self.messages: list[dict[str, Any]] = []
        self.status_updates: list[tuple[str, bool]] = []
        self.read_calls: list[dict[str, Any]] = []
        self.unread = 0
        self.fail_create = False
        self.fail_status = False
        self.fail_find = False

    def add_user(self, user_id: str, username: str | None = None) -> UserIdentity:
        username = username or f"user{user_id}"
        identity = UserIdentity(id=user_id, username=username, name=username.title())
        self.users[user_id] = identity
        return identity

    def add_member(self, user_id: str, chat_room_id: str) -> None:
        self.memberships.add((user_id, chat_room_id))

    def room_messages(self, chat_room_id: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m["chatRoomId"] == chat_room_id]

    async def find_user(self, user_id: str) -> UserIdentity | None:
        if self.fail_find:
            msg = "database is unavailable"
            raise RuntimeError(msg)
        return self.users.get(user_id)

    async def create_message(
        self,
        *,
        sender_id: str,
        content: str,
        message_type: str,
        receiver_id: str | None = None,
        chat_room_id: str | None = None,
    ) -> dict[str, Any]:
        if self.fail_create:
            msg = "database is unavailable"
            raise RuntimeError(msg)
        message = {
            "id": str(len(self.messages) + 1),
            "content": content,
            "type": message_type,
            "senderId": sender_id,
            "receiverId": receiver_id,
            "chatRoomId": chat_room_id,
            "isRead": False,
        }
        self.messages.append(message)
        return dict(message)

    async def update_user_status(self, user_id: str, *, online: bool, last_seen) -> None:
        if self.fail_status:
            msg = "database is unavailable"
            raise RuntimeError(msg)
        self.status_updates.append((user_id, online))

    async def check_room_membership(self, user_id: str, chat_room_id: str) -> bool:
        return (user_id, chat_room_id) in self.memberships

    async def mark_messages_read(
        self,
        reader_id: str,
        *,
        chat_room_id: str | None = None,
        sender_id: str | None = None,
    ) -> int:
        self.read_calls.append(
            {"reader_id": reader_id, "chat_room_id": chat_room_id, "sender_id": sender_id},
        )
        return self.unread


class RecordingEmitter:
    """Stands in for ``sio.emit(event, payload, to=sid)``."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, dict[str, Any]]] = []
        self.by_sid: dict[str, list[tuple[str, dict[str, Any]]]] = defaultdict(list)

    async def __call__(self, event: str, payload: dict[str, Any], sid: str) -> None:
        self.sent.append((sid, event, payload))
        self.by_sid[sid].append((event, payload))

    def events(self, sid: str, event: str | None = None) -> list[dict[str, Any]]:
        return [p for name, p in self.by_sid.get(sid, []) if event is None or name == event]

    def clear(self) -> None:
        self.sent.clear()
        self.by_sid.clear()
