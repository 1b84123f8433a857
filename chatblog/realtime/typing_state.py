"""Ephemeral "user is typing" state.

Each (scope, user) pair is Idle or Typing. Entering Typing broadcasts
``user_typing{isTyping: true}`` and arms an expiry task; repeats only re-arm
it. ``stop``, the expiry, or the owning connection going away broadcast
``isTyping: false``. Nothing here is persisted.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING
from typing import Any

from .events import USER_TYPING

if TYPE_CHECKING:
    from .events import TypingScope
    from .models import UserIdentity
    from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

TypingKey = tuple[tuple[str, str], str]


@dataclass
class _TypingEntry:
    sid: str
    user: UserIdentity
    scope: TypingScope
    expiry: asyncio.Task | None = None


class TypingCoordinator:
    def __init__(self, registry: ConnectionRegistry, timeout: float) -> None:
        self.registry = registry
        self.timeout = timeout
        self._entries: dict[TypingKey, _TypingEntry] = {}

    def is_typing(self, user_id: str, scope: TypingScope) -> bool:
        return (scope.key, user_id) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    async def start(self, sid: str, user: UserIdentity, scope: TypingScope) -> None:
        key = (scope.key, user.id)
        entry = self._entries.get(key)
        if entry is not None:
            entry.sid = sid
            self._arm(key, entry)
            return

        entry = _TypingEntry(sid=sid, user=user, scope=scope)
        self._entries[key] = entry
        self._arm(key, entry)
        await self._announce(sid, user, scope, is_typing=True)

    async def stop(self, sid: str, user: UserIdentity, scope: TypingScope) -> None:
        entry = self._entries.pop((scope.key, user.id), None)
        if entry is not None:
            self._disarm(entry)
        await self._announce(sid, user, scope, is_typing=False)

    async def clear_connection(self, sid: str) -> int:
        """Stop every indicator owned by ``sid``. Returns how many were cleared."""

        owned = [key for key, entry in self._entries.items() if entry.sid == sid]
        for key in owned:
            entry = self._entries.pop(key)
            self._disarm(entry)
            await self._announce(sid, entry.user, entry.scope, is_typing=False)
        return len(owned)

    async def shutdown(self) -> None:
        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            if entry.expiry is not None:
                entry.expiry.cancel()
        for entry in entries:
            if entry.expiry is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await entry.expiry

    def _arm(self, key: TypingKey, entry: _TypingEntry) -> None:
        self._disarm(entry)
        entry.expiry = asyncio.create_task(
            self._expire(key, entry),
            name=f"typing-expiry:{key[0][0]}:{key[0][1]}:{key[1]}",
        )

    @staticmethod
    def _disarm(entry: _TypingEntry) -> None:
        task = entry.expiry
        entry.expiry = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _expire(self, key: TypingKey, entry: _TypingEntry) -> None:
        await asyncio.sleep(self.timeout)
        if self._entries.get(key) is not entry:
            return
        del self._entries[key]
        entry.expiry = None
        logger.debug("Typing indicator expired for user %s", entry.user.id)
        await self._announce(entry.sid, entry.user, entry.scope, is_typing=False)

    async def _announce(
        self,
        sid: str,
        user: UserIdentity,
        scope: TypingScope,
        *,
        is_typing: bool,
    ) -> None:
        payload: dict[str, Any] = {
            "user": user.to_dict(),
            "isTyping": is_typing,
            **scope.to_payload(),
        }
        if scope.chat_room_id is not None:
            await self.registry.broadcast(scope.chat_room_id, USER_TYPING, payload, exclude=sid)
        else:
            await self.registry.send_to_user(
                scope.receiver_id or "",
                USER_TYPING,
                payload,
                exclude=sid,
            )
