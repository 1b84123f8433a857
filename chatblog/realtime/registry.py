"""Live connections and their room subscriptions.

``ConnectionRegistry`` is the only owner of the sid -> connection table, the
room -> sids index and the user -> sids index. Every mutation and every
fan-out runs under one ``asyncio.Lock``, so a broadcast either completes before
a disconnect removes the connection or never sees it.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable
from collections.abc import Callable
from typing import Any

from .models import Connection
from .models import UserIdentity

logger = logging.getLogger(__name__)

Emitter = Callable[[str, dict[str, Any], str], Awaitable[None]]


class ConnectionRegistry:
    def __init__(self, emit: Emitter) -> None:
        self._emit = emit
        self._lock = asyncio.Lock()
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = defaultdict(set)
        self._users: dict[str, set[str]] = defaultdict(set)

    # Connections -----------------------------------------------------------

    async def add(self, sid: str, user: UserIdentity) -> Connection:
        async with self._lock:
            if sid in self._connections:
                msg = f"Connection {sid} is already registered"
                raise ValueError(msg)
            connection = Connection(sid=sid, user=user)
            self._connections[sid] = connection
            self._users[user.id].add(sid)
            return connection

    def get(self, sid: str) -> Connection | None:
        connection = self._connections.get(sid)
        if connection is None or connection.closing:
            return None
        return connection

    def connections_for_user(self, user_id: str) -> list[str]:
        return sorted(self._users.get(user_id, ()))

    def members(self, room_id: str) -> set[str]:
        return set(self._rooms.get(room_id, ()))

    def is_member(self, sid: str, room_id: str) -> bool:
        connection = self.get(sid)
        return connection is not None and room_id in connection.rooms

    async def disconnect(self, sid: str) -> Connection | None:
        """Drop ``sid`` from every room and index.

        The connection is flagged before waiting for the lock so that no
        broadcast queued behind this call can deliver to it.
        """

        connection = self._connections.get(sid)
        if connection is None:
            return None
        connection.closing = True
        async with self._lock:
            for room_id in connection.rooms:
                self._discard(self._rooms, room_id, sid)
            connection.rooms.clear()
            self._discard(self._users, connection.user.id, sid)
            self._connections.pop(sid, None)
        logger.debug("Connection %s removed from registry", sid)
        return connection

    # Rooms -----------------------------------------------------------------

    async def join(self, sid: str, room_id: str) -> bool:
        """Subscribe ``sid`` to ``room_id``. Returns False if it already was."""

        async with self._lock:
            connection = self._live(sid)
            if room_id in connection.rooms:
                return False
            connection.rooms.add(room_id)
            self._rooms[room_id].add(sid)
            return True

    async def leave(self, sid: str, room_id: str) -> bool:
        async with self._lock:
            connection = self._connections.get(sid)
            if connection is None or room_id not in connection.rooms:
                return False
            connection.rooms.discard(room_id)
            self._discard(self._rooms, room_id, sid)
            return True

    # Delivery --------------------------------------------------------------

    async def broadcast(
        self,
        room_id: str,
        event: str,
        payload: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        """Emit to every live member of ``room_id`` except ``exclude``."""

        async with self._lock:
            recipients = [sid for sid in self._rooms.get(room_id, ()) if sid != exclude]
            return await self._deliver(recipients, event, payload)

    async def send_to_user(
        self,
        user_id: str,
        event: str,
        payload: dict[str, Any],
        exclude: str | None = None,
    ) -> int:
        async with self._lock:
            recipients = [sid for sid in self._users.get(user_id, ()) if sid != exclude]
            return await self._deliver(recipients, event, payload)

    async def send_to_connection(self, sid: str, event: str, payload: dict[str, Any]) -> int:
        async with self._lock:
            return await self._deliver([sid], event, payload)

    async def _deliver(self, sids: list[str], event: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for sid in sids:
            connection = self._connections.get(sid)
            if connection is None or connection.closing:
                continue
            try:
                await self._emit(event, payload, sid)
            except Exception:  # noqa: BLE001 - delivery to other recipients continues
                logger.exception("Failed to deliver %s to %s", event, sid)
                continue
            delivered += 1
        return delivered

    # Helpers ---------------------------------------------------------------

    def _live(self, sid: str) -> Connection:
        connection = self._connections.get(sid)
        if connection is None or connection.closing:
            msg = f"Connection {sid} is not registered"
            raise LookupError(msg)
        return connection

    @staticmethod
    def _discard(index: dict[str, set[str]], key: str, sid: str) -> None:
        sids = index.get(key)
        if sids is None:
            return
        sids.discard(sid)
        if not sids:
            del index[key]
