from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import TYPE_CHECKING

from django.utils import timezone

if TYPE_CHECKING:
    from .gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Online status as a function of each user's live connection count.

    Only the 0 -> 1 and 1 -> 0 transitions are written to the database, so a
    user with several tabs open stays online until the last one closes.
    """

    def __init__(self, gateway: PersistenceGateway) -> None:
        self.gateway = gateway
        self._lock = asyncio.Lock()
        self._counts: Counter[str] = Counter()

    def is_online(self, user_id: str) -> bool:
        return self._counts[user_id] > 0

    def connection_count(self, user_id: str) -> int:
        return self._counts[user_id]

    async def connected(self, user_id: str) -> bool:
        """Count a new connection. Returns True if the user just came online."""

        async with self._lock:
            self._counts[user_id] += 1
            came_online = self._counts[user_id] == 1
        if came_online:
            await self._persist(user_id, online=True)
        return came_online

    async def disconnected(self, user_id: str) -> bool:
        """Count a dropped connection. Returns True if the user just went offline."""

        async with self._lock:
            if self._counts[user_id] <= 0:
                del self._counts[user_id]
                return False
            self._counts[user_id] -= 1
            went_offline = self._counts[user_id] == 0
            if went_offline:
                del self._counts[user_id]
        if went_offline:
            await self._persist(user_id, online=False)
        return went_offline

    async def _persist(self, user_id: str, *, online: bool) -> None:
        try:
            await self.gateway.update_user_status(
                user_id,
                online=online,
                last_seen=timezone.now(),
            )
        except Exception:  # noqa: BLE001 - presence writes must not break the connection
            logger.exception("Failed to update user online status for %s", user_id)
