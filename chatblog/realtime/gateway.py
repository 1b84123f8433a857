"""Async access to durable chat state.

The realtime core never imports the ORM directly; it talks to a
``PersistenceGateway``. ``DjangoPersistenceGateway`` is the production
implementation and runs each call in Django's sync thread.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from typing import Protocol

from channels.db import database_sync_to_async

from chatblog.chat import services

from .models import UserIdentity


class PersistenceGateway(Protocol):
    async def find_user(self, user_id: str) -> UserIdentity | None: ...

    async def create_message(
        self,
        *,
        sender_id: str,
        content: str,
        message_type: str,
        receiver_id: str | None = None,
        chat_room_id: str | None = None,
    ) -> dict[str, Any]: ...

    async def update_user_status(
        self,
        user_id: str,
        *,
        online: bool,
        last_seen: datetime,
    ) -> None: ...

    async def check_room_membership(self, user_id: str, chat_room_id: str) -> bool: ...

    async def mark_messages_read(
        self,
        reader_id: str,
        *,
        chat_room_id: str | None = None,
        sender_id: str | None = None,
    ) -> int: ...


@database_sync_to_async
def _find_user(user_id: str) -> UserIdentity | None:
    user = services.get_active_user(user_id)
    if user is None:
        return None
    return UserIdentity.from_user(user)


class DjangoPersistenceGateway:
    async def find_user(self, user_id: str) -> UserIdentity | None:
        return await _find_user(user_id)

    async def create_message(
        self,
        *,
        sender_id: str,
        content: str,
        message_type: str,
        receiver_id: str | None = None,
        chat_room_id: str | None = None,
    ) -> dict[str, Any]:
        return await database_sync_to_async(services.create_message)(
            sender_id=sender_id,
            content=content,
            message_type=message_type,
            receiver_id=receiver_id,
            chat_room_id=chat_room_id,
        )

    async def update_user_status(
        self,
        user_id: str,
        *,
        online: bool,
        last_seen: datetime,
    ) -> None:
        await database_sync_to_async(services.update_user_status)(
            user_id,
            online=online,
            last_seen=last_seen,
        )

    async def check_room_membership(self, user_id: str, chat_room_id: str) -> bool:
        return await database_sync_to_async(services.check_room_membership)(
            user_id,
            chat_room_id,
        )

    async def mark_messages_read(
        self,
        reader_id: str,
        *,
        chat_room_id: str | None = None,
        sender_id: str | None = None,
    ) -> int:
        return await database_sync_to_async(services.mark_messages_as_read)(
            reader_id,
            chat_room_id=chat_room_id,
            sender_id=sender_id,
        )
