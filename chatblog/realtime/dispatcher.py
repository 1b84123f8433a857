"""Send-message and read-receipt flows.

A message is validated, authorized, written once through the gateway and only
then fanned out. If the write fails the sender gets an error and nobody else
hears about the message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from typing import Any

from .events import MESSAGE_SENT
from .events import MESSAGES_READ
from .events import NEW_MESSAGE
from .exceptions import InvalidMessageData
from .exceptions import NotRoomMember
from .exceptions import PersistenceFailed
from .exceptions import ReceiverNotFound
from .exceptions import RealtimeError

if TYPE_CHECKING:
    from .events import MarkMessagesRead
    from .events import SendMessage
    from .gateway import PersistenceGateway
    from .models import Connection
    from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

MESSAGE_TYPES = frozenset({"TEXT", "IMAGE", "FILE", "SYSTEM"})


class MessageDispatcher:
    def __init__(
        self,
        registry: ConnectionRegistry,
        gateway: PersistenceGateway,
        *,
        max_length: int,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.max_length = max_length

    def validate(self, data: SendMessage) -> str:
        """Return the normalized message type or raise ``InvalidMessageData``."""

        content = data.content
        if not isinstance(content, str) or not content.strip():
            raise InvalidMessageData
        if len(content) > self.max_length:
            raise InvalidMessageData
        if (data.receiver_id is None) == (data.chat_room_id is None):
            raise InvalidMessageData
        message_type = str(data.type).upper() if isinstance(data.type, str) else ""
        if message_type not in MESSAGE_TYPES:
            raise InvalidMessageData
        return message_type

    async def send(self, connection: Connection, data: SendMessage) -> dict[str, Any]:
        message_type = self.validate(data)
        sender = connection.user

        if data.chat_room_id is not None:
            room_id = data.chat_room_id
            if not self.registry.is_member(connection.sid, room_id):
                raise NotRoomMember
            if not await self.gateway.check_room_membership(sender.id, room_id):
                raise NotRoomMember
        else:
            receiver = await self.gateway.find_user(data.receiver_id or "")
            if receiver is None:
                raise ReceiverNotFound

        try:
            message = await self.gateway.create_message(
                sender_id=sender.id,
                content=data.content,
                message_type=message_type,
                receiver_id=data.receiver_id,
                chat_room_id=data.chat_room_id,
            )
        except Exception as exc:
            logger.exception("Failed to persist message from user %s", sender.id)
            raise PersistenceFailed from exc

        if data.chat_room_id is not None:
            delivered = await self.registry.broadcast(
                data.chat_room_id,
                NEW_MESSAGE,
                {"message": message, "chatRoomId": data.chat_room_id},
            )
            logger.debug(
                "Message %s fanned out to %s connection(s) in room %s",
                message.get("id"),
                delivered,
                data.chat_room_id,
            )
        else:
            await self.registry.send_to_user(
                data.receiver_id or "",
                NEW_MESSAGE,
                {"message": message, "receiverId": data.receiver_id},
            )
            await self.registry.send_to_connection(
                connection.sid,
                MESSAGE_SENT,
                {"message": message},
            )
        return message

    async def mark_read(self, connection: Connection, data: MarkMessagesRead) -> int:
        reader = connection.user
        if data.chat_room_id is not None and not await self.gateway.check_room_membership(
            reader.id,
            data.chat_room_id,
        ):
            raise NotRoomMember

        try:
            count = await self.gateway.mark_messages_read(
                reader.id,
                chat_room_id=data.chat_room_id,
                sender_id=data.sender_id,
            )
        except Exception as exc:
            logger.exception("Failed to mark messages read for user %s", reader.id)
            raise RealtimeError(data.error_message) from exc

        if data.sender_id is not None:
            await self.registry.send_to_user(
                data.sender_id,
                MESSAGES_READ,
                {
                    "reader": reader.to_dict(),
                    "count": count,
                    "chatRoomId": data.chat_room_id,
                },
            )
        return count
