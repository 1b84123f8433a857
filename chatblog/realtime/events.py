"""Typed inbound socket events.

Raw Socket.IO payloads are parsed once at the transport boundary into one of
the dataclasses below; handlers only ever see these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import ClassVar
from typing import Union

from .exceptions import InvalidMessageData
from .exceptions import RealtimeError

# Outbound event names.
JOINED_CHAT_ROOM = "joined_chat_room"
LEFT_CHAT_ROOM = "left_chat_room"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
NEW_MESSAGE = "new_message"
MESSAGE_SENT = "message_sent"
USER_TYPING = "user_typing"
MESSAGES_READ = "messages_read"
ERROR = "error"


def opaque_id(value: Any) -> str | None:
    """Normalize a client-supplied identifier to a non-empty string or None."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        text = str(value).strip()
        return text or None
    msg = "Identifiers must be strings or integers"
    raise InvalidMessageData(msg)


def _as_dict(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidMessageData
    return data


def _require_room(data: Any) -> str:
    room_id = opaque_id(_as_dict(data).get("chatRoomId"))
    if room_id is None:
        msg = "chatRoomId is required"
        raise RealtimeError(msg)
    return room_id


@dataclass(frozen=True)
class TypingScope:
    """Either a room or a single receiver."""

    chat_room_id: str | None = None
    receiver_id: str | None = None

    @property
    def key(self) -> tuple[str, str]:
        if self.chat_room_id is not None:
            return ("room", self.chat_room_id)
        return ("user", self.receiver_id or "")

    def to_payload(self) -> dict[str, str]:
        if self.chat_room_id is not None:
            return {"chatRoomId": self.chat_room_id}
        return {"receiverId": self.receiver_id or ""}

    @classmethod
    def from_payload(cls, data: Any) -> TypingScope:
        data = _as_dict(data)
        chat_room_id = opaque_id(data.get("chatRoomId"))
        receiver_id = opaque_id(data.get("receiverId"))
        if chat_room_id is not None:
            # Room wins when a client sends both, as the original clients did.
            return cls(chat_room_id=chat_room_id)
        if receiver_id is not None:
            return cls(receiver_id=receiver_id)
        msg = "chatRoomId or receiverId is required"
        raise RealtimeError(msg)


@dataclass(frozen=True)
class JoinChatRoom:
    name: ClassVar[str] = "join_chat_room"
    error_message: ClassVar[str] = "Failed to join chat room"

    chat_room_id: str

    @classmethod
    def from_payload(cls, data: Any) -> JoinChatRoom:
        return cls(chat_room_id=_require_room(data))


@dataclass(frozen=True)
class LeaveChatRoom:
    name: ClassVar[str] = "leave_chat_room"
    error_message: ClassVar[str] = "Failed to leave chat room"

    chat_room_id: str

    @classmethod
    def from_payload(cls, data: Any) -> LeaveChatRoom:
        return cls(chat_room_id=_require_room(data))


@dataclass(frozen=True)
class SendMessage:
    name: ClassVar[str] = "send_message"
    error_message: ClassVar[str] = "Failed to send message"

    content: Any
    type: Any = "TEXT"
    receiver_id: str | None = None
    chat_room_id: str | None = None

    @classmethod
    def from_payload(cls, data: Any) -> SendMessage:
        data = _as_dict(data)
        return cls(
            content=data.get("content"),
            type=data.get("type") or "TEXT",
            receiver_id=opaque_id(data.get("receiverId")),
            chat_room_id=opaque_id(data.get("chatRoomId")),
        )


@dataclass(frozen=True)
class TypingStart:
    name: ClassVar[str] = "typing_start"
    error_message: ClassVar[str] = "Failed to update typing status"

    scope: TypingScope

    @classmethod
    def from_payload(cls, data: Any) -> TypingStart:
        return cls(scope=TypingScope.from_payload(data))


@dataclass(frozen=True)
class TypingStop:
    name: ClassVar[str] = "typing_stop"
    error_message: ClassVar[str] = "Failed to update typing status"

    scope: TypingScope

    @classmethod
    def from_payload(cls, data: Any) -> TypingStop:
        return cls(scope=TypingScope.from_payload(data))


@dataclass(frozen=True)
class MarkMessagesRead:
    name: ClassVar[str] = "mark_messages_read"
    error_message: ClassVar[str] = "Failed to mark messages as read"

    chat_room_id: str | None = None
    sender_id: str | None = None

    @classmethod
    def from_payload(cls, data: Any) -> MarkMessagesRead:
        data = _as_dict(data)
        return cls(
            chat_room_id=opaque_id(data.get("chatRoomId")),
            sender_id=opaque_id(data.get("senderId")),
        )


InboundEvent = Union[
    JoinChatRoom,
    LeaveChatRoom,
    SendMessage,
    TypingStart,
    TypingStop,
    MarkMessagesRead,
]

INBOUND_EVENTS: dict[str, type[InboundEvent]] = {
    cls.name: cls
    for cls in (
        JoinChatRoom,
        LeaveChatRoom,
        SendMessage,
        TypingStart,
        TypingStop,
        MarkMessagesRead,
    )
}


def parse_event(name: str, data: Any) -> InboundEvent:
    """Build the typed event for ``name`` from its raw payload."""

    try:
        event_cls = INBOUND_EVENTS[name]
    except KeyError:
        msg = f"Unknown event: {name}"
        raise RealtimeError(msg) from None
    return event_cls.from_payload(data)
