from __future__ import annotations

# Connection rejection reasons handed to ConnectionRefusedError.
NO_CREDENTIAL = "no credential"
INVALID_CREDENTIAL = "invalid credential"
UNKNOWN_USER = "unknown user"


class RealtimeError(Exception):
    """A failure that is reported to the originating connection as ``error``."""

    default_message = "Something went wrong"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidMessageData(RealtimeError):
    default_message = "Invalid message data"


class NotRoomMember(RealtimeError):
    default_message = "You are not a member of this chat room"


class ReceiverNotFound(RealtimeError):
    default_message = "Receiver not found"


class PersistenceFailed(RealtimeError):
    default_message = "Failed to send message"
