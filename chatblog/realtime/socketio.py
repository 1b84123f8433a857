"""Socket.IO server for the chat frontend.

Frontend convention:
- Socket.IO path: ``settings.SOCKETIO_PATH`` (default ``/socket.io``)
- Auth: ``auth.token``, ``Authorization: Bearer <token>`` or the access-token
  cookie, checked in that order.

Each admitted connection gets a ``ConnectionWorker`` that drains its inbound
events one at a time, so a single client's events are handled in arrival
order while different clients are handled concurrently.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING
from typing import Any

import socketio
from asgiref.sync import async_to_sync
from django.conf import settings

from .auth import ConnectionGate
from .dispatcher import MessageDispatcher
from .events import ERROR
from .events import INBOUND_EVENTS
from .events import JOINED_CHAT_ROOM
from .events import LEFT_CHAT_ROOM
from .events import USER_JOINED
from .events import USER_LEFT
from .events import JoinChatRoom
from .events import LeaveChatRoom
from .events import MarkMessagesRead
from .events import SendMessage
from .events import TypingScope
from .events import TypingStart
from .events import TypingStop
from .events import parse_event
from .exceptions import NotRoomMember
from .exceptions import RealtimeError
from .gateway import DjangoPersistenceGateway
from .presence import PresenceTracker
from .registry import ConnectionRegistry
from .typing_state import TypingCoordinator

if TYPE_CHECKING:
    from collections.abc import Awaitable
    from collections.abc import Callable

    from .events import InboundEvent
    from .gateway import PersistenceGateway
    from .models import Connection

logger = logging.getLogger(__name__)

_server: ChatServer | None = None


class ConnectionWorker:
    """Serial event loop for one connection."""

    def __init__(
        self,
        connection: Connection,
        handle: Callable[[Connection, InboundEvent], Awaitable[None]],
        report: Callable[[str, str], Awaitable[None]],
    ) -> None:
        self.connection = connection
        self._handle = handle
        self._report = report
        self._queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._busy = False
        self._stopping = False

    def start(self) -> None:
        self._task = asyncio.create_task(
            self._run(),
            name=f"socket-worker:{self.connection.sid}",
        )

    def submit(self, name: str, data: Any) -> None:
        self._queue.put_nowait((name, data))

    async def join(self) -> None:
        """Wait until every submitted event has been handled."""

        await self._queue.join()

    async def close(self) -> None:
        """Stop taking events and wait for the one in progress, if any.

        Queued events that have not started are dropped. A handler that is
        already running completes so a message it persisted is still fanned
        out to the other recipients.
        """

        task = self._task
        self._task = None
        self._stopping = True
        if task is None:
            return
        if not self._busy:
            task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        while not self._stopping:
            name, data = await self._queue.get()
            self._busy = True
            try:
                await self._process(name, data)
            finally:
                self._busy = False
                self._queue.task_done()

    async def _process(self, name: str, data: Any) -> None:
        sid = self.connection.sid
        try:
            event = parse_event(name, data)
            await self._handle(self.connection, event)
        except RealtimeError as exc:
            await self._report(sid, exc.message)
        except Exception:
            logger.exception("Unhandled error in %s handler for %s", name, sid)
            event_cls = INBOUND_EVENTS.get(name)
            message = getattr(event_cls, "error_message", "Something went wrong")
            await self._report(sid, message)


class ChatServer:
    """Owns the Socket.IO server and every piece of realtime state."""

    def __init__(
        self,
        sio: socketio.AsyncServer | None = None,
        gateway: PersistenceGateway | None = None,
        *,
        typing_timeout: float | None = None,
        max_length: int | None = None,
        verify_join_membership: bool | None = None,
    ) -> None:
        self.sio = sio or socketio.AsyncServer(
            async_mode="asgi",
            cors_allowed_origins=settings.CORS_ORIGINS,
            logger=False,
            engineio_logger=False,
        )
        self.gateway = gateway or DjangoPersistenceGateway()
        if typing_timeout is None:
            typing_timeout = settings.CHAT_TYPING_TIMEOUT
        if max_length is None:
            max_length = settings.CHAT_MESSAGE_MAX_LENGTH
        if verify_join_membership is None:
            verify_join_membership = settings.CHAT_VERIFY_JOIN_MEMBERSHIP
        self.verify_join_membership = verify_join_membership

        self.gate = ConnectionGate(self.gateway)
        self.registry = ConnectionRegistry(self._emit)
        self.presence = PresenceTracker(self.gateway)
        self.typing = TypingCoordinator(self.registry, typing_timeout)
        self.dispatcher = MessageDispatcher(
            self.registry,
            self.gateway,
            max_length=max_length,
        )
        self.workers: dict[str, ConnectionWorker] = {}
        self._handlers: dict[type, Callable[[Connection, Any], Awaitable[None]]] = {
            JoinChatRoom: self.join_chat_room,
            LeaveChatRoom: self.leave_chat_room,
            SendMessage: self.send_message,
            TypingStart: self.typing_start,
            TypingStop: self.typing_stop,
            MarkMessagesRead: self.mark_messages_read,
        }

        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        for name in INBOUND_EVENTS:
            self.sio.on(name, self._inbound(name))

    # Transport -------------------------------------------------------------

    async def _emit(self, event: str, payload: dict[str, Any], sid: str) -> None:
        await self.sio.emit(event, payload, to=sid)

    async def _report(self, sid: str, message: str) -> None:
        await self.registry.send_to_connection(sid, ERROR, {"message": message})

    def _inbound(self, name: str) -> Callable[..., Awaitable[None]]:
        async def handler(sid: str, data: Any = None) -> None:
            worker = self.workers.get(sid)
            if worker is None:
                logger.warning("Dropping %s from unregistered connection %s", name, sid)
                return
            worker.submit(name, data)

        handler.__name__ = f"on_{name}"
        return handler

    # Lifecycle -------------------------------------------------------------

    async def on_connect(self, sid: str, environ: dict[str, Any], auth: Any | None = None):
        user = await self.gate.admit(environ, auth)
        connection = await self.registry.add(sid, user)
        worker = ConnectionWorker(connection, self.handle, self._report)
        self.workers[sid] = worker
        worker.start()
        await self.presence.connected(user.id)
        logger.info("User %s connected with socket ID: %s", user.username, sid)

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        worker = self.workers.pop(sid, None)
        # registry.disconnect flags the connection closing before it yields.
        connection = await self.registry.disconnect(sid)
        if worker is not None:
            await worker.close()
        await self.typing.clear_connection(sid)
        if connection is not None:
            await self.presence.disconnected(connection.user.id)
            logger.info("User %s disconnected (%s)", connection.user.username, reason)

    async def shutdown(self) -> None:
        for sid in list(self.workers):
            await self.on_disconnect(sid, "server shutdown")
        await self.typing.shutdown()

    # Handlers --------------------------------------------------------------

    async def handle(self, connection: Connection, event: InboundEvent) -> None:
        await self._handlers[type(event)](connection, event)

    async def join_chat_room(self, connection: Connection, event: JoinChatRoom) -> None:
        room_id = event.chat_room_id
        if self.verify_join_membership and not await self.gateway.check_room_membership(
            connection.user.id,
            room_id,
        ):
            raise NotRoomMember
        try:
            joined = await self.registry.join(connection.sid, room_id)
        except LookupError:
            return
        await self.registry.send_to_connection(
            connection.sid,
            JOINED_CHAT_ROOM,
            {"chatRoomId": room_id},
        )
        if joined:
            logger.info("User %s joined chat room %s", connection.user.username, room_id)
            await self.registry.broadcast(
                room_id,
                USER_JOINED,
                {"user": connection.user.to_dict(), "chatRoomId": room_id},
                exclude=connection.sid,
            )

    async def leave_chat_room(self, connection: Connection, event: LeaveChatRoom) -> None:
        room_id = event.chat_room_id
        scope = TypingScope(chat_room_id=room_id)
        if self.typing.is_typing(connection.user.id, scope):
            await self.typing.stop(connection.sid, connection.user, scope)
        left = await self.registry.leave(connection.sid, room_id)
        await self.registry.send_to_connection(
            connection.sid,
            LEFT_CHAT_ROOM,
            {"chatRoomId": room_id},
        )
        if left:
            await self.registry.broadcast(
                room_id,
                USER_LEFT,
                {"user": connection.user.to_dict(), "chatRoomId": room_id},
                exclude=connection.sid,
            )

    async def send_message(self, connection: Connection, event: SendMessage) -> None:
        await self.dispatcher.send(connection, event)

    async def typing_start(self, connection: Connection, event: TypingStart) -> None:
        room_id = event.scope.chat_room_id
        if room_id is not None and not self.registry.is_member(connection.sid, room_id):
            raise NotRoomMember
        await self.typing.start(connection.sid, connection.user, event.scope)

    async def typing_stop(self, connection: Connection, event: TypingStop) -> None:
        await self.typing.stop(connection.sid, connection.user, event.scope)

    async def mark_messages_read(self, connection: Connection, event: MarkMessagesRead) -> None:
        await self.dispatcher.mark_read(connection, event)

    # Publishing from outside the socket flow ------------------------------

    async def emit_to_user(self, user_id: Any, event: str, payload: dict[str, Any]) -> int:
        return await self.registry.send_to_user(str(user_id), event, payload)

    async def emit_to_chat_room(self, chat_room_id: Any, event: str, payload: dict[str, Any]) -> int:
        return await self.registry.broadcast(str(chat_room_id), event, payload)


def init_chat_server(**kwargs: Any) -> ChatServer:
    global _server  # noqa: PLW0603
    _server = ChatServer(**kwargs)
    return _server


def get_chat_server() -> ChatServer:
    if _server is None:
        msg = "Socket.IO not initialized"
        raise RuntimeError(msg)
    return _server


def emit_event_to_user(user_id: Any, event: str, payload: dict[str, Any]) -> None:
    """Emit an event to every connection of a user from sync Django code.

    A no-op when the socket server is not running in this process.
    """

    if _server is None:
        return
    async_to_sync(_server.emit_to_user)(user_id, event, payload)


def emit_event_to_chat_room(chat_room_id: Any, event: str, payload: dict[str, Any]) -> None:
    if _server is None:
        return
    async_to_sync(_server.emit_to_chat_room)(chat_room_id, event, payload)
