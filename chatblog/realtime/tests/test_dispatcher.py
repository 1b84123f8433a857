import pytest

from chatblog.realtime.dispatcher import MessageDispatcher
from chatblog.realtime.events import MarkMessagesRead
from chatblog.realtime.events import SendMessage
from chatblog.realtime.exceptions import InvalidMessageData
from chatblog.realtime.exceptions import NotRoomMember
from chatblog.realtime.exceptions import PersistenceFailed
from chatblog.realtime.exceptions import ReceiverNotFound
from chatblog.realtime.registry import ConnectionRegistry
from chatblog.realtime.tests.fakes import FakeGateway
from chatblog.realtime.tests.fakes import RecordingEmitter


class TestMessageDispatcher:
    def setup_method(self):
        self.gateway = FakeGateway()
        self.alice = self.gateway.add_user("1", "alice")
        self.bob = self.gateway.add_user("2", "bob")
        self.emitter = RecordingEmitter()
        self.registry = ConnectionRegistry(self.emitter)
        self.dispatcher = MessageDispatcher(self.registry, self.gateway, max_length=20)

    async def _connect(self, sid, user, *rooms):
        connection = await self.registry.add(sid, user)
        for room_id in rooms:
            await self.registry.join(sid, room_id)
            self.gateway.add_member(user.id, room_id)
        return connection

    @pytest.mark.parametrize(
        "data",
        [
            SendMessage(content="", chat_room_id="r"),
            SendMessage(content="   ", chat_room_id="r"),
            SendMessage(content=None, chat_room_id="r"),
            SendMessage(content="x" * 21, chat_room_id="r"),
            SendMessage(content="hi"),
            SendMessage(content="hi", chat_room_id="r", receiver_id="2"),
            SendMessage(content="hi", chat_room_id="r", type="VIDEO"),
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_message_never_persists(self, data):
        connection = await self._connect("a1", self.alice, "r")

        with pytest.raises(InvalidMessageData, match="Invalid message data"):
            await self.dispatcher.send(connection, data)

        assert self.gateway.messages == []
        assert self.emitter.sent == []

    @pytest.mark.asyncio
    async def test_type_is_case_insensitive(self):
        connection = await self._connect("a1", self.alice, "r")

        message = await self.dispatcher.send(
            connection,
            SendMessage(content="pic", type="image", chat_room_id="r"),
        )

        assert message["type"] == "IMAGE"

    @pytest.mark.asyncio
    async def test_room_send_requires_live_subscription(self):
        connection = await self._connect("a1", self.alice)
        self.gateway.add_member("1", "r")

        with pytest.raises(NotRoomMember):
            await self.dispatcher.send(connection, SendMessage(content="hi", chat_room_id="r"))
        assert self.gateway.messages == []

    @pytest.mark.asyncio
    async def test_room_send_requires_durable_membership(self):
        connection = await self.registry.add("a1", self.alice)
        await self.registry.join("a1", "r")

        with pytest.raises(NotRoomMember, match="not a member"):
            await self.dispatcher.send(connection, SendMessage(content="hi", chat_room_id="r"))
        assert self.gateway.messages == []

    @pytest.mark.asyncio
    async def test_room_send_fans_out_to_all_members_including_sender(self):
        sender = await self._connect("a1", self.alice, "r")
        await self._connect("a2", self.alice, "r")
        await self._connect("b1", self.bob, "r")
        await self._connect("b2", self.bob)

        message = await self.dispatcher.send(
            sender,
            SendMessage(content="hello", type="TEXT", chat_room_id="r"),
        )

        expected = {"message": message, "chatRoomId": "r"}
        for sid in ("a1", "a2", "b1"):
            assert self.emitter.events(sid, "new_message") == [expected]
        assert self.emitter.events("b2") == []
        assert self.emitter.events("a1", "message_sent") == []
        assert message["content"] == "hello"
        assert message["type"] == "TEXT"
        assert self.gateway.room_messages("r") == [message]

    @pytest.mark.asyncio
    async def test_direct_send_unknown_receiver(self):
        connection = await self._connect("a1", self.alice)

        with pytest.raises(ReceiverNotFound, match="Receiver not found"):
            await self.dispatcher.send(connection, SendMessage(content="hi", receiver_id="404"))
        assert self.gateway.messages == []

    @pytest.mark.asyncio
    async def test_direct_send_delivers_to_receiver_and_confirms_origin(self):
        origin = await self._connect("a1", self.alice)
        await self._connect("a2", self.alice)
        await self._connect("b1", self.bob)
        await self._connect("b2", self.bob)

        message = await self.dispatcher.send(origin, SendMessage(content="psst", receiver_id="2"))

        expected = {"message": message, "receiverId": "2"}
        assert self.emitter.events("b1", "new_message") == [expected]
        assert self.emitter.events("b2", "new_message") == [expected]
        assert self.emitter.events("a1") == [{"message": message}]
        assert self.emitter.events("a1", "message_sent") == [{"message": message}]
        assert self.emitter.events("a2") == []

    @pytest.mark.asyncio
    async def test_persistence_failure_skips_fanout(self, caplog):
        sender = await self._connect("a1", self.alice, "r")
        await self._connect("b1", self.bob, "r")
        self.gateway.fail_create = True

        with pytest.raises(PersistenceFailed, match="Failed to send message"):
            await self.dispatcher.send(sender, SendMessage(content="hi", chat_room_id="r"))

        assert self.emitter.sent == []
        assert "Failed to persist message" in caplog.text

    @pytest.mark.asyncio
    async def test_left_member_receives_nothing(self):
        sender = await self._connect("a1", self.alice, "r")
        await self._connect("b1", self.bob, "r")
        await self.registry.leave("b1", "r")

        await self.dispatcher.send(sender, SendMessage(content="hi", chat_room_id="r"))

        assert self.emitter.events("b1") == []

    @pytest.mark.asyncio
    async def test_mark_read_notifies_sender_connections(self):
        reader = await self._connect("a1", self.alice)
        await self._connect("b1", self.bob)
        self.gateway.unread = 3

        count = await self.dispatcher.mark_read(reader, MarkMessagesRead(sender_id="2"))

        assert count == 3
        assert self.gateway.read_calls == [
            {"reader_id": "1", "chat_room_id": None, "sender_id": "2"},
        ]
        assert self.emitter.events("b1", "messages_read") == [
            {"reader": self.alice.to_dict(), "count": 3, "chatRoomId": None},
        ]

    @pytest.mark.asyncio
    async def test_mark_read_for_room_has_no_notification(self):
        reader = await self._connect("a1", self.alice, "r")

        await self.dispatcher.mark_read(reader, MarkMessagesRead(chat_room_id="r"))

        assert self.emitter.sent == []

    @pytest.mark.asyncio
    async def test_mark_read_in_foreign_room_is_refused(self):
        reader = await self._connect("m1", self.bob)
        self.gateway.unread = 5

        with pytest.raises(NotRoomMember):
            await self.dispatcher.mark_read(reader, MarkMessagesRead(chat_room_id="r"))

        assert self.gateway.read_calls == []
        assert self.emitter.sent == []
