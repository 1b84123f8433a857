import pytest
from django.db import IntegrityError
from django.utils import timezone

from chatblog.chat import services
from chatblog.chat.models import ChatRoom
from chatblog.chat.models import ChatRoomUser
from chatblog.chat.models import Message
from chatblog.users.tests.factories import create_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def bob(db):
    return create_user("bob")


@pytest.fixture
def room(user, bob):
    room = ChatRoom.objects.create(name="team", created_by=user)
    ChatRoomUser.objects.create(user=user, chat_room=room, role=ChatRoomUser.Role.ADMIN)
    ChatRoomUser.objects.create(user=bob, chat_room=room)
    return room


class TestGetActiveUser:
    def test_accepts_string_ids(self, user):
        assert services.get_active_user(str(user.pk)) == user

    @pytest.mark.parametrize("value", [None, "", "abc", "-1", "0", True, "999999"])
    def test_unknown_or_malformed_ids(self, value):
        assert services.get_active_user(value) is None

    def test_inactive_users_are_hidden(self):
        ghost = create_user("ghost", is_active=False)
        assert services.get_active_user(ghost.pk) is None


class TestRoomMembership:
    def test_member(self, user, room):
        assert services.check_room_membership(str(user.pk), str(room.pk))

    def test_non_member(self, room):
        outsider = create_user("mallory")
        assert not services.check_room_membership(outsider.pk, room.pk)

    def test_inactive_membership(self, bob, room):
        ChatRoomUser.objects.filter(user=bob, chat_room=room).update(is_active=False)
        assert not services.check_room_membership(bob.pk, room.pk)

    def test_malformed_room_id(self, user):
        assert not services.check_room_membership(user.pk, "not-a-room")


class TestCreateMessage:
    def test_room_message(self, user, room):
        data = services.create_message(
            sender_id=str(user.pk),
            content="hi team",
            message_type="TEXT",
            chat_room_id=str(room.pk),
        )

        assert data["content"] == "hi team"
        assert data["type"] == "TEXT"
        assert data["senderId"] == str(user.pk)
        assert data["chatRoomId"] == str(room.pk)
        assert data["receiverId"] is None
        assert data["isRead"] is False
        assert data["sender"] == {
            "id": str(user.pk),
            "username": "alice",
            "name": "Alice Liddell",
            "avatar": "",
        }
        assert Message.objects.filter(chat_room=room).count() == 1

    def test_direct_message(self, user, bob):
        data = services.create_message(
            sender_id=user.pk,
            content="psst",
            message_type="IMAGE",
            receiver_id=bob.pk,
        )

        message = Message.objects.get(pk=int(data["id"]))
        assert message.receiver == bob
        assert message.chat_room is None
        assert message.type == Message.Type.IMAGE

    def test_receiver_and_room_are_exclusive(self, user, bob, room):
        with pytest.raises(IntegrityError):
            services.create_message(
                sender_id=user.pk,
                content="both",
                receiver_id=bob.pk,
                chat_room_id=room.pk,
            )

    def test_needs_a_target(self, user):
        with pytest.raises(IntegrityError):
            services.create_message(sender_id=user.pk, content="nowhere")


class TestUpdateUserStatus:
    def test_sets_presence_columns(self, user):
        seen = timezone.now()

        assert services.update_user_status(str(user.pk), online=True, last_seen=seen) == 1

        user.refresh_from_db()
        assert user.is_online is True
        assert user.last_seen == seen

    def test_unknown_user_is_ignored(self):
        assert services.update_user_status("nope", online=True, last_seen=timezone.now()) == 0


class TestMarkMessagesAsRead:
    def test_room_messages_from_others(self, user, bob, room):
        Message.objects.create(sender=bob, chat_room=room, content="1")
        Message.objects.create(sender=bob, chat_room=room, content="2")
        own = Message.objects.create(sender=user, chat_room=room, content="mine")

        assert services.mark_messages_as_read(user.pk, chat_room_id=room.pk) == 2

        own.refresh_from_db()
        assert own.is_read is False

    def test_direct_messages_from_sender(self, user, bob):
        carol = create_user("carol")
        Message.objects.create(sender=bob, receiver=user, content="from bob")
        from_carol = Message.objects.create(sender=carol, receiver=user, content="from carol")

        assert services.mark_messages_as_read(str(user.pk), sender_id=str(bob.pk)) == 1

        from_carol.refresh_from_db()
        assert from_carol.is_read is False

    def test_all_direct_messages(self, user, bob):
        Message.objects.create(sender=bob, receiver=user, content="a")
        Message.objects.create(sender=user, receiver=bob, content="b")

        assert services.mark_messages_as_read(user.pk) == 1

    def test_already_read_is_not_counted(self, user, bob):
        Message.objects.create(sender=bob, receiver=user, content="a", is_read=True)

        assert services.mark_messages_as_read(user.pk, sender_id=bob.pk) == 0
