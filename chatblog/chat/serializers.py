from django.contrib.auth import get_user_model
from rest_framework import serializers

from .models import Message

User = get_user_model()


class UserSummarySerializer(serializers.ModelSerializer):
    """Public profile attached to realtime payloads (sender, reader, typist)."""

    id = serializers.CharField(read_only=True)
    name = serializers.CharField(source="display_name", read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "name", "avatar"]
        read_only_fields = fields


class MessageSerializer(serializers.ModelSerializer):
    # Identifiers are opaque strings on the wire.
    id = serializers.CharField(read_only=True)
    senderId = serializers.CharField(source="sender_id", read_only=True)  # noqa: N815
    receiverId = serializers.CharField(source="receiver_id", read_only=True)  # noqa: N815
    chatRoomId = serializers.CharField(source="chat_room_id", read_only=True)  # noqa: N815
    isRead = serializers.BooleanField(source="is_read", read_only=True)  # noqa: N815
    isEdited = serializers.BooleanField(source="is_edited", read_only=True)  # noqa: N815
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)  # noqa: N815
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)  # noqa: N815
    sender = UserSummarySerializer(read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "content",
            "type",
            "senderId",
            "receiverId",
            "chatRoomId",
            "isRead",
            "isEdited",
            "createdAt",
            "updatedAt",
            "sender",
        ]
        read_only_fields = fields
