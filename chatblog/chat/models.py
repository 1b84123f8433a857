from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils.translation import gettext_lazy as _


class ChatRoom(models.Model):
    class Type(models.TextChoices):
        DIRECT = "DIRECT", _("Direct")
        GROUP = "GROUP", _("Group")

    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.GROUP)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_chat_rooms",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class ChatRoomUser(models.Model):
    """Durable room membership. Live socket subscriptions are tracked in memory."""

    class Role(models.TextChoices):
        ADMIN = "ADMIN", _("Admin")
        MEMBER = "MEMBER", _("Member")

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_memberships",
    )
    chat_room = models.ForeignKey(
        ChatRoom,
        on_delete=models.CASCADE,
        related_name="memberships",
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.MEMBER)
    is_active = models.BooleanField(default=True)
    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "chat_room"],
                name="uniq_chat_room_user",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.user_id}@{self.chat_room_id}"


class Message(models.Model):
    class Type(models.TextChoices):
        TEXT = "TEXT", _("Text")
        IMAGE = "IMAGE", _("Image")
        FILE = "FILE", _("File")
        SYSTEM = "SYSTEM", _("System")

    content = models.TextField()
    type = models.CharField(max_length=20, choices=Type.choices, default=Type.TEXT)
    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_messages",
    )
    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="received_messages",
    )
    chat_room = models.ForeignKey(
        ChatRoom,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="messages",
    )
    is_read = models.BooleanField(default=False)
    is_edited = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["chat_room", "created_at"], name="msg_room_created_idx"),
            models.Index(fields=["receiver", "is_read"], name="msg_receiver_read_idx"),
        ]
        constraints = [
            # Exactly one of receiver / chat_room.
            models.CheckConstraint(
                condition=(
                    Q(receiver__isnull=False, chat_room__isnull=True)
                    | Q(receiver__isnull=True, chat_room__isnull=False)
                ),
                name="message_receiver_xor_chat_room",
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Message({self.pk}) from {self.sender_id}"
