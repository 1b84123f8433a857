"""Synchronous ORM operations backing the realtime messaging core.

Everything here is plain Django ORM code so it can be unit tested with
``django_db`` and wrapped with ``database_sync_to_async`` by the realtime
gateway. Identifiers arrive from the socket layer as opaque strings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q

from .models import ChatRoomUser
from .models import Message
from .serializers import MessageSerializer


def _pk(value: Any) -> int | None:
    """Coerce an opaque wire identifier to a primary key, or None if it cannot be one."""

    if value is None or isinstance(value, bool):
        return None
    try:
        pk = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return pk if pk > 0 else None


def get_active_user(user_id: Any):
    """Return the active user for ``user_id`` or None."""

    pk = _pk(user_id)
    if pk is None:
        return None
    return get_user_model().objects.filter(pk=pk, is_active=True).first()


def check_room_membership(user_id: Any, chat_room_id: Any) -> bool:
    user_pk = _pk(user_id)
    room_pk = _pk(chat_room_id)
    if user_pk is None or room_pk is None:
        return False
    return ChatRoomUser.objects.filter(
        user_id=user_pk,
        chat_room_id=room_pk,
        is_active=True,
    ).exists()


def create_message(  # noqa: PLR0913
    *,
    sender_id: Any,
    content: str,
    message_type: str = Message.Type.TEXT,
    receiver_id: Any = None,
    chat_room_id: Any = None,
) -> dict[str, Any]:
    """Persist one message and return its wire representation.

    The write is committed before this returns so callers may fan out
    immediately afterwards.
    """

    with transaction.atomic():
        message = Message.objects.create(
            content=content,
            type=message_type,
            sender_id=_pk(sender_id),
            receiver_id=_pk(receiver_id),
            chat_room_id=_pk(chat_room_id),
        )
    message = Message.objects.select_related("sender").get(pk=message.pk)
    return dict(MessageSerializer(message).data)


def update_user_status(user_id: Any, *, online: bool, last_seen: datetime) -> int:
    pk = _pk(user_id)
    if pk is None:
        return 0
    return (
        get_user_model()
        .objects.filter(pk=pk)
        .update(is_online=online, last_seen=last_seen)
    )


def mark_messages_as_read(
    reader_id: Any,
    *,
    chat_room_id: Any = None,
    sender_id: Any = None,
) -> int:
    """Flag unread messages as read for ``reader_id``.

    - ``chat_room_id``: every unread message in that room not sent by the reader.
    - ``sender_id``: unread direct messages from that sender to the reader.
    - neither: every unread direct message addressed to the reader.

    Returns:
        Number of messages updated.
    """

    reader_pk = _pk(reader_id)
    if reader_pk is None:
        return 0

    criteria = Q()
    room_pk = _pk(chat_room_id)
    sender_pk = _pk(sender_id)
    if room_pk is not None:
        criteria |= Q(chat_room_id=room_pk)
    if sender_pk is not None:
        criteria |= Q(sender_id=sender_pk, receiver_id=reader_pk)
    if room_pk is None and sender_pk is None:
        criteria = Q(receiver_id=reader_pk)

    return (
        Message.objects.filter(criteria, is_read=False)
        .exclude(sender_id=reader_pk)
        .update(is_read=True)
    )
