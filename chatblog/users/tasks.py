import logging

from celery import shared_task
from django.contrib.auth import get_user_model
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task(name="users.reset_presence")
def reset_presence() -> int:
    """Mark every user offline.

    Live connection counts only exist in the memory of the socket process, so a
    crash or redeploy leaves ``is_online`` set for users nobody is tracking any
    more. Run this once before the socket server starts accepting connections.

    Returns:
        Number of user rows that were flipped to offline.
    """
    user_model = get_user_model()
    updated = user_model.objects.filter(is_online=True).update(
        is_online=False,
        last_seen=timezone.now(),
    )
    if updated:
        logger.info("Reset presence for %s stale online user(s)", updated)
    return updated
