from io import StringIO

from django.core.management import call_command

from chatblog.users.models import User
from chatblog.users.tasks import reset_presence
from chatblog.users.tests.factories import create_user


def test_reset_presence_marks_stale_users_offline(db):
    stale = create_user("stale")
    User.objects.filter(pk=stale.pk).update(is_online=True)
    create_user("idle")

    assert reset_presence() == 1

    stale.refresh_from_db()
    assert stale.is_online is False
    assert stale.last_seen is not None


def test_reset_presence_runs_through_celery(db):
    User.objects.filter(pk=create_user("stale").pk).update(is_online=True)

    result = reset_presence.delay()

    assert result.get() == 1
    assert not User.objects.filter(is_online=True).exists()


def test_reset_presence_command(db):
    User.objects.filter(pk=create_user("stale").pk).update(is_online=True)
    out = StringIO()

    call_command("reset_presence", stdout=out)

    assert "Marked 1 user(s) offline" in out.getvalue()
    assert not User.objects.filter(is_online=True).exists()
