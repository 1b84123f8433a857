from __future__ import annotations

from django.core.management.base import BaseCommand
from django.core.management.base import CommandParser

from chatblog.users.tasks import reset_presence


class Command(BaseCommand):
    help = "Mark every user offline before the socket server starts"

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--async",
            dest="run_async",
            action="store_true",
            help="Queue the reset on Celery instead of running it inline",
        )

    def handle(self, *args, **options) -> None:
        if options.get("run_async"):
            result = reset_presence.delay()
            self.stdout.write(f"Queued presence reset ({result.id})")
            return
        updated = reset_presence()
        self.stdout.write(self.style.SUCCESS(f"Marked {updated} user(s) offline"))
