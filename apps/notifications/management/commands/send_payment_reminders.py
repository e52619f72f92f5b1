from datetime import date

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.notifications.services import queue_payment_reminders


class Command(BaseCommand):
    help = "Queue reminder notifications for active payments that are due soon or overdue."

    def add_arguments(self, parser):
        parser.add_argument("--days-ahead", type=int, default=settings.REMINDER_DAYS_AHEAD)
        parser.add_argument("--date", help="Reference date (YYYY-MM-DD). Defaults to today.")

    def handle(self, *args, **options):
        today = None
        if options["date"]:
            try:
                today = date.fromisoformat(options["date"])
            except ValueError as exc:
                raise CommandError(f"Invalid --date value: {options['date']}") from exc

        reminders = queue_payment_reminders(today=today, days_ahead=options["days_ahead"])
        self.stdout.write(self.style.SUCCESS(f"Queued reminders: {len(reminders)}"))
