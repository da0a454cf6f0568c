from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
from django.utils.dateparse import parse_date

from rentdesk.schedule import generate_pending_payments


def parse_as_of(value):
    if not value:
        return timezone.localdate()
    parsed = parse_date(value)
    if parsed is None:
        raise CommandError(f"Invalid --date {value!r}, expected YYYY-MM-DD.")
    return parsed


class Command(BaseCommand):
    help = "Create PENDING rent payments for every period of an ACTIVE contract that has become due."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many payments would be created without saving changes.",
        )
        parser.add_argument("--date", help="Run as of this date (YYYY-MM-DD) instead of today.")

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        today = parse_as_of(options["date"])

        count = generate_pending_payments(today=today, dry_run=dry_run)

        if dry_run:
            self.stdout.write(self.style.WARNING(f"[DRY RUN] Would create {count} rent payment(s)."))
            return

        self.stdout.write(self.style.SUCCESS(f"Created {count} rent payment(s)."))
