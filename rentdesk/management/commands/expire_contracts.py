from django.core.management.base import BaseCommand

from rentdesk.management.commands.generate_rent_payments import parse_as_of
from rentdesk.schedule import expire_contracts


class Command(BaseCommand):
    help = "Mark ACTIVE contracts past their end date as EXPIRED and release their properties."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Show how many contracts would be expired without saving changes.",
        )
        parser.add_argument("--date", help="Run as of this date (YYYY-MM-DD) instead of today.")

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        today = parse_as_of(options["date"])

        count = expire_contracts(today=today, dry_run=dry_run)

        if dry_run:
            self.stdout.write(self.style.WARNING(f"[DRY RUN] Would expire {count} contract(s)."))
            return

        self.stdout.write(self.style.SUCCESS(f"Marked {count} contract(s) as EXPIRED."))
