from django.core.management.base import BaseCommand

from hm_core.admissions.services.discharge_sync import DischargeSyncService


class Command(BaseCommand):
    help = "Retry pending discharge notifications to the medical-records service."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=50)

    def handle(self, *args, **options):
        delivered = DischargeSyncService.deliver_pending(limit=options["limit"])
        self.stdout.write(self.style.SUCCESS(f"Discharge sync delivered: {delivered}"))
