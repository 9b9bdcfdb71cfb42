from uuid import UUID

from django.core.management.base import BaseCommand, CommandError

from hm_core.sequences.services import SequenceService


class Command(BaseCommand):
    help = "Provision every configured identifier sequence for a tenant/facility (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument("--tenant-id", required=True)
        parser.add_argument("--facility-id", required=True)

    def handle(self, *args, **options):
        try:
            tenant_id = UUID(options["tenant_id"])
            facility_id = UUID(options["facility_id"])
        except ValueError as exc:
            raise CommandError(f"Invalid scope id: {exc}") from exc

        created = SequenceService.ensure_configured(tenant_id=tenant_id, facility_id=facility_id)
        for seq in created:
            self.stdout.write(f"Created {seq.sequence_type} ({seq.prefix})")
        self.stdout.write(self.style.SUCCESS(f"Sequences ensured. Newly created: {len(created)}"))
