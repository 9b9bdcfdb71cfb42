# backend/hm_core/common/management/commands/ensure_roles.py

from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from hm_core.common.permissions import ALL_ROLES


class Command(BaseCommand):
    help = "Ensure the role groups used by ward/admission permissions exist (idempotent)."

    def handle(self, *args, **options):
        created = [name for name in ALL_ROLES if Group.objects.get_or_create(name=name)[1]]
        if created:
            self.stdout.write(f"Created groups: {', '.join(created)}")
        self.stdout.write(self.style.SUCCESS(f"Roles ensured. Newly created: {len(created)}"))
