# backend/hm_core/admissions/apps.py
from django.apps import AppConfig


class AdmissionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hm_core.admissions"

    def ready(self):
        # Register in-process event subscribers
        import hm_core.admissions.subscribers  # noqa: F401
