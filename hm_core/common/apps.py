# backend/hm_core/common/apps.py
from django.apps import AppConfig


class CommonConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hm_core.common"

    def ready(self):
        from hm_core.common.logging import configure_structlog

        configure_structlog()
