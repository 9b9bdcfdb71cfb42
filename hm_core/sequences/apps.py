# backend/hm_core/sequences/apps.py
from django.apps import AppConfig


class SequencesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hm_core.sequences"
    verbose_name = "Identifier sequences"
