# backend/hm_core/beds/apps.py
from django.apps import AppConfig


class BedsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "hm_core.beds"
    verbose_name = "Rooms & beds"
