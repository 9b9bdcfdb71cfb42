# config/settings/prod.py
from .base import *  # noqa

DEBUG = False

CORS_ALLOW_ALL_ORIGINS = False
CORS_ALLOWED_ORIGINS = [o for o in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",") if o]
CORS_ALLOW_CREDENTIALS = True

ALLOWED_HOSTS = [h for h in os.getenv("DJANGO_ALLOWED_HOSTS", "").split(",") if h] or ["localhost"]

LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
LOGGING = build_logging_config(level=LOG_LEVEL, fmt=LOG_FORMAT)
