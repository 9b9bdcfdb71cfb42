# config/settings/test.py
from .base import *  # noqa

DEBUG = False

# Same PostgreSQL database as base; row-lock races only run there.
# TEST_DB_ENGINE=sqlite opts into a local SQLite file instead.
if os.getenv("TEST_DB_ENGINE", "").lower() == "sqlite":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("TEST_DB_NAME", str(BASE_DIR / "test.sqlite3")),
        }
    }

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

CONCURRENCY_RETRY_BACKOFF_SECONDS = 0
UNIT_OF_WORK_TIMEOUT_SECONDS = 30

DISCHARGE_SYNC_URL = "https://records.test/api/discharges"
DISCHARGE_SYNC_API_KEY = "test-internal-key"
DISCHARGE_SYNC_MAX_ATTEMPTS = 3

LOGGING = build_logging_config(level="WARNING", fmt="console")
