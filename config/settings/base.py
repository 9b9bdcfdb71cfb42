# backend/config/settings/base.py
from pathlib import Path
import os
from dotenv import load_dotenv
from datetime import timedelta

from hm_core.common.logging import build_logging_config


BASE_DIR = Path(__file__).resolve().parent.parent.parent  # backend/
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "unsafe-dev-key")
DEBUG = os.getenv("DJANGO_DEBUG", "0") == "1"
ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    # Django
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt",
    "drf_spectacular",
    "django_filters",

    # Domain apps (modular monolith)
    "hm_core.common.apps.CommonConfig",
    "hm_core.sequences.apps.SequencesConfig",
    "hm_core.beds.apps.BedsConfig",
    "hm_core.admissions.apps.AdmissionsConfig",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",

    # request_id + scope -> structlog context
    "hm_core.common.middleware.RequestContextMiddleware",

    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("DB_NAME", "hm"),
        "USER": os.getenv("DB_USER", "hm"),
        "PASSWORD": os.getenv("DB_PASSWORD", "hm"),
        "HOST": os.getenv("DB_HOST", "127.0.0.1"),
        "PORT": os.getenv("DB_PORT", "5432"),
        "ATOMIC_REQUESTS": False,
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("DJANGO_TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",

    # Standard error envelope
    "EXCEPTION_HANDLER": "hm_core.common.api.exceptions.api_exception_handler",

    "DEFAULT_FILTER_BACKENDS": [
        "django_filters.rest_framework.DjangoFilterBackend",
    ],

    "DEFAULT_PAGINATION_CLASS": "hm_core.common.api.pagination.DefaultPagination",
    "PAGE_SIZE": 25,
}

SPECTACULAR_SETTINGS = {
    "TITLE": "HM Inpatient API",
    "DESCRIPTION": "Admissions, bed allocation and identifier sequences",
    "VERSION": "0.1.0",

    "COMPONENT_SPLIT_REQUEST": True,
    "SORT_OPERATIONS": True,
    "SORT_OPERATION_PARAMETERS": True,

    # Several apps define a `status` choice field.
    "ENUM_NAME_OVERRIDES": {
        "BedStatusEnum": "hm_core.beds.models.BedStatus",
        "AdmissionStatusEnum": "hm_core.admissions.models.AdmissionStatus",
        "DischargeSyncStatusEnum": "hm_core.admissions.models.DischargeSyncStatus",
    },
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=10),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=14),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": False,
    "UPDATE_LAST_LOGIN": True,
}

# CORS settings (development defaults, tightened in prod.py)
CORS_ALLOW_ALL_ORIGINS = True
CORS_ALLOW_CREDENTIALS = True

# ---------------------------------------------------------------------
# Identifier sequences: type -> prefix / zero padding / yearly reset
# ---------------------------------------------------------------------
ID_SEQUENCE_DEFAULTS = {
    "mrn": {"prefix": "MRN", "padding_length": 6, "reset_yearly": False},
    "appointment": {"prefix": "APT", "padding_length": 6, "reset_yearly": True},
    "admission": {"prefix": "ADM", "padding_length": 6, "reset_yearly": True},
    "er_visit": {"prefix": "ER", "padding_length": 6, "reset_yearly": True},
    "invoice": {"prefix": "INV", "padding_length": 6, "reset_yearly": True},
    "prescription": {"prefix": "RX", "padding_length": 6, "reset_yearly": True},
    "lab_order": {"prefix": "LAB", "padding_length": 6, "reset_yearly": True},
}

# ---------------------------------------------------------------------
# Concurrency (hm_core.common.db)
# ---------------------------------------------------------------------
CONCURRENCY_RETRY_ATTEMPTS = int(os.getenv("CONCURRENCY_RETRY_ATTEMPTS", "3"))
CONCURRENCY_RETRY_BACKOFF_SECONDS = float(os.getenv("CONCURRENCY_RETRY_BACKOFF_SECONDS", "0.05"))
UNIT_OF_WORK_TIMEOUT_SECONDS = float(os.getenv("UNIT_OF_WORK_TIMEOUT_SECONDS", "10"))
UNIT_OF_WORK_LOCK_TIMEOUT_MS = int(os.getenv("UNIT_OF_WORK_LOCK_TIMEOUT_MS", "3000"))
UNIT_OF_WORK_STATEMENT_TIMEOUT_MS = int(os.getenv("UNIT_OF_WORK_STATEMENT_TIMEOUT_MS", "8000"))

# ---------------------------------------------------------------------
# Downstream medical-records discharge sync
# ---------------------------------------------------------------------
DISCHARGE_SYNC_URL = os.getenv("DISCHARGE_SYNC_URL", "")
DISCHARGE_SYNC_API_KEY = os.getenv("DISCHARGE_SYNC_API_KEY", "")
DISCHARGE_SYNC_TIMEOUT = float(os.getenv("DISCHARGE_SYNC_TIMEOUT", "5"))
DISCHARGE_SYNC_MAX_ATTEMPTS = int(os.getenv("DISCHARGE_SYNC_MAX_ATTEMPTS", "5"))

# ---------------------------------------------------------------------
# Logging (structlog over stdlib logging)
# ---------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "console")  # console | json
LOGGING = build_logging_config(level=LOG_LEVEL, fmt=LOG_FORMAT)
