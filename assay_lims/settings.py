"""
Django settings for assay_lims project.
Mineral assay registry and certification service with PostgreSQL, JWT,
DRF, report verification, and Celery background tasks.
"""

from pathlib import Path
from decouple import Csv, config
from datetime import timedelta
from celery.schedules import crontab
import os


# ===============================================================
# Base paths
# ===============================================================
BASE_DIR = Path(__file__).resolve().parent.parent


# ===============================================================
# Security
# ===============================================================
SECRET_KEY = config("SECRET_KEY", default="insecure-key-change-me")
DEBUG = config("DEBUG", default=False, cast=bool)

# - strip whitespace
# - drop empty entries
# - convert "*.domain" to ".domain" (Django expects leading dot, not wildcard)
# - always include "testserver" for Django test client
_raw_hosts = config(
    "ALLOWED_HOSTS",
    default="127.0.0.1,localhost,testserver",
)

ALLOWED_HOSTS = []
for h in str(_raw_hosts).split(","):
    h = h.strip()
    if not h:
        continue
    ALLOWED_HOSTS.append("." + h[2:] if h.startswith("*.") else h)

if "testserver" not in ALLOWED_HOSTS:
    ALLOWED_HOSTS.append("testserver")


# ---------------------------------------------------------------
# Reverse proxy
# ---------------------------------------------------------------
USE_X_FORWARDED_HOST = True
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = config("SESSION_COOKIE_SECURE", default=True, cast=bool)
CSRF_COOKIE_SECURE = config("CSRF_COOKIE_SECURE", default=True, cast=bool)

CSRF_TRUSTED_ORIGINS = config("CSRF_TRUSTED_ORIGINS", default="", cast=Csv())


# ===============================================================
# Installed apps
# ===============================================================
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "corsheaders",
    "rest_framework",
    "rest_framework_simplejwt.token_blacklist",
    "django_filters",
    "drf_spectacular",
    "drf_spectacular_sidecar",
    "assay_core.apps.AssayCoreConfig",
    "django_celery_results",
    "django_celery_beat",
]


# ===============================================================
# Middleware
# ===============================================================
MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "assay_lims.urls"
WSGI_APPLICATION = "assay_lims.wsgi.application"


# ===============================================================
# Templates (admin + browsable API only)
# ===============================================================
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


# ===============================================================
# Database
# ===============================================================
DJANGO_ENV = os.environ.get("DJANGO_ENV", "").lower()

if DJANGO_ENV in {"ci", "test"}:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": config("DB_NAME", default="assay_db"),
            "USER": config("DB_USER", default="assay_user"),
            "PASSWORD": config("DB_PASSWORD", default="StrongPasswordHere"),
            "HOST": config("DB_HOST", default="127.0.0.1"),
            "PORT": config("DB_PORT", default="5432"),
        }
    }


# ===============================================================
# Password validation
# ===============================================================
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# ===============================================================
# Internationalization
# ===============================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = "Africa/Lubumbashi"
USE_I18N = True
USE_TZ = True


# ===============================================================
# Static & media
# ===============================================================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

MEDIA_URL = "/media/"
MEDIA_ROOT = Path(config("UPLOAD_PATH", default=str(BASE_DIR / "uploads")))

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


# ===============================================================
# CORS
# ===============================================================
CORS_ALLOW_ALL_ORIGINS = config("CORS_ALLOW_ALL_ORIGINS", default=True, cast=bool)


# ===============================================================
# Django REST Framework
# ===============================================================
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "DEFAULT_RENDERER_CLASSES": (
        "rest_framework.renderers.JSONRenderer",
        "rest_framework.renderers.BrowsableAPIRenderer",
    ),
    "DEFAULT_FILTER_BACKENDS": (
        "django_filters.rest_framework.DjangoFilterBackend",
    ),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "DEFAULT_PAGINATION_CLASS": "assay_lims.pagination.DefaultPagination",
    "PAGE_SIZE": 10,
    "EXCEPTION_HANDLER": "assay_core.exceptions.api_exception_handler",
    "DEFAULT_THROTTLE_RATES": {
        "verification": config("VERIFY_RATE", default="60/min"),
        "tracking": config("TRACKING_RATE", default="60/min"),
    },
}


# ===============================================================
# OpenAPI / Swagger
# ===============================================================
SPECTACULAR_SETTINGS = {
    "TITLE": "Assay LIMS API",
    "DESCRIPTION": "Mineral sample assay registry and report certification",
    "VERSION": "0.1.0",
    "SWAGGER_UI_DIST": "SIDECAR",
    "SWAGGER_UI_FAVICON_HREF": "SIDECAR",
    "REDOC_DIST": "SIDECAR",
}


# ===============================================================
# JWT
# ===============================================================
SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=config("JWT_ACCESS_MINUTES", default=30, cast=int)),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=config("JWT_REFRESH_DAYS", default=30, cast=int)),
    "ROTATE_REFRESH_TOKENS": True,
    "BLACKLIST_AFTER_ROTATION": True,
    "UPDATE_LAST_LOGIN": True,
    "AUTH_HEADER_TYPES": ("Bearer",),
}


# ===============================================================
# Assay workflow
# ===============================================================
FRONTEND_URL = config("FRONTEND_URL", default="https://rdcassay.africa")
SAMPLE_CODE_PREFIX = config("SAMPLE_CODE_PREFIX", default="RC")

# 0 disables the validity window on issued reports
REPORT_VALIDITY_DAYS = config("REPORT_VALIDITY_DAYS", default=0, cast=int)

UPLOAD_MAX_FILE_SIZE = config("UPLOAD_MAX_FILE_SIZE", default=10 * 1024 * 1024, cast=int)
UPLOAD_ALLOWED_TYPES = config(
    "UPLOAD_ALLOWED_TYPES",
    default="image/jpeg,image/png,application/pdf,text/csv",
    cast=Csv(),
)

OVERDUE_WARNING_THRESHOLD = 10
RECENT_ERROR_THRESHOLD = 5


# ===============================================================
# Email
# ===============================================================
ASSAY_EMAIL_NOTIFICATIONS = config("ASSAY_EMAIL_NOTIFICATIONS", default=False, cast=bool)
EMAIL_BACKEND = config(
    "EMAIL_BACKEND",
    default="django.core.mail.backends.smtp.EmailBackend",
)
EMAIL_HOST = config("SMTP_HOST", default="smtp.gmail.com")
EMAIL_PORT = config("SMTP_PORT", default=587, cast=int)
EMAIL_HOST_USER = config("SMTP_USER", default="")
EMAIL_HOST_PASSWORD = config("SMTP_PASS", default="")
EMAIL_USE_TLS = True
DEFAULT_FROM_EMAIL = config("FROM_EMAIL", default="RDC Assay Pro <noreply@rdcassay.africa>")


# ===============================================================
# Logging
# ===============================================================
LOG_LEVEL = config("LOG_LEVEL", default="INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "assay_core": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "django.request": {
            "handlers": ["console"],
            "level": "ERROR",
            "propagate": False,
        },
    },
}


# ===============================================================
# Celery configuration
# ===============================================================
CELERY_BROKER_URL = config("CELERY_BROKER_URL", default="redis://127.0.0.1:6379/0")
CELERY_RESULT_BACKEND = "django-db"

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"

CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_ALWAYS_EAGER = DJANGO_ENV in {"ci", "test"}

CELERY_BEAT_SCHEDULE = {
    "scan-overdue-samples-hourly": {
        "task": "assay_core.tasks.scan_overdue_samples",
        "schedule": crontab(minute=0),
        "args": (),
    }
}
