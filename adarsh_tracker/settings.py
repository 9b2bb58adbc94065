"""
Django settings for the village development tracker.

Everything deployment-specific is read from the environment; the defaults
give a local SQLite database suitable for development and the test suite.
Row locks (select_for_update) only take effect on PostgreSQL, so set
TRACKER_DB_ENGINE=django.db.backends.postgresql in production. On SQLite,
write transactions start with BEGIN IMMEDIATE instead, which serializes
writers on the whole database file.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [
    host.strip()
    for host in os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
    if host.strip()
]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.sessions",
    "rest_framework",
    "tracker.apps.TrackerConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "adarsh_tracker.urls"
WSGI_APPLICATION = "adarsh_tracker.wsgi.application"

DB_ENGINE = os.environ.get("TRACKER_DB_ENGINE", "django.db.backends.sqlite3")

if DB_ENGINE.endswith("sqlite3"):
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": os.environ.get("TRACKER_DB_NAME", str(BASE_DIR / "db.sqlite3")),
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "timeout": 20,
            },
            # On disk so concurrent test threads contend for the same file lock
            "TEST": {"NAME": str(BASE_DIR / "test_db.sqlite3")},
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": DB_ENGINE,
            "NAME": os.environ.get("TRACKER_DB_NAME", "adarsh_tracker"),
            "USER": os.environ.get("TRACKER_DB_USER", ""),
            "PASSWORD": os.environ.get("TRACKER_DB_PASSWORD", ""),
            "HOST": os.environ.get("TRACKER_DB_HOST", "localhost"),
            "PORT": os.environ.get("TRACKER_DB_PORT", "5432"),
        }
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": ["rest_framework.authentication.SessionAuthentication"],
    "EXCEPTION_HANDLER": "tracker.views.api_exception_handler",
    "TEST_REQUEST_DEFAULT_FORMAT": "json",
}

# Called after commit with (village_id, reason=...) whenever a scoring input changes
TRACKER_SCORE_RECOMPUTE_HANDLER = os.environ.get(
    "TRACKER_SCORE_RECOMPUTE_HANDLER",
    "tracker.application.scoring.recompute_quietly",
)

LOG_LEVEL = os.environ.get("TRACKER_LOG_LEVEL", "INFO").upper()

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
        "tracker": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
