"""
Base settings for projects using rail-ci.
Users import * from this file in their project's settings.py.
"""

import copy
import os
from pathlib import Path

from rail_ci.defaults import LIBRARY_DEFAULTS

# Placeholder; the project's settings.py redefines it relative to itself.
BASE_DIR = Path(os.getcwd())

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY", "django-insecure-rail-ci-default-key-change-me"
)

DEBUG = os.environ.get("DJANGO_DEBUG", "False").lower() == "true"

ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party apps
    "graphene_django",
    # Framework apps
    "rail_ci",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

ROOT_URLCONF = "rail_ci.urls"

# Partitioning and loose foreign key helpers need PostgreSQL; sqlite works
# for everything else.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": BASE_DIR / "db.sqlite3",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

GRAPHENE = {
    "SCHEMA": "rail_ci.schema.schema",
    "MIDDLEWARE": [],
}
if DEBUG:
    GRAPHENE["MIDDLEWARE"].append("graphene_django.debug.DjangoDebugMiddleware")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "rail_ci_context": {"()": "rail_ci.logging_context.ContextFilter"},
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["rail_ci_context"],
        },
    },
    "loggers": {
        "rail_ci": {
            "handlers": ["console"],
            "level": os.environ.get("RAIL_CI_LOG_LEVEL", "INFO"),
        },
    },
}

# Load library defaults into Django settings
RAIL_CI = copy.deepcopy(LIBRARY_DEFAULTS)
RAIL_CI["routing"]["external_url"] = os.environ.get(
    "RAIL_CI_EXTERNAL_URL", RAIL_CI["routing"]["external_url"]
)
