"""
Base settings for projects using helpdesk-access.
Projects import * from this file in their own settings.py.
"""

import copy
import os
from pathlib import Path

from helpdesk_access.defaults import LIBRARY_DEFAULTS

BASE_DIR = Path(os.getcwd())

# SECURITY WARNING: projects MUST override this or set the env var.
SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY", "django-insecure-helpdesk-access-default-key-change-me"
)

DEBUG = os.environ.get("DJANGO_DEBUG", "False").lower() == "true"

ALLOWED_HOSTS = os.environ.get("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    # Third-party apps
    "graphene_django",
    # Library apps
    "helpdesk_access",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "helpdesk_access.auth.middleware.JWTAuthenticationMiddleware",
]

ROOT_URLCONF = "helpdesk_access.urls"

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

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

GRAPHENE = {
    "SCHEMA": "helpdesk_access.graphql.schema.schema",
    "MIDDLEWARE": [],
}

# JWT
JWT_ACCESS_TOKEN_LIFETIME = int(os.environ.get("JWT_ACCESS_TOKEN_LIFETIME", 3600 * 24))

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"console": {"class": "logging.StreamHandler"}},
    "loggers": {
        "helpdesk_access": {
            "handlers": ["console"],
            "level": os.environ.get("HELPDESK_ACCESS_LOG_LEVEL", "INFO"),
        },
    },
}

# Load library defaults into Django settings
HELPDESK_ACCESS = copy.deepcopy(LIBRARY_DEFAULTS)
