"""
Django settings for the SnapClass project.

Only the pieces the capture / training stack needs are configured: a
SQLite database for ``Sample`` rows, file storage for uploaded images,
the model artefact directory, and console logging.

Environment overrides
---------------------
DJANGO_SECRET_KEY    – secret key (a development key is used otherwise).
DJANGO_DEBUG         – "1" / "true" enables debug mode.
SNAPCLASS_DATA_DIR   – root for db.sqlite3, media/ and models/.
SNAPCLASS_LOG_LEVEL  – log level for the project loggers (default INFO).
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

DATA_DIR = Path(os.environ.get("SNAPCLASS_DATA_DIR", BASE_DIR / "data"))

SECRET_KEY = os.environ.get(
    "DJANGO_SECRET_KEY",
    "django-insecure-snapclass-development-key",
)

DEBUG = os.environ.get("DJANGO_DEBUG", "1").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    "capture",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "snapclass.urls"

WSGI_APPLICATION = "snapclass.wsgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": DATA_DIR / "db.sqlite3",
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

STATIC_URL = "/static/"

# Uploaded sample images live under MEDIA_ROOT/uploads/, served at /media/
MEDIA_URL = "/media/"
MEDIA_ROOT = DATA_DIR / "media"

# Checkpoint directory, frozen-extractor weights
MODELS_ROOT = DATA_DIR / "models"

# Base64 image uploads arrive inside JSON bodies
DATA_UPLOAD_MAX_MEMORY_SIZE = 50 * 1024 * 1024

LOG_LEVEL = os.environ.get("SNAPCLASS_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {
            "format": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "plain",
        },
    },
    "loggers": {
        "capture": {"handlers": ["console"], "level": LOG_LEVEL},
        "training": {"handlers": ["console"], "level": LOG_LEVEL},
        "django": {"handlers": ["console"], "level": "WARNING"},
    },
}
