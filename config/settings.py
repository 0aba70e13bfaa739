from pathlib import Path
import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() == "true"
ALLOWED_HOSTS = [host.strip() for host in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if host.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "terminology",
]

MIDDLEWARE = [
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "config.urls"
WSGI_APPLICATION = "config.wsgi.application"

# Resources live in Elasticsearch or on disk; no relational models
DATABASES = {}

REST_FRAMEWORK = {
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [],
    "UNAUTHENTICATED_USER": None,
}

# Terminology backend
TERMINOLOGY_STORE = os.getenv("TERMINOLOGY_STORE", "elasticsearch")
TERMINOLOGY_INDEX_PREFIX = os.getenv("TERMINOLOGY_INDEX_PREFIX", "fhir")
TERMINOLOGY_RESOURCE_DIR = os.getenv("TERMINOLOGY_RESOURCE_DIR", str(BASE_DIR / "resources"))
TERMINOLOGY_LOG_LEVEL = os.getenv("TERMINOLOGY_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "terminology": {
            "handlers": ["console"],
            "level": TERMINOLOGY_LOG_LEVEL,
            "propagate": False,
        },
        "terminology_api": {
            "handlers": ["console"],
            "level": TERMINOLOGY_LOG_LEVEL,
            "propagate": False,
        },
    },
}

USE_TZ = True
TIME_ZONE = "UTC"
