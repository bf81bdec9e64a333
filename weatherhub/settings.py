from pathlib import Path
import logging
import os
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger("weatherhub")

BASE_DIR = Path(__file__).resolve().parent.parent


def env_int(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %s", key, raw, default)
        return default


def interval_minutes(name: str, default: int) -> int:
    """SCHEDULER_<name> wins over the bare <name> kept for older deployments."""
    return env_int(f"SCHEDULER_{name}", env_int(name, default))


SECRET_KEY = os.getenv("SECRET_KEY", 'django-insecure-fallback-key-for-dev')

DEBUG = os.getenv("DEBUG", "false").lower() == 'true'

DEV_MODE = os.getenv("DEV_MODE", "false").lower() == 'true'

ALLOWED_HOSTS = [host for host in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if host]

# Weather providers
GOOGLE_MAPS_API_KEY = os.getenv("GOOGLE_MAPS_API_KEY", "")
GOOGLE_WEATHER_URL = os.getenv("GOOGLE_WEATHER_URL", "https://weather.googleapis.com/v1/")
GOOGLE_GEOCODE_URL = os.getenv("GOOGLE_GEOCODE_URL", "https://maps.googleapis.com/maps/api/geocode/json")

OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "")
OPENWEATHER_ONECALL_URL = os.getenv("OPENWEATHER_ONECALL_URL", "https://api.openweathermap.org/data/3.0/onecall")

OPEN_METEO_URL = os.getenv("OPEN_METEO_URL", "https://api.open-meteo.com/v1/forecast")

PROVIDER_TIMEOUT = env_int("PROVIDER_TIMEOUT", 10)

# Background refresh
SCHEDULER_CURRENT_INTERVAL_MIN = interval_minutes("CURRENT_INTERVAL_MIN", 10)
SCHEDULER_HOURLY_INTERVAL_MIN = interval_minutes("HOURLY_INTERVAL_MIN", 60)
SCHEDULER_DAILY_INTERVAL_MIN = interval_minutes("DAILY_INTERVAL_MIN", 720)

INSTALLED_APPS = [
    'django.contrib.auth',
    'django.contrib.contenttypes',

    'rest_framework',
    'django_filters',

    'forecasts',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'weatherhub.urls'

WSGI_APPLICATION = 'weatherhub.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DB_NAME'),
        'USER': os.getenv('DB_USER'),
        'PASSWORD': os.getenv('DB_PASSWORD'),
        'HOST': os.getenv('DB_HOST', 'db'),
        'PORT': os.getenv('DB_PORT', '5432'),
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django_redis.cache.RedisCache',
        'LOCATION': os.getenv('REDIS_URL', 'redis://redis:6379/1'),
        'OPTIONS': {
            'CLIENT_CLASS': 'django_redis.client.DefaultClient',
        },
        'KEY_PREFIX': 'weatherhub',
    }
}

REST_FRAMEWORK = {
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [],
    'UNAUTHENTICATED_USER': None,
}

LANGUAGE_CODE = 'en-us'

TIME_ZONE = 'UTC'

USE_I18N = True

USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOG_DIR = BASE_DIR / "logs"
LOG_DIR.mkdir(exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,

    "formatters": {
        "structured": {
            "format": 'timestamp=%(asctime)s level=%(levelname)s module=%(name)s message="%(message)s" event=%(event)s kind=%(kind)s location=%(location)s provider=%(provider)s cache_tier=%(cache_tier)s latency=%(latency)s error=%(error)s',
            "style": "%",
        },
        "json": {
            "()": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s %(event)s %(kind)s %(location)s %(provider)s %(cache_tier)s %(latency)s %(error)s",
        },
    },

    "filters": {
        "add_extra_fields": {
            "()": "forecasts.logging_filters.ExtraFieldsFilter",
        },
    },

    "handlers": {
        "console_structured": {
            "class": "logging.StreamHandler",
            "formatter": "structured",
            "filters": ["add_extra_fields"],
        },

        "file_structured": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "structured_weatherhub.log",
            "formatter": "structured",
            "filters": ["add_extra_fields"],
        },

        "file_json": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "json_weatherhub.log",
            "formatter": "json",
            "filters": ["add_extra_fields"],
        },

        "errors_structured": {
            "class": "logging.FileHandler",
            "filename": LOG_DIR / "errors_structured.log",
            "formatter": "structured",
            "level": "ERROR",
            "filters": ["add_extra_fields"],
        },
    },

    "loggers": {
        "django": {
            "handlers": ["console_structured"],
            "level": "INFO",
            "propagate": False,
        },

        "weatherhub": {
            "handlers": ["console_structured", "file_structured", "file_json", "errors_structured"],
            "level": LOG_LEVEL,
            "propagate": False,
        },

        "apscheduler": {
            "handlers": ["console_structured"],
            "level": "WARNING",
            "propagate": False,
        },

        "django.request": {
            "handlers": ["errors_structured", "console_structured"],
            "level": "ERROR",
            "propagate": False,
        },
    },
}
