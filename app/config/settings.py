"""
Django settings for the chunked upload engine.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ, following the 12-factor app
methodology.

Environment files:
    - .env.development: Development settings (DEBUG=True, SQLite)
    - .env.production: Production settings (PostgreSQL, Redis broker)

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/topics/settings/

For the full list of settings and their values, see:
https://docs.djangoproject.com/en/5.2/ref/settings/
"""

import os
from pathlib import Path

import environ

# =============================================================================
# Path Configuration
# =============================================================================
# Build paths inside the project: BASE_DIR / 'subdir'
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
# Initialize django-environ
env = environ.Env(
    # Set default values and casting for common settings
    DEBUG=(bool, False),  # Default to False for safety
    LOG_LEVEL=(str, "INFO"),
)

# Read environment file based on ENV_FILE or default to development
# Note: In Docker, env vars are passed directly; .env files are for local dev
env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY", default="insecure-dev-key-change-me")

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = env("DEBUG")

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    # Django core apps
    "django.contrib.contenttypes",
    # Third-party apps
    "django_celery_beat",
    # Local apps
    "core",
    "uploads",
]

# =============================================================================
# Database Configuration
# =============================================================================
# https://docs.djangoproject.com/en/5.2/ref/settings/#databases
# PostgreSQL via psycopg3 in deployment; SQLite for local runs and tests
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default=f"sqlite:///{BASE_DIR.parent / 'db.sqlite3'}",
    ),
}

# Use psycopg3's native connection options
if DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
    DATABASES["default"]["OPTIONS"] = {
        "connect_timeout": 10,
    }

# =============================================================================
# Celery Configuration
# =============================================================================
CELERY_BROKER_URL = env("CELERY_BROKER_URL", default="redis://redis:6379/1")
CELERY_RESULT_BACKEND = env("CELERY_RESULT_BACKEND", default="redis://redis:6379/1")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = "UTC"
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"

# =============================================================================
# Internationalization
# =============================================================================
# https://docs.djangoproject.com/en/5.2/topics/i18n/
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# =============================================================================
# Media Files (Merged Artifacts)
# =============================================================================
MEDIA_URL = env("MEDIA_URL", default="/media/")
MEDIA_ROOT = Path(env("MEDIA_ROOT", default=str(BASE_DIR.parent / "media_root")))

# =============================================================================
# Chunked Upload Configuration
# =============================================================================
# Temporary chunk storage, one directory per upload session
CHUNKED_UPLOAD_TEMP_DIR = env(
    "CHUNKED_UPLOAD_TEMP_DIR",
    default=str(MEDIA_ROOT / "chunks"),
)

# Default chunk size when the client does not choose one (5MB)
CHUNKED_UPLOAD_CHUNK_SIZE = env.int("CHUNKED_UPLOAD_CHUNK_SIZE", default=5 * 1024 * 1024)

# Lifetime of an unfinished upload session
CHUNKED_UPLOAD_EXPIRY_HOURS = env.int("CHUNKED_UPLOAD_EXPIRY_HOURS", default=24)

# Maximum concurrently active sessions per process
CHUNKED_UPLOAD_MAX_ACTIVE_SESSIONS = env.int("CHUNKED_UPLOAD_MAX_ACTIVE_SESSIONS", default=5)

# Content digest algorithm (any hashlib name; clients send MD5)
CHUNKED_UPLOAD_DIGEST_ALGORITHM = env("CHUNKED_UPLOAD_DIGEST_ALGORITHM", default="md5")

# File digest memo cache
CHUNKED_UPLOAD_DIGEST_CACHE_TTL_SECONDS = env.int(
    "CHUNKED_UPLOAD_DIGEST_CACHE_TTL_SECONDS", default=300
)
CHUNKED_UPLOAD_DIGEST_CACHE_MAX_ENTRIES = env.int(
    "CHUNKED_UPLOAD_DIGEST_CACHE_MAX_ENTRIES", default=1024
)

# Read size used while streaming chunks into the blob store (64KB)
CHUNKED_UPLOAD_MERGE_BUFFER_SIZE = env.int("CHUNKED_UPLOAD_MERGE_BUFFER_SIZE", default=64 * 1024)

# Storage prefix for merged artifacts ({prefix}/{category}/{digest}{ext})
CHUNKED_UPLOAD_ARTIFACT_PREFIX = env("CHUNKED_UPLOAD_ARTIFACT_PREFIX", default="artifacts")

# Dotted path of the catalog that records merged artifacts
CHUNKED_UPLOAD_CATALOG = env(
    "CHUNKED_UPLOAD_CATALOG",
    default="uploads.services.catalog.ModelArtifactCatalog",
)

# Re-hash stored artifacts on dedup hits (local storage only)
CHUNKED_UPLOAD_VERIFY_DEDUP_CONTENT = env.bool("CHUNKED_UPLOAD_VERIFY_DEDUP_CONTENT", default=False)

# Chunk directories without a session must be at least this old to be swept
CHUNKED_UPLOAD_ORPHAN_GRACE_SECONDS = env.int("CHUNKED_UPLOAD_ORPHAN_GRACE_SECONDS", default=3600)

# EXPIRED session records are deleted after this many days
CHUNKED_UPLOAD_EXPIRED_RETENTION_DAYS = env.int("CHUNKED_UPLOAD_EXPIRED_RETENTION_DAYS", default=7)

# =============================================================================
# Cache Configuration
# =============================================================================
# https://docs.djangoproject.com/en/5.2/topics/cache/
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "default",
    },
    # File digests are keyed by local paths, so this cache stays per process
    "upload_digests": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "upload-digests",
        "TIMEOUT": CHUNKED_UPLOAD_DIGEST_CACHE_TTL_SECONDS,
        "OPTIONS": {
            "MAX_ENTRIES": CHUNKED_UPLOAD_DIGEST_CACHE_MAX_ENTRIES,
        },
    },
}

# =============================================================================
# Default Primary Key Field Type
# =============================================================================
# https://docs.djangoproject.com/en/5.2/ref/settings/#default-auto-field
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (worker, beat)
# Set via LOG_FILE_NAME environment variable
LOG_FILE_NAME = env("LOG_FILE_NAME", default="django.log")
LOG_DIR = BASE_DIR / "logs"

# Ensure log directory exists (handles local development without Docker)
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
        "file": {
            # Detailed format for persistent logs with timestamp, level, logger name, and location
            "format": "[{asctime}] {levelname} {name} {module}:{lineno} - {message}",
            "style": "{",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
        "file": {
            # Rotating file handler prevents unbounded disk usage
            # Max 10MB per file, keeps 5 backups
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / LOG_FILE_NAME,
            "maxBytes": 10 * 1024 * 1024,  # 10MB
            "backupCount": 5,
            "formatter": "file",
            "encoding": "utf-8",
        },
    },
    "root": {
        "handlers": ["console", "file"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "celery": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "uploads": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
