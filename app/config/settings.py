"""
Django settings for the payout service.

This is the single settings file for all environments. Configuration is driven
by environment variables using django-environ, following the 12-factor app
methodology.

Environment files:
    - .env.development: Development settings (DEBUG=True)
    - .env.production: Production settings (DEBUG=False)

For the full list of settings and their values, see:
https://docs.djangoproject.com/en/5.2/ref/settings/
"""

import os
from decimal import Decimal
from pathlib import Path

import environ

# =============================================================================
# Path Configuration
# =============================================================================
BASE_DIR = Path(__file__).resolve().parent.parent

# =============================================================================
# Environment Configuration
# =============================================================================
env = environ.Env(
    DEBUG=(bool, False),
    ALLOWED_HOSTS=(list, []),
    LOG_LEVEL=(str, "INFO"),
)

# In Docker, env vars are passed directly; .env files are for local dev
env_file = os.environ.get("ENV_FILE", BASE_DIR.parent / ".env.development")
if Path(env_file).exists():
    environ.Env.read_env(env_file)

# =============================================================================
# Core Settings
# =============================================================================
# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = env("SECRET_KEY")

DEBUG = env("DEBUG")

ALLOWED_HOSTS = env("ALLOWED_HOSTS")

# =============================================================================
# Application Definition
# =============================================================================
INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    # Local apps
    "core",
    "payouts",
]

MIDDLEWARE = []

# =============================================================================
# Database Configuration
# =============================================================================
DATABASES = {
    "default": env.db(
        "DATABASE_URL",
        default="postgres://postgres:postgres@db:5432/app_dev",
    ),
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.postgresql":
    DATABASES["default"]["OPTIONS"] = {
        "connect_timeout": 10,
    }

# =============================================================================
# Cache Configuration
# =============================================================================
# The default alias also backs payouts.locks.PayoutLock through
# django_redis.get_redis_connection("default").
CACHES = {
    "default": {
        "BACKEND": "django_redis.cache.RedisCache",
        "LOCATION": env("REDIS_URL", default="redis://redis:6379/0"),
        "OPTIONS": {
            "CLIENT_CLASS": "django_redis.client.DefaultClient",
        },
    }
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
CELERY_TASK_ALWAYS_EAGER = env.bool("CELERY_TASK_ALWAYS_EAGER", default=False)

# =============================================================================
# Stripe Configuration (ACH payouts)
# =============================================================================
# Use test keys (sk_test_...) for development, live keys (sk_live_...) for production
STRIPE_SECRET_KEY = env("STRIPE_SECRET_KEY", default="")

# Keep low for responsive error handling; the payout router enforces its own
# upper bound on top of this.
STRIPE_API_TIMEOUT_SECONDS = env.int("STRIPE_API_TIMEOUT_SECONDS", default=10)

# Connected account that receives operator bank accounts when the payment
# method does not carry its own stripe_account_id.
STRIPE_PAYOUT_ACCOUNT_ID = env("STRIPE_PAYOUT_ACCOUNT_ID", default="")

# =============================================================================
# Coinbase Configuration (wallet payouts)
# =============================================================================
COINBASE_API_KEY = env("COINBASE_API_KEY", default="")
COINBASE_API_URL = env("COINBASE_API_URL", default="https://api.coinbase.com/v2")

# Must stay below PAYOUT_PROVIDER_TIMEOUT_SECONDS
COINBASE_API_TIMEOUT_SECONDS = env.float("COINBASE_API_TIMEOUT_SECONDS", default=15.0)

# Platform escrow wallet that funds wallet payouts
ESCROW_WALLET_ID = env("ESCROW_WALLET_ID", default="")

# =============================================================================
# Payout Configuration
# =============================================================================
# Upper bound on a single provider call, enforced by the payout router. Must
# exceed every adapter's own budget (2 x STRIPE_API_TIMEOUT_SECONDS for ACH,
# COINBASE_API_TIMEOUT_SECONDS for wallet) so adapters report their own errors.
PAYOUT_PROVIDER_TIMEOUT_SECONDS = env.float(
    "PAYOUT_PROVIDER_TIMEOUT_SECONDS", default=30.0
)

# Worker threads for batch payouts (1 = process sequentially in the caller)
PAYOUT_BATCH_MAX_WORKERS = env.int("PAYOUT_BATCH_MAX_WORKERS", default=4)

# Wallet transfers: percentage of the gross amount plus a flat network fee
PAYOUT_WALLET_FEE_RATE = Decimal(env("PAYOUT_WALLET_FEE_RATE", default="0.01"))
PAYOUT_WALLET_NETWORK_FEE = Decimal(env("PAYOUT_WALLET_NETWORK_FEE", default="0.10"))

# Bank wires: flat fee in USD
PAYOUT_WIRE_FLAT_FEE = Decimal(env("PAYOUT_WIRE_FLAT_FEE", default="25.00"))

# Dotted paths to the booking / operator lookups used by payout tasks
PAYOUT_BOOKING_DIRECTORY = env("PAYOUT_BOOKING_DIRECTORY", default="")
PAYOUT_OPERATOR_DIRECTORY = env("PAYOUT_OPERATOR_DIRECTORY", default="")

# =============================================================================
# Internationalization
# =============================================================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# =============================================================================
# Default Primary Key Field Type
# =============================================================================
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Logging Configuration
# =============================================================================
LOG_LEVEL = env("LOG_LEVEL")

# Log file name determined by service (web, celery-worker)
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
        "file": {
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
            # Max 10MB per file, keeps 5 backups
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "filename": LOG_DIR / LOG_FILE_NAME,
            "maxBytes": 10 * 1024 * 1024,
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
        "payouts": {
            "handlers": ["console", "file"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}
