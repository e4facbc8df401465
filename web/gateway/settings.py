"""Django settings for the BundleHub gateway.

Every value that differs between environments is read from the process
environment so the same image runs locally, in CI and in production.
"""

import os
from pathlib import Path


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "change-me-in-production")
DEBUG = _env_bool("DJANGO_DEBUG")
ALLOWED_HOSTS = [h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "*").split(",") if h.strip()]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.sessions",
    "rest_framework",
    "gateway.apps.GatewayConfig",
    "apps.catalog",
    "apps.orders",
    "apps.storefront",
    "apps.monitoring",
]

MIDDLEWARE = [
    "gateway.middleware.RequestIdMiddleware",
    "gateway.middleware.ApiSizeLimitMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
]

ROOT_URLCONF = "gateway.urls"
WSGI_APPLICATION = "gateway.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {"context_processors": []},
    },
]

DATABASES = {
    "default": {
        "ENGINE": os.getenv("DB_ENGINE", "django.db.backends.postgresql"),
        "NAME": os.getenv("DB_NAME", "bundlehub"),
        "USER": os.getenv("DB_USER", "bundlehub"),
        "PASSWORD": os.getenv("DB_PASSWORD", "bundlehub-pass"),
        "HOST": os.getenv("DB_HOST", "web-db"),
        "PORT": os.getenv("DB_PORT", "5432"),
        "CONN_MAX_AGE": int(os.getenv("DB_CONN_MAX_AGE", "60")),
        "CONN_HEALTH_CHECKS": True,
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
TIME_ZONE = "UTC"
USE_TZ = True

MEDIA_ROOT = os.getenv("MEDIA_ROOT", str(BASE_DIR / "media"))
MEDIA_URL = os.getenv("MEDIA_URL", "/media/")

# ---- REST framework ----
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "EXCEPTION_HANDLER": "gateway.errors.api_exception_handler",
    "UNAUTHENTICATED_USER": "django.contrib.auth.models.AnonymousUser",
}

# Fixed-window limits per scope: (max requests, window seconds)
RATE_LIMITS = {
    "general": (int(os.getenv("RATE_LIMIT_GENERAL", "100")), 15 * 60),
    "otp": (int(os.getenv("RATE_LIMIT_OTP", "10")), 15 * 60),
    "upload": (int(os.getenv("RATE_LIMIT_UPLOAD", "20")), 60 * 60),
}

API_MAX_BYTES = int(os.getenv("API_MAX_BYTES", str(11 * 1024 * 1024)))
BUNDLE_ARCHIVE_MAX_BYTES = int(os.getenv("BUNDLE_ARCHIVE_MAX_BYTES", str(100 * 1024 * 1024)))
# larger bodies allowed under these prefixes (multipart overhead included)
API_MAX_BYTES_BY_PREFIX = {"/api/admin/bundles/": BUNDLE_ARCHIVE_MAX_BYTES + 1024 * 1024}

# ---- Email ----
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
EMAIL_PORT = int(os.getenv("EMAIL_PORT", "587"))
EMAIL_HOST_USER = os.getenv("EMAIL_HOST_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("EMAIL_HOST_PASSWORD", "")
EMAIL_USE_TLS = _env_bool("EMAIL_USE_TLS", "true")
DEFAULT_FROM_EMAIL = os.getenv("DEFAULT_FROM_EMAIL", "BundleHub <no-reply@bundlehub.store>")

# ---- Checkout ----
OTP_EXPIRY_MINUTES = int(os.getenv("OTP_EXPIRY_MINUTES", "10"))
PAYMENT_PROOF_MAX_BYTES = int(os.getenv("PAYMENT_PROOF_MAX_BYTES", str(10 * 1024 * 1024)))
IDEMPOTENCY_LOCK_SECONDS = int(os.getenv("IDEMPOTENCY_LOCK_SECONDS", "60"))
PAYMENT_QR_URL = os.getenv(
    "PAYMENT_QR_URL",
    "https://res.cloudinary.com/dklqhgo8r/image/upload/v1758137642/cachesm-qr-1758137393758_hztjjq.jpg",
)
UPI_PAYEE_ADDRESS = os.getenv("UPI_PAYEE_ADDRESS", "merchant@upi")
UPI_PAYEE_NAME = os.getenv("UPI_PAYEE_NAME", "BundleHub")
UPI_CURRENCY = os.getenv("UPI_CURRENCY", "INR")

# ---- Storage retries ----
STORAGE_RETRY_ATTEMPTS = int(os.getenv("STORAGE_RETRY_ATTEMPTS", "3"))
HEALTH_RETRY_ATTEMPTS = int(os.getenv("HEALTH_RETRY_ATTEMPTS", "2"))
STORAGE_RETRY_BACKOFF_BASE = float(os.getenv("STORAGE_RETRY_BACKOFF_BASE", "1.0"))

# ---- Blob storage service ----
USE_HTTP_ADAPTERS = _env_bool("USE_HTTP_ADAPTERS")
STORAGE_BASE_URL = os.getenv("STORAGE_BASE_URL", "http://storage:9003")
HTTP_TIMEOUT_SECS = float(os.getenv("HTTP_TIMEOUT_SECS", "5.0"))
HTTP_RETRY_MAX = int(os.getenv("HTTP_RETRY_MAX", "3"))
HTTP_RETRY_BACKOFF_BASE = float(os.getenv("HTTP_RETRY_BACKOFF_BASE", "0.15"))
HTTP_RETRY_MAX_SLEEP = float(os.getenv("HTTP_RETRY_MAX_SLEEP", "0.5"))
HTTP_CIRCUIT_FAIL_THRESHOLD = int(os.getenv("HTTP_CIRCUIT_FAIL_THRESHOLD", "5"))
HTTP_CIRCUIT_RESET_TIMEOUT = float(os.getenv("HTTP_CIRCUIT_RESET_TIMEOUT", "30.0"))

# ---- Logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "gateway.logging_filters.RequestIdFilter"},
    },
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["request_id"],
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
    },
}
