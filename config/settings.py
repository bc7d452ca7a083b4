"""
Django settings for the org donation distribution service.

Values are read from the process environment; see config/env.py for the
dotenv files loaded in local development.
"""

from pathlib import Path

from config.env import env_bool, env_float, env_int, env_str, load_env

BASE_DIR = Path(__file__).resolve().parent.parent

load_env(BASE_DIR)

SECRET_KEY = env_str("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = [h for h in env_str("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1").split(",") if h]

INSTALLED_APPS = [
    "config.apps.DonationsAdminConfig",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_object_actions",
    "apps.ledger",
    "apps.locks",
    "apps.crawler",
    "apps.distribution",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": env_str("DB_ENGINE", "django.db.backends.sqlite3"),
        "NAME": env_str("DB_NAME", str(BASE_DIR / "db.sqlite3")),
        "USER": env_str("DB_USER"),
        "PASSWORD": env_str("DB_PASSWORD"),
        "HOST": env_str("DB_HOST"),
        "PORT": env_str("DB_PORT"),
    }
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3":
    # File-backed so threaded tests get real per-connection locking.
    DATABASES["default"]["TEST"] = {"NAME": str(BASE_DIR / "test_db.sqlite3")}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

USE_TZ = True
TIME_ZONE = "UTC"

STATIC_URL = "static/"

# Artifacts handed between split-pipeline stages live in the "donation_state"
# storage. Point it at an S3-compatible backend in production.
STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage",
    },
    "donation_state": {
        "BACKEND": env_str(
            "DONATIONS_STATE_STORAGE_BACKEND",
            "django.core.files.storage.FileSystemStorage",
        ),
        "OPTIONS": {
            "location": env_str("DONATIONS_STATE_DIR", str(BASE_DIR / "var" / "donation_state")),
        },
    },
}

# --- Celery ---
CELERY_BROKER_URL = env_str("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = env_str("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
# Redeliver a stage message if the worker dies mid-task (at-least-once).
CELERY_TASK_ACKS_LATE = env_bool("CELERY_TASK_ACKS_LATE", True)
# An invocation may not outlive the org lock TTL.
CELERY_TASK_TIME_LIMIT = env_int("CELERY_TASK_TIME_LIMIT", 900)

# --- Donation distribution ---
DONATIONS_LOCK_TTL_SECONDS = env_int("DONATIONS_LOCK_TTL_SECONDS", 900)
DONATIONS_WEIGHTING_ORACLE = env_str("DONATIONS_WEIGHTING_ORACLE")
DONATIONS_COMPENSATION_EPSILON = env_float("DONATIONS_COMPENSATION_EPSILON", 0.0)
DONATIONS_GITHUB_TOKEN_PROVIDER = env_str(
    "DONATIONS_GITHUB_TOKEN_PROVIDER",
    "apps.crawler.tokens.GithubAppTokenProvider",
)
DONATIONS_SCRAPE_TASK = "apps.distribution.tasks.scrape_dependencies"
DONATIONS_WEIGH_TASK = "apps.distribution.tasks.weigh_dependencies"
DONATIONS_DISTRIBUTE_TASK = "apps.distribution.tasks.distribute_weighed_donation"

# --- GitHub crawler ---
GITHUB_API_URL = env_str("GITHUB_API_URL", "https://api.github.com")
GITHUB_TOKEN = env_str("GITHUB_TOKEN")
GITHUB_APP_JWT_FACTORY = env_str("GITHUB_APP_JWT_FACTORY")
GITHUB_MAX_CONCURRENT_FETCHES = env_int("GITHUB_MAX_CONCURRENT_FETCHES", 30)
GITHUB_MIN_REQUEST_INTERVAL = env_float("GITHUB_MIN_REQUEST_INTERVAL", 0.75)
GITHUB_RATE_LIMIT_FLOOR = env_int("GITHUB_RATE_LIMIT_FLOOR", 5)
GITHUB_MAX_RETRIES = env_int("GITHUB_MAX_RETRIES", 3)
GITHUB_REQUEST_TIMEOUT = env_int("GITHUB_REQUEST_TIMEOUT", 30)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": env_str("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "apps.crawler": {"level": env_str("CRAWLER_LOG_LEVEL", "INFO")},
    },
}
