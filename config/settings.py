"""Django settings for the Backlog Bard project."""

from pathlib import Path

import environ

BASE_DIR = Path(__file__).resolve().parent.parent

env = environ.Env(
    DEBUG=(bool, False),
)
environ.Env.read_env(BASE_DIR / ".env")

SECRET_KEY = env("DJANGO_SECRET_KEY")
DEBUG = env("DEBUG")
ALLOWED_HOSTS = env.list("ALLOWED_HOSTS", default=["*"])

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rpg",
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

ROOT_URLCONF = "config.urls"

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

WSGI_APPLICATION = "config.wsgi.application"

DATABASES = {"default": env.db("DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}")}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.redis.RedisCache",
        "LOCATION": env("REDIS_URL", default="redis://localhost:6379/0"),
    }
}

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "console": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "console"},
    },
    "loggers": {
        "rpg": {"handlers": ["console"], "level": env("LOG_LEVEL", default="INFO")},
        "integrations": {"handlers": ["console"], "level": env("LOG_LEVEL", default="INFO")},
    },
}

# Celery
CELERY_BROKER_URL = env("REDIS_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = env("REDIS_URL", default="redis://localhost:6379/0")
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"

# Slack
SLACK_BOT_TOKEN = env("SLACK_BOT_TOKEN", default="")
SLACK_SIGNING_SECRET = env("SLACK_SIGNING_SECRET", default="")
SLACK_APP_TOKEN = env("SLACK_APP_TOKEN", default="")
SLACK_TIMEOUT = env.int("SLACK_TIMEOUT", default=10)

# JIRA
JIRA_BASE_URL = env("JIRA_BASE_URL", default="")
JIRA_API_EMAIL = env("JIRA_API_EMAIL", default="")
JIRA_API_TOKEN = env("JIRA_API_TOKEN", default="")
HTTP_TIMEOUT = env.float("HTTP_TIMEOUT", default=10.0)

# Model service (Ollama-compatible)
OLLAMA_API_URL = env("OLLAMA_API_URL", default="http://localhost:11434")
OLLAMA_API_KEY = env("OLLAMA_API_KEY", default="")
NARRATIVE_MODEL = env("NARRATIVE_MODEL", default="jira-storyteller:latest")
NARRATIVE_OPTIONS = {
    "temperature": env.float("NARRATIVE_TEMPERATURE", default=0.8),
    "top_p": env.float("NARRATIVE_TOP_P", default=0.9),
    "top_k": env.int("NARRATIVE_TOP_K", default=40),
    "num_predict": env.int("NARRATIVE_NUM_PREDICT", default=100),
}
LLM_TIMEOUT = env.float("LLM_TIMEOUT", default=30.0)

# Pipeline
WEBHOOK_REPLAY_WINDOW = env.int("WEBHOOK_REPLAY_WINDOW", default=300)
CHAT_DEDUP_TTL = env.int("CHAT_DEDUP_TTL", default=600)
# "suppress" skips chat posts for a (player, issue, status) already narrated;
# "repost" sends the stored narrative again.
RPG_REDELIVERY_POLICY = env("RPG_REDELIVERY_POLICY", default="suppress")
GUILD_MAX_MEMBERS = env.int("GUILD_MAX_MEMBERS", default=50)
