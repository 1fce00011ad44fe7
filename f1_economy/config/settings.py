"""
Django settings for the f1_economy project.

Environment variables:
    DJANGO_SECRET_KEY, DJANGO_DEBUG, DJANGO_ALLOWED_HOSTS
    SLACK_WEBHOOK_URL
    AUTO_LOCK_FLOW_RETRIES, AUTO_LOCK_FLOW_RETRY_DELAY, AUTO_LOCK_FLOW_TIMEOUT
    ECONOMY_TASK_RETRIES, ECONOMY_TASK_RETRY_DELAY
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-dev-only-key')

DEBUG = os.environ.get('DJANGO_DEBUG', 'true').lower() == 'true'

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'economy',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'simple'},
    },
    'loggers': {
        'economy': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
        'config': {'handlers': ['console'], 'level': 'INFO', 'propagate': False},
    },
}

# Notifications
SLACK_WEBHOOK_URL = os.environ.get('SLACK_WEBHOOK_URL', '')
NOTIFICATION_TIMEZONE = os.environ.get('NOTIFICATION_TIMEZONE', 'America/New_York')

# Auto-lock flow: bounded retries, timeout shorter than the 15 minute interval
AUTO_LOCK_FLOW_RETRIES = int(os.environ.get('AUTO_LOCK_FLOW_RETRIES', 2))
AUTO_LOCK_FLOW_RETRY_DELAY = int(os.environ.get('AUTO_LOCK_FLOW_RETRY_DELAY', 60))
AUTO_LOCK_FLOW_TIMEOUT = int(os.environ.get('AUTO_LOCK_FLOW_TIMEOUT', 600))

# Store writes inside the economy flows (lock a race, reprice, settle a batch)
ECONOMY_TASK_RETRIES = int(os.environ.get('ECONOMY_TASK_RETRIES', 3))
ECONOMY_TASK_RETRY_DELAY = int(os.environ.get('ECONOMY_TASK_RETRY_DELAY', 10))

# EconomyConfig field overrides, e.g. {'max_change_per_race': 40}
ECONOMY_OVERRIDES = {}
