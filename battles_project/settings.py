from datetime import timedelta
from pathlib import Path

from decouple import config, Csv
from kombu import Queue
import dj_database_url

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Quick-start development settings - unsuitable for production
SECRET_KEY = config('SECRET_KEY', default='django-insecure-battles-dev-key')

DEBUG = config('DEBUG', default=False, cast=bool)

ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1,testserver', cast=Csv())

# Application definition
INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',

    # Local
    'battles',
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

ROOT_URLCONF = 'battles_project.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'battles_project.wsgi.application'

# Database
# Uses DATABASE_URL from .env
DATABASES = {
    'default': dj_database_url.config(
        default=config('DATABASE_URL', default='sqlite:///db.sqlite3')
    )
}

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator',
    },
    {
        'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator',
    },
]

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Static files (admin only)
STATIC_URL = 'static/'

# Session/CSRF security
SESSION_COOKIE_HTTPONLY = True
if not DEBUG:
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True

# Auth redirects
LOGIN_URL = '/admin/login/'

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'default': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'default',
        },
    },
    'loggers': {
        'battles': {
            'handlers': ['console'],
            'level': config('BATTLES_LOG_LEVEL', default='INFO'),
        },
    },
}

# Celery Configuration
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://localhost:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')
CELERY_ACCEPT_CONTENT = ['json']
CELERY_TASK_SERIALIZER = 'json'
CELERY_RESULT_SERIALIZER = 'json'
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_DEFAULT_QUEUE = 'celery'
CELERY_TASK_QUEUES = (
    Queue('celery'),
    Queue('battle_lifecycle'),
    Queue('battle_polling'),
)
CELERY_TASK_ROUTES = {
    'battles.tasks.start_battle_job': {'queue': 'battle_lifecycle'},
    'battles.tasks.end_battle_job': {'queue': 'battle_lifecycle'},
    'battles.tasks.recover_battle_schedules': {'queue': 'battle_lifecycle'},
    'battles.tasks.poll_battle_submissions': {'queue': 'battle_polling'},
}
CELERY_BEAT_SCHEDULE = {
    'recover-battle-schedules-every-minute': {
        'task': 'battles.tasks.recover_battle_schedules',
        'schedule': timedelta(minutes=1),
    },
}

CODEFORCES_API_URL = config('CODEFORCES_API_URL', default='https://codeforces.com/api')
CODEFORCES_TIMEOUT_SECONDS = config('CODEFORCES_TIMEOUT_SECONDS', default=10, cast=int)
CODEFORCES_MIN_REQUEST_INTERVAL_SECONDS = config('CODEFORCES_MIN_REQUEST_INTERVAL_SECONDS', default=2.0, cast=float)
CODEFORCES_RATE_LIMIT_BACKOFF_SECONDS = config('CODEFORCES_RATE_LIMIT_BACKOFF_SECONDS', default=5.0, cast=float)
BATTLE_POLL_INTERVAL_SECONDS = config('BATTLE_POLL_INTERVAL_SECONDS', default=60, cast=int)
BATTLE_START_LOCK_SECONDS = config('BATTLE_START_LOCK_SECONDS', default=300, cast=int)
BATTLE_WRONG_ATTEMPT_PENALTY_MINUTES = config('BATTLE_WRONG_ATTEMPT_PENALTY_MINUTES', default=10, cast=int)
SCHEDULER_HEALTH_TIMEOUT_SECONDS = config('SCHEDULER_HEALTH_TIMEOUT_SECONDS', default=1.0, cast=float)
