"""
Django settings for the comandas project.

Everything that changes between the local stack and production is read from
environment variables, with defaults that match docker-compose service names.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-insecure-comandas-key')
DEBUG = env_bool('DJANGO_DEBUG', True)
ALLOWED_HOSTS = os.getenv('DJANGO_ALLOWED_HOSTS', '*').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
    'orders',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'comandas.urls'
WSGI_APPLICATION = 'comandas.wsgi.application'

if os.getenv('POSTGRES_HOST'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'HOST': os.getenv('POSTGRES_HOST'),
            'PORT': os.getenv('POSTGRES_PORT', '5432'),
            'NAME': os.getenv('POSTGRES_DB', 'comandas'),
            'USER': os.getenv('POSTGRES_USER', 'comandas'),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'comandas'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'es-ar'
TIME_ZONE = os.getenv('TIME_ZONE', 'America/Argentina/Buenos_Aires')
USE_TZ = True

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [],
    'UNAUTHENTICATED_USER': None,
}

# ========================
# KAFKA (change feed)
# ========================
KAFKA_BOOTSTRAP_SERVERS = os.getenv('KAFKA_BOOTSTRAP_SERVERS', 'localhost:9092').split(',')
KAFKA_TOPIC_ORDER_CHANGES = os.getenv('KAFKA_TOPIC_ORDER_CHANGES', 'order-changes')
KAFKA_TOPIC_ORDERS_DLQ = os.getenv('KAFKA_TOPIC_ORDERS_DLQ', 'order-changes-dlq')
KAFKA_CONSUMER_GROUP_PREFIX = os.getenv('KAFKA_CONSUMER_GROUP_PREFIX', 'comandas')
ORDER_CHANGE_FEED_ENABLED = env_bool('ORDER_CHANGE_FEED_ENABLED', True)

# ========================
# CELERY (outbound side effects)
# ========================
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = env_bool('CELERY_TASK_ALWAYS_EAGER', False)
CELERY_TASK_SERIALIZER = 'json'
CELERY_ACCEPT_CONTENT = ['json']

# ========================
# WEBHOOKS (printers + customer notifications)
# ========================
PRINT_WEBHOOK_KITCHEN_URL = os.getenv(
    'PRINT_WEBHOOK_KITCHEN_URL', 'http://localhost:5678/webhook/crearFacturaCocina'
)
PRINT_WEBHOOK_CASHIER_URL = os.getenv(
    'PRINT_WEBHOOK_CASHIER_URL', 'http://localhost:5678/webhook/crearFacturaCaja'
)
STATUS_WEBHOOK_URL = os.getenv(
    'STATUS_WEBHOOK_URL', 'http://localhost:5678/webhook/notificacion-estado'
)
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv('WEBHOOK_TIMEOUT_SECONDS', '10'))

# ========================
# ORDER RULES + SYNC ENGINE
# ========================
ORDER_CANCEL_WINDOW_MINUTES = int(os.getenv('ORDER_CANCEL_WINDOW_MINUTES', '15'))
ORDER_SYNC_RECONNECT_DELAY_SECONDS = float(os.getenv('ORDER_SYNC_RECONNECT_DELAY_SECONDS', '3'))
ORDER_SYNC_VISIBILITY_THRESHOLD_SECONDS = float(
    os.getenv('ORDER_SYNC_VISIBILITY_THRESHOLD_SECONDS', '10')
)
ORDER_SYNC_IO_WORKERS = int(os.getenv('ORDER_SYNC_IO_WORKERS', '4'))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv('LOG_LEVEL', 'INFO'),
    },
    'loggers': {
        'kafka': {
            'level': 'WARNING',
        },
    },
}
