"""
Django settings for the HR & payroll information system.

Every deployment value is read from the environment with a development
default, so a bare checkout runs against SQLite and the provider sandboxes.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    return os.environ.get(name, str(int(default))).lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-insecure-secret-key')
DEBUG = env_bool('DEBUG', True)
ALLOWED_HOSTS = [h for h in os.environ.get('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'hris',
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

ROOT_URLCONF = 'hris_project.urls'

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

WSGI_APPLICATION = 'hris_project.wsgi.application'

# Database
DB_ENGINE = os.environ.get('DB_ENGINE', 'django.db.backends.sqlite3')
if DB_ENGINE.endswith('sqlite3'):
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('DB_NAME', 'hris'),
            'USER': os.environ.get('DB_USER', 'hris'),
            'PASSWORD': os.environ.get('DB_PASSWORD', ''),
            'HOST': os.environ.get('DB_HOST', 'localhost'),
            'PORT': os.environ.get('DB_PORT', '5432'),
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.environ.get('TIME_ZONE', 'Africa/Nairobi')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_PAGINATION_CLASS': 'hris.pagination.StandardPagination',
    'PAGE_SIZE': 10,
    # Exports take a ?format= parameter of their own
    'URL_FORMAT_OVERRIDE': None,
}

CACHES = {
    'default': {
        'BACKEND': os.environ.get('CACHE_BACKEND', 'django.core.cache.backends.locmem.LocMemCache'),
        'LOCATION': os.environ.get('CACHE_LOCATION', 'hris'),
    }
}

# Celery
CELERY_BROKER_URL = os.environ.get('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.environ.get('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = env_bool('CELERY_TASK_ALWAYS_EAGER', False)
CELERY_TIMEZONE = TIME_ZONE

# Payment providers
FLUTTERWAVE_PUBLIC_KEY = os.environ.get('FLUTTERWAVE_PUBLIC_KEY', '')
FLUTTERWAVE_SECRET_KEY = os.environ.get('FLUTTERWAVE_SECRET_KEY', '')
FLUTTERWAVE_BASE_URL = os.environ.get('FLUTTERWAVE_BASE_URL', 'https://api.flutterwave.com/v3')
FLUTTERWAVE_CURRENCY = os.environ.get('FLUTTERWAVE_CURRENCY', 'KES')

DARAJA_CONSUMER_KEY = os.environ.get('DARAJA_CONSUMER_KEY', '')
DARAJA_CONSUMER_SECRET = os.environ.get('DARAJA_CONSUMER_SECRET', '')
DARAJA_BASE_URL = os.environ.get('DARAJA_BASE_URL', 'https://sandbox.safaricom.co.ke')
DARAJA_SHORTCODE = os.environ.get('DARAJA_SHORTCODE', '600000')
DARAJA_INITIATOR_NAME = os.environ.get('DARAJA_INITIATOR_NAME', 'testapi')
DARAJA_SECURITY_CREDENTIAL = os.environ.get('DARAJA_SECURITY_CREDENTIAL', '')
# Daraja must call back with ?token=<DARAJA_CALLBACK_TOKEN>; other callbacks are not applied
DARAJA_CALLBACK_TOKEN = os.environ.get('DARAJA_CALLBACK_TOKEN', '')
DARAJA_RESULT_URL = os.environ.get(
    'DARAJA_RESULT_URL',
    f'https://localhost/api/payments/mpesa/result/?token={DARAJA_CALLBACK_TOKEN}'
)
DARAJA_TIMEOUT_URL = os.environ.get(
    'DARAJA_TIMEOUT_URL',
    f'https://localhost/api/payments/mpesa/timeout/?token={DARAJA_CALLBACK_TOKEN}'
)

HRIS_PROVIDER_TIMEOUT = float(os.environ.get('HRIS_PROVIDER_TIMEOUT', '30'))

# Payroll tax
HRIS_PAYE_RATE = os.environ.get('HRIS_PAYE_RATE', '0.30')
HRIS_TAX_FILING_DAY = int(os.environ.get('HRIS_TAX_FILING_DAY', '10'))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'hris': {
            'handlers': ['console'],
            'level': os.environ.get('HRIS_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}
