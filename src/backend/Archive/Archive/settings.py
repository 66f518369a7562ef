"""Django settings for the Archive project.

Every tunable value is read from an ARCHIVE_* environment variable, with a
default suitable for local development.
"""

import logging

import structlog

from Archive.config import (
    get_base_dir,
    get_boolean_setting,
    get_database_config,
    get_setting,
)

BASE_DIR = get_base_dir()

SECRET_KEY = get_setting(
    'ARCHIVE_SECRET_KEY', 'archive-insecure-development-key-change-me'
)

DEBUG = get_boolean_setting('ARCHIVE_DEBUG', False)

ALLOWED_HOSTS = get_setting('ARCHIVE_ALLOWED_HOSTS', '*').split(',')

# region Logging

LOG_LEVEL = get_setting('ARCHIVE_LOG_LEVEL', 'WARNING').upper()
JSON_LOG = get_boolean_setting('ARCHIVE_JSON_LOG', False)

if LOG_LEVEL not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
    LOG_LEVEL = 'WARNING'

DEFAULT_LOG_HANDLER = ['console_json'] if JSON_LOG else ['console']

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'json_formatter': {
            '()': structlog.stdlib.ProcessorFormatter,
            'processor': structlog.processors.JSONRenderer(),
        },
        'plain_console': {
            '()': structlog.stdlib.ProcessorFormatter,
            'processor': structlog.dev.ConsoleRenderer(colors=False),
        },
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'plain_console'},
        'console_json': {
            'class': 'logging.StreamHandler',
            'formatter': 'json_formatter',
        },
    },
    'root': {'handlers': DEFAULT_LOG_HANDLER, 'level': LOG_LEVEL},
    'loggers': {
        'archive': {
            'handlers': DEFAULT_LOG_HANDLER,
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger('archive')
logging.getLogger('archive').setLevel(LOG_LEVEL)

# endregion

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'django_filters',
    'inventory.apps.InventoryConfig',
    'loan.apps.LoanConfig',
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

ROOT_URLCONF = 'Archive.urls'

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
            ]
        },
    }
]

WSGI_APPLICATION = 'Archive.wsgi.application'

DATABASES = {'default': get_database_config()}

DEFAULT_AUTO_FIELD = 'django.db.models.AutoField'

REST_FRAMEWORK = {
    'EXCEPTION_HANDLER': 'Archive.exceptions.exception_handler',
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework.authentication.BasicAuthentication',
        'rest_framework.authentication.SessionAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': ('rest_framework.permissions.IsAuthenticated',),
    'DEFAULT_FILTER_BACKENDS': ['django_filters.rest_framework.DjangoFilterBackend'],
    'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
}

LANGUAGE_CODE = get_setting('ARCHIVE_LANGUAGE', 'en-us')
TIME_ZONE = get_setting('ARCHIVE_TIMEZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = '/static/'
STATIC_ROOT = get_setting('ARCHIVE_STATIC_ROOT', str(BASE_DIR.joinpath('static')))

# region Loan engine settings

LOAN_REQUEST_REFERENCE_PREFIX = get_setting('ARCHIVE_LOAN_REFERENCE_PREFIX', 'SA-')

LOAN_DEFAULT_DELIVERY_NOTE = get_setting(
    'ARCHIVE_LOAN_DEFAULT_DELIVERY_NOTE', 'Document delivery completed'
)

LOAN_DEFAULT_RETURN_CONDITION = get_setting(
    'ARCHIVE_LOAN_DEFAULT_RETURN_CONDITION', 'Good'
)

LOAN_DUE_SOON_DAYS = get_setting('ARCHIVE_LOAN_DUE_SOON_DAYS', 7, typecast=int)

ITEM_LOOKUP_MIN_QUERY_LENGTH = get_setting(
    'ARCHIVE_ITEM_LOOKUP_MIN_QUERY', 2, typecast=int
)

ITEM_LOOKUP_LIMIT = get_setting('ARCHIVE_ITEM_LOOKUP_LIMIT', 20, typecast=int)

# endregion
