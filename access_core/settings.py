"""
Django settings for access-core.
"""
from datetime import timedelta
from pathlib import Path

from decouple import Csv, config

BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = config('SECRET_KEY', default='dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = config('DEBUG', default=False, cast=bool)

ALLOWED_HOSTS = config('ALLOWED_HOSTS', default='localhost,127.0.0.1', cast=Csv())

# Application definition
DJANGO_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
]

THIRD_PARTY_APPS = [
    'rest_framework',
    'rest_framework_simplejwt',
    'rest_framework_simplejwt.token_blacklist',
    'corsheaders',
    'channels',
]

ACCESS_CORE_APPS = [
    'access_core.core',
    'access_core.accounts',
    'access_core.notifications',
    'access_core.lockout',
    'access_core.twofactor',
    'access_core.licensing',
    'access_core.termination',
]

INSTALLED_APPS = DJANGO_APPS + THIRD_PARTY_APPS + ACCESS_CORE_APPS

MIDDLEWARE = [
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'access_core.urls'

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

WSGI_APPLICATION = 'access_core.wsgi.application'
ASGI_APPLICATION = 'access_core.routing.application'

# Database
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': config('DB_NAME', default='access_core'),
        'USER': config('DB_USER', default='postgres'),
        'PASSWORD': config('DB_PASSWORD', default='password'),
        'HOST': config('DB_HOST', default='localhost'),
        'PORT': config('DB_PORT', default='5432'),
    }
}

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Static files
STATIC_URL = '/static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

# Default primary key field type
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Custom user model
AUTH_USER_MODEL = 'accounts.User'

# REST Framework
REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'access_core.accounts.authentication.SessionJWTAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'EXCEPTION_HANDLER': 'access_core.core.exceptions.exception_handler',
}

# JWT Settings
SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=config('JWT_ACCESS_TOKEN_LIFETIME', default=15, cast=int)),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=config('JWT_REFRESH_TOKEN_LIFETIME', default=7, cast=int)),
    'ROTATE_REFRESH_TOKENS': True,
    'BLACKLIST_AFTER_ROTATION': True,
    'UPDATE_LAST_LOGIN': False,
    'ALGORITHM': 'HS256',
    'SIGNING_KEY': config('JWT_SECRET_KEY', default=SECRET_KEY),
    'AUTH_HEADER_TYPES': ('Bearer',),
    'USER_ID_FIELD': 'id',
    'USER_ID_CLAIM': 'user_id',
}

# CORS
CORS_ALLOWED_ORIGINS = config('CORS_ALLOWED_ORIGINS', default='http://localhost:3000', cast=Csv())
CORS_ALLOW_CREDENTIALS = True

# Celery Configuration
CELERY_BROKER_URL = config('CELERY_BROKER_URL', default='redis://localhost:6379/0')
CELERY_RESULT_BACKEND = config('CELERY_RESULT_BACKEND', default='redis://localhost:6379/0')

# Channel Layers
CHANNEL_LAYERS = {
    'default': {
        'BACKEND': 'channels_redis.core.RedisChannelLayer',
        'CONFIG': {
            'hosts': [(
                config('REDIS_HOST', default='localhost'),
                config('REDIS_PORT', default=6379, cast=int)
            )],
            'capacity': 100,
            'expiry': 10,
        },
    },
}

# Email Configuration
EMAIL_BACKEND = config('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = config('EMAIL_HOST', default='localhost')
EMAIL_PORT = config('EMAIL_PORT', default=587, cast=int)
EMAIL_USE_TLS = config('EMAIL_USE_TLS', default=True, cast=bool)
EMAIL_HOST_USER = config('EMAIL_HOST_USER', default='')
EMAIL_HOST_PASSWORD = config('EMAIL_HOST_PASSWORD', default='')
DEFAULT_FROM_EMAIL = config('DEFAULT_FROM_EMAIL', default='security@localhost')

# Access control tunables; SystemSetting rows override these at runtime.
ACCESS_CONTROL = {
    'LOCKOUT_THRESHOLD': config('LOCKOUT_THRESHOLD', default=5, cast=int),
    'LOCKOUT_WINDOW_MINUTES': config('LOCKOUT_WINDOW_MINUTES', default=5, cast=int),
    'LOCKOUT_AUTO_UNLOCK_MINUTES': config('LOCKOUT_AUTO_UNLOCK_MINUTES', default=30, cast=int),
    'TWO_FACTOR_MAX_ATTEMPTS': config('TWO_FACTOR_MAX_ATTEMPTS', default=10, cast=int),
    'TWO_FACTOR_WINDOW_MINUTES': config('TWO_FACTOR_WINDOW_MINUTES', default=10, cast=int),
    'TWO_FACTOR_LOCK_MINUTES': config('TWO_FACTOR_LOCK_MINUTES', default=10, cast=int),
    'TWO_FACTOR_SESSION_TTL_MINUTES': config('TWO_FACTOR_SESSION_TTL_MINUTES', default=720, cast=int),
    'RECOVERY_CODE_COUNT': config('RECOVERY_CODE_COUNT', default=8, cast=int),
    'INACTIVITY_LOGOUT_MINUTES': config('INACTIVITY_LOGOUT_MINUTES', default=5, cast=int),
    'EMAIL_NOTIFY_ACCOUNT_LOCK': config('EMAIL_NOTIFY_ACCOUNT_LOCK', default=False, cast=bool),
    'LICENSE_AUTHORITY_URL': config('LICENSE_AUTHORITY_URL', default=None),
    'LICENSE_AUTHORITY_TIMEOUT': config('LICENSE_AUTHORITY_TIMEOUT', default=10, cast=int),
    'LICENSE_SIGNING_SECRET': config('LICENSE_SIGNING_SECRET', default=SECRET_KEY),
    'TOTP_ISSUER': config('TOTP_ISSUER', default='Access Core'),
}

# Logging
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {name} {message}',
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
        'django': {
            'handlers': ['console'],
            'level': config('DJANGO_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
        'access_core': {
            'handlers': ['console'],
            'level': config('ACCESS_CORE_LOG_LEVEL', default='INFO'),
            'propagate': False,
        },
    },
}
