# section8hub/settings/dev.py
# export DJANGO_SETTINGS_MODULE=section8hub.settings.dev

from .base import *

DEBUG = True

ALLOWED_HOSTS = ['127.0.0.1', 'localhost', 'testserver']
CSRF_TRUSTED_ORIGINS = ['http://127.0.0.1:8000', 'http://localhost:8000']

# Dev: pas de redirection SSL forcée
SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

# SQLite par défaut en dev (déjà configuré dans base)

LOGGING['loggers'].update({
    'leadflows.repository': {
        'handlers': ['console'],
        'level': 'DEBUG',
        'propagate': False,
    },
})
