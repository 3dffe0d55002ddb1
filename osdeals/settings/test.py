import os

os.environ.setdefault('SECRET_KEY', 'test-secret-key')
os.environ.setdefault('APPROVAL_TOKEN_SECRET', 'test-approval-secret')
os.environ.setdefault('CRON_SECRET', 'test-cron-secret')

from .base import *  # noqa: E402

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

AXES_ENABLED = False

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.FileSystemStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

SITE_URL = 'http://testserver'
BOOKING_OPERATOR_EMAILS = ['ops@osdeals.test']
