from .base import *
from django.core.exceptions import ImproperlyConfigured

DEBUG = False

# Render specific settings
ALLOWED_HOSTS += ['osdeals-booking.onrender.com']
SITE_URL = config('SITE_URL', default='https://osdeals-booking.onrender.com')
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
USE_X_FORWARDED_HOST = True

# Render handles SSL at the proxy level
SECURE_SSL_REDIRECT = False
SECURE_HSTS_SECONDS = 31536000
SECURE_HSTS_INCLUDE_SUBDOMAINS = True
SECURE_HSTS_PRELOAD = True

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True
X_FRAME_OPTIONS = 'DENY'
SECURE_CONTENT_TYPE_NOSNIFF = True

# The sweep endpoint fails closed without a bearer secret
if not CRON_SECRET:
    raise ImproperlyConfigured('CRON_SECRET must be set in production.')
