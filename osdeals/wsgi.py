"""
WSGI config for the OS Deals booking-request service.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'osdeals.settings.production')

application = get_wsgi_application()
