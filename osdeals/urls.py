"""
URL configuration for the OS Deals booking-request service.
"""
from django.contrib import admin
from django.conf import settings
from django.urls import path, include

urlpatterns = [
    path(settings.ADMIN_URL, admin.site.urls),
    path('booking-requests/', include('apps.bookings.urls', namespace='bookings')),
    path('dashboard/', include('apps.dashboard.urls', namespace='dashboard')),
    path('cron/', include('apps.dashboard.cron_urls', namespace='cron')),
]
