from django.contrib import admin
from .models import CalendarEvent, CalendarResource


@admin.register(CalendarResource)
class CalendarResourceAdmin(admin.ModelAdmin):
    list_display = ['key', 'created_at']
    search_fields = ['key']
    readonly_fields = ['id', 'created_at', 'updated_at']


@admin.register(CalendarEvent)
class CalendarEventAdmin(admin.ModelAdmin):
    list_display = ['name', 'resource', 'start', 'end', 'status', 'cancelled_at']
    list_filter = ['status', 'resource']
    search_fields = ['name', 'booking_request__merchant_name']
    readonly_fields = [
        'id', 'booking_request', 'resource', 'name', 'start', 'end',
        'status', 'cancelled_at', 'created_at', 'updated_at',
    ]
    date_hierarchy = 'start'

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
