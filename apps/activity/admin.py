from django.contrib import admin
from .models import ActivityLog


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'action', 'entity_type', 'entity_name', 'actor_label']
    list_filter = ['action', 'entity_type']
    search_fields = ['entity_id', 'entity_name', 'actor_id', 'actor_label']
    readonly_fields = [
        'id', 'actor_id', 'actor_label', 'action', 'entity_type', 'entity_id',
        'entity_name', 'before', 'after', 'details', 'created_at',
    ]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
