from django.contrib import admin
from .models import BookingRequest, PublicLinkToken


class PublicLinkInline(admin.TabularInline):
    model = PublicLinkToken
    extra = 0
    fields = ['token', 'is_used', 'used_at', 'created_at', 'expires_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(BookingRequest)
class BookingRequestAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'merchant_name', 'start_date', 'end_date',
        'status', 'needs_resolution', 'source', 'created_at',
    ]
    list_filter = ['status', 'needs_resolution', 'source', 'start_date']
    search_fields = ['name', 'merchant_name', 'contact_email']
    # Status, merchant and offer only change through BookingWorkflow
    # (edit_pending, reschedule), which keeps the name and calendar in step
    readonly_fields = [
        'id', 'name', 'sequence_number', 'status', 'needs_resolution', 'source',
        'merchant_name', 'category', 'pricing_options', 'start_date', 'end_date',
        'created_by', 'requester_email', 'processed_at', 'processed_by', 'rejection_reason',
        'created_at', 'updated_at',
    ]
    date_hierarchy = 'start_date'
    inlines = [PublicLinkInline]
    fieldsets = (
        ('Request', {'fields': ('id', 'name', 'sequence_number', 'category', 'description')}),
        ('Merchant', {'fields': ('merchant_name', 'contact_email', 'contact_phone', 'additional_emails')}),
        ('Offer', {'fields': ('pricing_options', 'start_date', 'end_date')}),
        ('Status', {'fields': ('status', 'needs_resolution', 'processed_at', 'processed_by', 'rejection_reason')}),
        ('Audit', {'fields': ('source', 'created_by', 'requester_email', 'created_at', 'updated_at'), 'classes': ('collapse',)}),
    )

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PublicLinkToken)
class PublicLinkTokenAdmin(admin.ModelAdmin):
    list_display = ['short_token', 'booking_request', 'is_used', 'recipient_email', 'created_at', 'expires_at']
    list_filter = ['is_used']
    search_fields = ['token', 'recipient_email']
    readonly_fields = ['id', 'token', 'booking_request', 'is_used', 'used_at', 'created_at', 'created_by']

    def short_token(self, obj):
        return f'{obj.token[:8]}…'
    short_token.short_description = 'Token'

    def has_delete_permission(self, request, obj=None):
        return False
