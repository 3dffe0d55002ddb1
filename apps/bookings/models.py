"""
Bookings app models:
  - BookingRequest  : Merchant deal proposal with its lifecycle state machine
  - PublicLinkToken : Single-use credential for an anonymous public submission
"""
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from apps.core.models import BaseModel, UUIDModel, RetainedModel


# ── Booking Request State Machine ─────────────────────────────────────────────

class BookingRequestStatus(models.TextChoices):
    DRAFT     = 'draft',     'Draft'
    SUBMITTED = 'submitted', 'Submitted'
    APPROVED  = 'approved',  'Approved'
    BOOKED    = 'booked',    'Booked'
    REJECTED  = 'rejected',  'Rejected'
    CANCELLED = 'cancelled', 'Cancelled'


TERMINAL_STATUSES = {BookingRequestStatus.REJECTED, BookingRequestStatus.CANCELLED}


class RequestSource(models.TextChoices):
    PUBLIC_LINK = 'public_link', 'Public link'
    INTERNAL    = 'internal',    'Internal form'


class BookingRequest(BaseModel):
    """
    A merchant's proposal, tracked from submission through approval to the calendar.
    Status moves only through compare_and_set_status(); never assign it directly.
    """
    name = models.CharField(max_length=255, db_index=True)
    sequence_number = models.PositiveIntegerField()

    merchant_name = models.CharField(max_length=200, db_index=True)
    contact_email = models.EmailField()
    contact_phone = models.CharField(max_length=40, blank=True)
    additional_emails = models.JSONField(default=list, blank=True)

    # Ordered [{"title", "price", "terms", "resource"?}, ...]
    pricing_options = models.JSONField(default=list)
    start_date = models.DateField(db_index=True)
    end_date = models.DateField()
    description = models.TextField(blank=True)
    category = models.CharField(max_length=255, blank=True, db_index=True)

    status = models.CharField(
        max_length=12, choices=BookingRequestStatus.choices,
        default=BookingRequestStatus.DRAFT, db_index=True,
    )
    needs_resolution = models.BooleanField(default=False, db_index=True)

    source = models.CharField(max_length=12, choices=RequestSource.choices, default=RequestSource.INTERNAL)
    created_by = models.CharField(max_length=80, blank=True, help_text='Actor id; blank for public submissions')
    requester_email = models.EmailField(blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    processed_by = models.CharField(max_length=254, blank=True)
    rejection_reason = models.TextField(blank=True)

    class Meta:
        verbose_name = 'Booking Request'
        verbose_name_plural = 'Booking Requests'
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=Q(start_date__lte=F('end_date')),
                name='ck_booking_request_date_range',
            ),
            models.UniqueConstraint(
                fields=['merchant_name', 'sequence_number'],
                name='uq_booking_request_merchant_sequence',
            ),
        ]

    def __str__(self):
        return f"{self.name} [{self.status}]"

    @property
    def id_short(self):
        return str(self.id)[:8].upper()

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def first_option_title(self):
        if self.pricing_options:
            return (self.pricing_options[0] or {}).get('title', '')
        return ''

    @property
    def submitter_email(self):
        """Who hears about the outcome: the internal requester, else the merchant."""
        return self.requester_email or self.contact_email

    @property
    def recipients(self):
        """Primary contact plus additional emails, de-duplicated, order kept."""
        seen = []
        for email in [self.contact_email, *(self.additional_emails or [])]:
            email = (email or '').strip()
            if email and email not in seen:
                seen.append(email)
        return seen

    # ── State transition helpers ──────────────────────────────────────────────

    def compare_and_set_status(self, from_status, to_status, **fields) -> bool:
        """
        Atomically move this request from `from_status` to `to_status`.

        The UPDATE is guarded on the current status, so when two callers race
        only one of them sees a row change. Returns False for the loser; the
        in-memory instance is refreshed either way.
        """
        updated = (
            BookingRequest.objects
            .filter(pk=self.pk, status=from_status)
            .update(status=to_status, updated_at=timezone.now(), **fields)
        )
        self.refresh_from_db()
        return updated == 1


# ── Public Link Token ─────────────────────────────────────────────────────────

class PublicLinkToken(UUIDModel, RetainedModel):
    """
    Shareable link letting an unauthenticated merchant submit exactly one request.
    Consumed atomically by apps.bookings.links.consume(); never reused.
    """
    token = models.CharField(max_length=64, unique=True, db_index=True)
    booking_request = models.ForeignKey(
        BookingRequest, on_delete=models.SET_NULL, null=True, blank=True,
        related_name='public_links',
    )
    is_used = models.BooleanField(default=False, db_index=True)
    used_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, editable=False)
    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    recipient_email = models.EmailField(blank=True)
    created_by = models.CharField(max_length=80, blank=True)

    class Meta:
        verbose_name = 'Public Link'
        verbose_name_plural = 'Public Links'
        ordering = ['-created_at']

    def __str__(self):
        state = 'used' if self.is_used else ('expired' if self.is_expired else 'open')
        return f"Link {self.token[:8]}… [{state}]"

    @property
    def is_expired(self):
        return self.expires_at is not None and timezone.now() >= self.expires_at
