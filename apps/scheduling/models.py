"""
Scheduling models:
  - CalendarResource : A schedulable channel; its row is the per-resource lock
  - CalendarEvent    : An approved request placed on the calendar
"""
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from apps.core.models import BaseModel, UUIDModel, TimestampedModel
from apps.bookings.models import BookingRequest


class CalendarResource(UUIDModel, TimestampedModel):
    """
    One row per resource key (e.g. a category or a launch channel).
    The scheduler takes SELECT ... FOR UPDATE on this row so that two
    approvals for the same resource decide one after the other.
    """
    key = models.CharField(max_length=255, unique=True)

    class Meta:
        verbose_name = 'Calendar Resource'
        verbose_name_plural = 'Calendar Resources'
        ordering = ['key']

    def __str__(self):
        return self.key


class CalendarEventStatus(models.TextChoices):
    SCHEDULED = 'scheduled', 'Scheduled'
    CANCELLED = 'cancelled', 'Cancelled'


class CalendarEvent(BaseModel):
    """
    Calendar entry for a booked request. [start, end) is half-open:
    back-to-back events that only share an endpoint do not overlap.
    """
    booking_request = models.ForeignKey(
        BookingRequest, on_delete=models.PROTECT, related_name='calendar_events',
    )
    resource = models.ForeignKey(
        CalendarResource, on_delete=models.PROTECT, related_name='events',
    )
    name = models.CharField(max_length=255)
    start = models.DateTimeField(db_index=True)
    end = models.DateTimeField(db_index=True)
    status = models.CharField(
        max_length=10, choices=CalendarEventStatus.choices,
        default=CalendarEventStatus.SCHEDULED, db_index=True,
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = 'Calendar Event'
        verbose_name_plural = 'Calendar Events'
        ordering = ['start']
        constraints = [
            models.CheckConstraint(
                condition=Q(start__lt=F('end')),
                name='ck_calendar_event_window',
            ),
            # At most one live event per request
            models.UniqueConstraint(
                fields=['booking_request'],
                condition=Q(status='scheduled'),
                name='uq_scheduled_event_per_request',
            ),
        ]

    def __str__(self):
        return f"{self.name} @ {self.resource_id} {self.start:%Y-%m-%d} → {self.end:%Y-%m-%d} [{self.status}]"

    @property
    def is_cancelled(self):
        return self.status == CalendarEventStatus.CANCELLED

    def overlaps(self, start, end) -> bool:
        """Half-open overlap test against [start, end)."""
        return self.start < end and start < self.end

    def mark_cancelled(self) -> bool:
        """Cancel once; returns False when it was already cancelled."""
        updated = (
            CalendarEvent.objects
            .filter(pk=self.pk, status=CalendarEventStatus.SCHEDULED)
            .update(status=CalendarEventStatus.CANCELLED, cancelled_at=timezone.now(),
                    updated_at=timezone.now())
        )
        self.refresh_from_db()
        return updated == 1
