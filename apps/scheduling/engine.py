"""
Event scheduler — pure business logic, no HTTP/request awareness.

Public API:
  candidate_window(booking_request, tz)
  resource_key_for(booking_request, default)
  find_conflicts(resource, start, end, exclude_request=None)
  schedule(booking_request, default_resource, tz)
  cancel(event)
  live_event_for(booking_request)
  events_between(start, end, resource_key=None)
  placement_warnings(booking_request, tz, merchant_repeat_days=30, max_daily_launches=13)
"""
import logging
from datetime import date as date_type, datetime, time as time_type, timedelta

from django.db import transaction

from apps.bookings.exceptions import SchedulingConflict
from apps.bookings.models import BookingRequest

from .models import CalendarEvent, CalendarEventStatus, CalendarResource

logger = logging.getLogger(__name__)


# ── Window / resource helpers ─────────────────────────────────────────────────

def _start_of_day(day: date_type, tz) -> datetime:
    return datetime.combine(day, time_type.min, tzinfo=tz)


def candidate_window(booking_request: BookingRequest, tz) -> tuple:
    """
    [start, end) covering every requested day in the project time zone:
    midnight of start_date up to midnight after end_date.
    """
    start = _start_of_day(booking_request.start_date, tz)
    end = _start_of_day(booking_request.end_date + timedelta(days=1), tz)
    return start, end


def resource_key_for(booking_request: BookingRequest, default: str) -> str:
    """
    Resource from the first pricing option's `resource` metadata, else the
    request's category key, else the configured default.
    """
    options = booking_request.pricing_options or []
    resource = str((options[0] or {}).get('resource') or '').strip() if options else ''
    if resource:
        return resource
    return booking_request.category or default


# ── Conflict detection ────────────────────────────────────────────────────────

def find_conflicts(resource: CalendarResource, start: datetime, end: datetime,
                   exclude_request=None) -> list:
    """
    Live events on `resource` overlapping [start, end):
      existing.start < end AND start < existing.end
    """
    qs = CalendarEvent.objects.filter(
        resource=resource,
        status=CalendarEventStatus.SCHEDULED,
        start__lt=end,
        end__gt=start,
    ).select_related('booking_request')
    if exclude_request is not None:
        qs = qs.exclude(booking_request=exclude_request)
    return list(qs.order_by('start'))


# ── Core: Scheduling ──────────────────────────────────────────────────────────

@transaction.atomic
def schedule(booking_request: BookingRequest, default_resource: str, tz) -> CalendarEvent:
    """
    Place the request on the calendar.

    Steps (single transaction):
      1. Return the live event if this request already has one (retry-safe)
      2. Lock the resource row (SELECT FOR UPDATE) so concurrent approvals
         on the same resource read-then-decide one at a time
      3. Check step 1 again under the lock
      4. Look for overlapping live events
      5. Create the event

    Raises:
      SchedulingConflict — overlapping events exist; nothing is created and
                           nothing is moved automatically
    """
    existing = live_event_for(booking_request)
    if existing:
        return existing

    key = resource_key_for(booking_request, default_resource)
    CalendarResource.objects.get_or_create(key=key)
    resource = CalendarResource.objects.select_for_update().get(key=key)

    # A concurrent trigger for the same request may have booked it while we waited on the lock
    existing = live_event_for(booking_request)
    if existing:
        return existing

    start, end = candidate_window(booking_request, tz)
    conflicts = find_conflicts(resource, start, end, exclude_request=booking_request)
    if conflicts:
        logger.info(
            'Scheduling conflict for request %s on %s: %s',
            booking_request.pk, key, [str(e.pk) for e in conflicts],
        )
        raise SchedulingConflict(conflicts, resource_key=key)

    event = CalendarEvent.objects.create(
        booking_request=booking_request,
        resource=resource,
        name=booking_request.name,
        start=start,
        end=end,
        status=CalendarEventStatus.SCHEDULED,
    )
    logger.info('Scheduled request %s on %s [%s, %s)', booking_request.pk, key, start, end)
    return event


def cancel(event: CalendarEvent) -> CalendarEvent:
    """Cancel an event. Cancelling an already-cancelled event is a no-op."""
    if event.mark_cancelled():
        logger.info('Cancelled calendar event %s', event.pk)
    return event


def live_event_for(booking_request: BookingRequest):
    return CalendarEvent.objects.filter(
        booking_request=booking_request, status=CalendarEventStatus.SCHEDULED,
    ).first()


def events_between(start: datetime, end: datetime, resource_key: str = None):
    """Calendar read model: live events overlapping [start, end)."""
    qs = CalendarEvent.objects.filter(
        status=CalendarEventStatus.SCHEDULED, start__lt=end, end__gt=start,
    ).select_related('resource', 'booking_request')
    if resource_key:
        qs = qs.filter(resource__key=resource_key)
    return qs.order_by('start')


# ── Advisory placement rules ──────────────────────────────────────────────────

MERCHANT_REPEAT_DAYS = 30
MAX_DAILY_LAUNCHES = 13


def placement_warnings(booking_request: BookingRequest, tz,
                       merchant_repeat_days: int = MERCHANT_REPEAT_DAYS,
                       max_daily_launches: int = MAX_DAILY_LAUNCHES) -> list:
    """
    Soft rules checked against the live calendar. They never block
    scheduling; callers pass the result on to whoever placed the request.

      merchant_repeat — another live event for the same merchant ends fewer
                        than `merchant_repeat_days` before this one starts
                        (or overlaps / comes later)
      daily_limit     — more than `max_daily_launches` events start on this
                        request's start date, this one included
    """
    warnings = []
    others = (
        CalendarEvent.objects
        .filter(status=CalendarEventStatus.SCHEDULED)
        .exclude(booking_request=booking_request)
        .select_related('booking_request')
    )

    same_merchant = others.filter(booking_request__merchant_name=booking_request.merchant_name)
    for event in same_merchant.order_by('start'):
        days_since = (booking_request.start_date - event.booking_request.end_date).days
        if days_since < merchant_repeat_days:
            warnings.append({
                'rule': 'merchant_repeat',
                'eventId': str(event.pk),
                'requestId': str(event.booking_request_id),
                'daysUntilAllowed': merchant_repeat_days - days_since,
                'message': (
                    f'{booking_request.merchant_name} already runs "{event.name}"; '
                    f'wait {merchant_repeat_days} days between offers.'
                ),
            })
            break

    day_start = _start_of_day(booking_request.start_date, tz)
    launches = others.filter(start__gte=day_start, start__lt=day_start + timedelta(days=1)).count() + 1
    if launches > max_daily_launches:
        warnings.append({
            'rule': 'daily_limit',
            'date': booking_request.start_date.isoformat(),
            'count': launches,
            'message': f'{launches} offers launch on {booking_request.start_date:%d %b %Y} (max {max_daily_launches}).',
        })

    if warnings:
        logger.info('Placement warnings for request %s: %s', booking_request.pk, [w['rule'] for w in warnings])
    return warnings
