"""
Dashboard JSON endpoints for internal users.

Each view resolves the current actor, hands the payload to BookingWorkflow
and serialises the WorkflowResult; permission checks live in
apps.accounts.roles and run inside the workflow.
"""
import logging
from datetime import datetime, time as time_type, timedelta

from django.http import JsonResponse
from django.utils import timezone
from django.utils.dateparse import parse_date
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from apps.bookings.tokens import bearer_secret_matches
from apps.bookings.workflow import get_workflow
from apps.core.http import error_response, read_payload, result_response
from apps.scheduling.engine import events_between

from .decorators import actor_required

logger = logging.getLogger(__name__)

CALENDAR_MAX_DAYS = 366


def _payload_or_400(request):
    payload = read_payload(request)
    if payload is None or not isinstance(payload, dict):
        return None, error_response('validation_error', 'Request body must be a JSON object.', 400)
    return payload, None


# ─────────────────────────────────────────────────────────────────────────────
# Links & submission
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@actor_required
def issue_link(request):
    payload, error = _payload_or_400(request)
    if error:
        return error
    result = get_workflow().issue_public_link(request.actor, payload.get('recipient_email', ''))
    return result_response(result)


@require_POST
@actor_required
def submit_request(request):
    payload, error = _payload_or_400(request)
    if error:
        return error
    result = get_workflow().submit_internal(request.actor, payload, request_id=payload.pop('request_id', None))
    return result_response(result)


@require_POST
@actor_required
def save_draft(request):
    payload, error = _payload_or_400(request)
    if error:
        return error
    result = get_workflow().save_draft(request.actor, payload, request_id=payload.pop('request_id', None))
    return result_response(result)


# ─────────────────────────────────────────────────────────────────────────────
# Per-request actions
# ─────────────────────────────────────────────────────────────────────────────

@require_POST
@actor_required
def edit_request(request, request_id):
    payload, error = _payload_or_400(request)
    if error:
        return error
    return result_response(get_workflow().edit_pending(request.actor, request_id, payload))


@require_POST
@actor_required
def resend_request(request, request_id):
    payload, error = _payload_or_400(request)
    if error:
        return error
    emails = payload.get('emails')
    if emails is not None and not isinstance(emails, list):
        return error_response('validation_error', '"emails" must be a list.', 400)
    return result_response(get_workflow().resend(request.actor, request_id, emails=emails))


@require_POST
@actor_required
def cancel_request(request, request_id):
    payload, error = _payload_or_400(request)
    if error:
        return error
    reason = str(payload.get('reason', '')).strip()
    return result_response(get_workflow().cancel(request.actor, request_id, reason=reason))


@require_POST
@actor_required
def reschedule_request(request, request_id):
    payload, error = _payload_or_400(request)
    if error:
        return error
    result = get_workflow().reschedule(
        request.actor, request_id, payload.get('start_date'), payload.get('end_date'),
    )
    return result_response(result)


@require_POST
@actor_required
def resolve_request(request, request_id):
    payload, error = _payload_or_400(request)
    if error:
        return error
    result = get_workflow().resolve_conflict(
        request.actor, request_id, payload.get('start_date'), payload.get('end_date'),
    )
    return result_response(result)


# ─────────────────────────────────────────────────────────────────────────────
# Calendar read model
# ─────────────────────────────────────────────────────────────────────────────

def _date_param(request, name, default):
    raw = request.GET.get(name)
    if not raw:
        return default
    try:
        return parse_date(raw)
    except ValueError:
        return None


@require_GET
@actor_required
def calendar(request):
    """
    Live events overlapping [start, end] (dates, end inclusive).
    Defaults to the current month. ?resource= narrows to one resource key.
    """
    tz = timezone.get_current_timezone()
    today = timezone.localdate()
    start_day = _date_param(request, 'start', today.replace(day=1))
    end_day = _date_param(request, 'end', start_day + timedelta(days=31) if start_day else None)
    if start_day is None or end_day is None or end_day < start_day:
        return error_response('validation_error', 'Invalid date range.', 400)
    if (end_day - start_day).days > CALENDAR_MAX_DAYS:
        return error_response('validation_error', f'Range is limited to {CALENDAR_MAX_DAYS} days.', 400)

    start = datetime.combine(start_day, time_type.min, tzinfo=tz)
    end = datetime.combine(end_day + timedelta(days=1), time_type.min, tzinfo=tz)
    events = events_between(start, end, resource_key=request.GET.get('resource') or None)

    return JsonResponse({
        'start': start_day.isoformat(),
        'end': end_day.isoformat(),
        'events': [
            {
                'id': str(e.pk),
                'name': e.name,
                'resource': e.resource.key,
                'start': e.start.isoformat(),
                'end': e.end.isoformat(),
                'requestId': str(e.booking_request_id),
                'requestStatus': e.booking_request.status,
            }
            for e in events
        ],
    })


# ─────────────────────────────────────────────────────────────────────────────
# Cron
# ─────────────────────────────────────────────────────────────────────────────

@csrf_exempt
@require_POST
def sweep(request):
    """
    POST /cron/sweep/ with `Authorization: Bearer <CRON_SECRET>`.
    Defined here and routed from cron_urls so it stays outside the login wall.
    """
    workflow = get_workflow()
    if not bearer_secret_matches(request.headers.get('Authorization', ''), workflow.config.cron_secret):
        logger.warning('Cron sweep rejected: bad or missing bearer secret')
        return error_response('forbidden', 'Unauthorized.', 401)
    return result_response(workflow.sweep())
