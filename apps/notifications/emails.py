"""
Email notification service for booking requests.

All functions are synchronous. BookingWorkflow registers them with
transaction.on_commit, so nothing is sent for a transition that rolled back.

Public API:
  send_approval_request(booking_request, to_emails, approve_url, reject_url)
  send_requester_copy(booking_request, to_email)
  send_request_approved(booking_request)
  send_request_rejected(booking_request, reason='')
  send_request_booked(booking_request, event)
  send_scheduling_conflict(booking_request, conflicts, to_emails)
  send_request_cancelled(booking_request, reason='')
  send_public_link(link_url, to_email, expires_at=None)
"""
import logging
from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)


def _request_context(booking_request) -> dict:
    """Common template context for all booking-request emails."""
    return {
        'request_name':   booking_request.name,
        'merchant_name':  booking_request.merchant_name,
        'contact_email':  booking_request.contact_email,
        'contact_phone':  booking_request.contact_phone,
        'pricing_options': booking_request.pricing_options or [],
        'start_date':     booking_request.start_date,
        'end_date':       booking_request.end_date,
        'description':    booking_request.description,
        'category':       booking_request.category,
        'request_ref':    booking_request.id_short,
        'support_email':  getattr(settings, 'BOOKING_REPLY_TO_EMAIL', '') or settings.DEFAULT_FROM_EMAIL,
    }


def _send(subject: str, to_emails, html_template: str, txt_template: str, context: dict) -> bool:
    """Low-level send helper — builds multipart email with HTML + text fallback."""
    to_emails = [e for e in (to_emails or []) if e]
    if not to_emails:
        logger.warning('Email "%s" skipped — no recipients (request ref %s)', subject, context.get('request_ref'))
        return False

    reply_to = getattr(settings, 'BOOKING_REPLY_TO_EMAIL', '')
    try:
        text_body = render_to_string(txt_template, context)
        html_body = render_to_string(html_template, context)

        msg = EmailMultiAlternatives(
            subject=subject,
            body=text_body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            to=to_emails,
            reply_to=[reply_to] if reply_to else None,
        )
        msg.attach_alternative(html_body, 'text/html')
        msg.send(fail_silently=False)
        logger.info('Email "%s" sent to %s', subject, ', '.join(to_emails))
        return True
    except Exception as exc:
        # Log but never fail a committed transition because of email
        logger.exception('Failed to send email "%s" to %s: %s', subject, to_emails, exc)
        return False


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────

def send_approval_request(booking_request, to_emails, approve_url: str, reject_url: str) -> bool:
    """
    Ask the business to approve or reject.
    Triggered: submission (public or internal), resend.
    """
    ctx = _request_context(booking_request)
    ctx.update(approve_url=approve_url, reject_url=reject_url, show_actions=True)

    return _send(
        subject=f'Booking request awaiting approval — {booking_request.name}',
        to_emails=to_emails,
        html_template='emails/approval_request.html',
        txt_template='emails/approval_request.txt',
        context=ctx,
    )


def send_requester_copy(booking_request, to_email: str) -> bool:
    """Same summary for the internal requester, without the approve/reject links."""
    ctx = _request_context(booking_request)
    ctx['show_actions'] = False

    return _send(
        subject=f'Copy: booking request sent — {booking_request.name}',
        to_emails=[to_email],
        html_template='emails/approval_request.html',
        txt_template='emails/approval_request.txt',
        context=ctx,
    )


def send_request_approved(booking_request) -> bool:
    return _send(
        subject=f'Booking request approved — {booking_request.name}',
        to_emails=[booking_request.submitter_email],
        html_template='emails/request_approved.html',
        txt_template='emails/request_approved.txt',
        context=_request_context(booking_request),
    )


def send_request_rejected(booking_request, reason: str = '') -> bool:
    ctx = _request_context(booking_request)
    ctx['rejection_reason'] = reason

    return _send(
        subject=f'Booking request rejected — {booking_request.name}',
        to_emails=[booking_request.submitter_email],
        html_template='emails/request_rejected.html',
        txt_template='emails/request_rejected.txt',
        context=ctx,
    )


def send_request_booked(booking_request, event) -> bool:
    """
    Confirm the calendar slot.
    Triggered: successful scheduling, reschedule, conflict resolution.
    """
    ctx = _request_context(booking_request)
    ctx.update(event_start=event.start, event_end=event.end, resource=event.resource.key)

    return _send(
        subject=f'Booking confirmed — {booking_request.name}',
        to_emails=[booking_request.submitter_email],
        html_template='emails/request_booked.html',
        txt_template='emails/request_booked.txt',
        context=ctx,
    )


def send_scheduling_conflict(booking_request, conflicts, to_emails) -> bool:
    """
    Tell operators which events block this request so they can resolve it.
    Triggered: the first time scheduling hits a conflict.
    """
    ctx = _request_context(booking_request)
    ctx['conflicts'] = [
        {'name': e.name, 'start': e.start, 'end': e.end, 'resource': e.resource.key}
        for e in conflicts
    ]

    return _send(
        subject=f'Scheduling conflict — {booking_request.name}',
        to_emails=to_emails,
        html_template='emails/scheduling_conflict.html',
        txt_template='emails/scheduling_conflict.txt',
        context=ctx,
    )


def send_request_cancelled(booking_request, reason: str = '') -> bool:
    ctx = _request_context(booking_request)
    ctx['cancellation_reason'] = reason

    return _send(
        subject=f'Booking request cancelled — {booking_request.name}',
        to_emails=[booking_request.submitter_email],
        html_template='emails/request_cancelled.html',
        txt_template='emails/request_cancelled.txt',
        context=ctx,
    )


def send_public_link(link_url: str, to_email: str, expires_at=None) -> bool:
    """Send a freshly issued public submission link to a merchant."""
    ctx = {
        'link_url': link_url,
        'expires_at': expires_at,
        'support_email': getattr(settings, 'BOOKING_REPLY_TO_EMAIL', '') or settings.DEFAULT_FROM_EMAIL,
    }
    return _send(
        subject='Submit your booking request',
        to_emails=[to_email],
        html_template='emails/public_link.html',
        txt_template='emails/public_link.txt',
        context=ctx,
    )
