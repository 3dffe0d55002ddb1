"""
Public link store — issuance and single-use consumption of public
submission links.

Public API:
  issue(created_by='', recipient_email='', ttl=None)
  validate(token)
  consume(token, booking_request_id)
  url_for(link, site_url)
  count_expired_unused(now=None)
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.urls import reverse
from django.utils import timezone

from .exceptions import TokenInvalid
from .models import BookingRequest, PublicLinkToken
from .tokens import issue_public_link_token

logger = logging.getLogger(__name__)

ISSUE_ATTEMPTS = 3


@dataclass
class LinkValidation:
    valid: bool
    error: str = ''
    link: PublicLinkToken = None
    booking_request: BookingRequest = None


def issue(created_by: str = '', recipient_email: str = '',
          ttl: timedelta = None) -> PublicLinkToken:
    """
    Create and persist a fresh, unused link.
    The token column is unique; a collision (practically impossible) is retried.
    """
    expires_at = timezone.now() + ttl if ttl else None
    for attempt in range(1, ISSUE_ATTEMPTS + 1):
        try:
            with transaction.atomic():
                return PublicLinkToken.objects.create(
                    token=issue_public_link_token(),
                    expires_at=expires_at,
                    recipient_email=recipient_email,
                    created_by=created_by,
                )
        except IntegrityError:
            logger.warning('Public link token collision (attempt %s)', attempt)
    raise RuntimeError('Could not issue a unique public link token.')


def _reason_for(link: PublicLinkToken, now) -> str:
    if link is None:
        return TokenInvalid.NOT_FOUND
    if link.is_used:
        return TokenInvalid.ALREADY_USED
    if link.expires_at is not None and now >= link.expires_at:
        return TokenInvalid.EXPIRED
    return ''


def validate(token: str) -> LinkValidation:
    """Look the token up; used beats expired when both apply."""
    link = (
        PublicLinkToken.objects
        .select_related('booking_request')
        .filter(token=token)
        .first()
    ) if token else None

    error = _reason_for(link, timezone.now())
    if error:
        return LinkValidation(
            valid=False, error=error, link=link,
            booking_request=link.booking_request if link else None,
        )
    return LinkValidation(valid=True, link=link)


def consume(token: str, booking_request_id) -> PublicLinkToken:
    """
    Atomically mark the link used and bind it to the request it produced.

    The UPDATE is conditional on is_used=False (and not expired), so of two
    concurrent submissions presenting the same token exactly one changes the
    row; the other gets TokenInvalid('already_used').
    """
    now = timezone.now()
    updated = (
        PublicLinkToken.objects
        .filter(token=token, is_used=False)
        .filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))
        .update(is_used=True, used_at=now, booking_request_id=booking_request_id)
    )
    if updated != 1:
        link = PublicLinkToken.objects.filter(token=token).first()
        raise TokenInvalid(_reason_for(link, now) or TokenInvalid.ALREADY_USED)
    return PublicLinkToken.objects.get(token=token)


def url_for(link: PublicLinkToken, site_url: str) -> str:
    """Build the shareable URL for the public booking form."""
    return site_url.rstrip('/') + reverse('bookings:public_submit', kwargs={'token': link.token})


def count_expired_unused(now=None) -> int:
    now = now or timezone.now()
    return PublicLinkToken.objects.filter(is_used=False, expires_at__lte=now).count()
