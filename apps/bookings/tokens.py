"""
Token codec — pure functions, no database or settings access.

Two unrelated token kinds:
  * Public link tokens: opaque random strings, looked up in PublicLinkToken.
  * Approval tokens: signed {requestId, action, issuedAt} payloads embedded in
    approve/reject email links. Nothing is stored; the signature is the proof.

Public API:
  issue_public_link_token()
  issue_approval_token(booking_request_id, action, secret, issued_at=None)
  verify_approval_token(token, secret, max_age, now=None)
  bearer_secret_matches(header_value, secret)
"""
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone

from django.core import signing
from django.utils import timezone
from django.utils.crypto import constant_time_compare

from .exceptions import TokenInvalid

APPROVAL_SALT = 'osdeals.booking-request.approval'
PUBLIC_LINK_BYTES = 32  # 256 bits

APPROVE = 'approve'
REJECT = 'reject'
ACTIONS = (APPROVE, REJECT)


@dataclass(frozen=True)
class ApprovalClaims:
    booking_request_id: str
    action: str
    issued_at: datetime


def issue_public_link_token() -> str:
    """URL-safe random token with 256 bits of entropy."""
    return secrets.token_urlsafe(PUBLIC_LINK_BYTES)


def _signer(secret: str) -> signing.Signer:
    if not secret:
        raise ValueError('An approval signing secret is required.')
    return signing.Signer(key=secret, salt=APPROVAL_SALT)


def issue_approval_token(booking_request_id, action: str, secret: str,
                         issued_at: datetime = None) -> str:
    """
    Encode then sign. The HMAC is computed over the exact encoded payload
    segment that travels in the token, so any altered byte fails verification.
    """
    if action not in ACTIONS:
        raise ValueError(f'Unknown approval action: {action!r}')
    issued_at = issued_at or timezone.now()
    payload = {
        'requestId': str(booking_request_id),
        'action': action,
        'issuedAt': int(issued_at.timestamp()),
    }
    return _signer(secret).sign_object(payload)


def verify_approval_token(token: str, secret: str, max_age: timedelta,
                          now: datetime = None) -> ApprovalClaims:
    """
    Verify signature (constant-time), payload shape and age.
    Raises TokenInvalid with the specific internal reason on any failure.
    """
    if not token or not isinstance(token, str):
        raise TokenInvalid(TokenInvalid.MALFORMED)

    try:
        payload = _signer(secret).unsign_object(token)
    except signing.BadSignature:
        raise TokenInvalid(TokenInvalid.BAD_SIGNATURE)
    except (ValueError, UnicodeDecodeError):
        raise TokenInvalid(TokenInvalid.MALFORMED)

    if not isinstance(payload, dict):
        raise TokenInvalid(TokenInvalid.MALFORMED)
    request_id = payload.get('requestId')
    action = payload.get('action')
    issued_at = payload.get('issuedAt')
    if not request_id or action not in ACTIONS or not isinstance(issued_at, int):
        raise TokenInvalid(TokenInvalid.MALFORMED)

    issued = datetime.fromtimestamp(issued_at, tz=dt_timezone.utc)
    now = now or timezone.now()
    if now - issued > max_age:
        raise TokenInvalid(TokenInvalid.EXPIRED)

    return ApprovalClaims(booking_request_id=request_id, action=action, issued_at=issued)


def bearer_secret_matches(header_value: str, secret: str) -> bool:
    """
    Constant-time check of an `Authorization: Bearer <secret>` header.
    An unset secret never matches.
    """
    if not secret or not header_value:
        return False
    scheme, _, presented = header_value.partition(' ')
    if scheme.lower() != 'bearer':
        return False
    return constant_time_compare(presented.strip(), secret)
