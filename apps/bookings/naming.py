"""
Display-name composition for booking requests.

Format:  "<merchant> | #<sequence> | <first pricing option title>"
The title part is omitted when the first option has no title.

Public API:
  build_request_name(merchant, sequence, first_title='')
  extract_business_name(name)
  extract_request_number(name)
  next_sequence_number(merchant)
  build_category_key(parent, *subcategories)
"""
import re

from django.db.models import Max

SEPARATOR = ' | '

_NUMBER_PART = re.compile(r'^#(\d+)$')


def build_request_name(merchant: str, sequence: int, first_title: str = '') -> str:
    parts = [merchant.strip(), f'#{sequence}']
    if first_title and first_title.strip():
        parts.append(first_title.strip())
    return SEPARATOR.join(parts)


def _split(name: str):
    """
    Locate the '#<n>' part. Merchant names may themselves contain ' | ',
    so the first numeric part from the left marks the boundary.
    """
    parts = name.split(SEPARATOR)
    for index, part in enumerate(parts):
        match = _NUMBER_PART.match(part.strip())
        if match and index > 0:
            return SEPARATOR.join(parts[:index]), int(match.group(1))
    return name, None


def extract_business_name(name: str) -> str:
    """Recover the merchant name from a composed request name."""
    if not name:
        return ''
    merchant, _ = _split(name)
    return merchant.strip()


def extract_request_number(name: str):
    """Recover the per-merchant sequence number; None if the name has none."""
    if not name:
        return None
    _, number = _split(name)
    return number


def next_sequence_number(merchant: str) -> int:
    """Next per-merchant sequence number (max + 1). Uniqueness is enforced in the DB."""
    from apps.bookings.models import BookingRequest

    current = (
        BookingRequest.objects
        .filter(merchant_name=merchant.strip())
        .aggregate(top=Max('sequence_number'))['top']
    )
    return (current or 0) + 1


def build_category_key(parent=None, *subcategories) -> str:
    """
    Standardised category key "PARENT:SUB1:SUB2" (empty parts dropped).
    A legacy "A > B > C" string passed as parent is normalised to "A:B:C".
    """
    if not parent:
        return ''
    parts = [p.strip() for p in re.split(r'\s*(?:>|:)\s*', parent.strip()) if p.strip()]
    parts += [s.strip() for s in subcategories if s and s.strip()]
    return ':'.join(parts)
