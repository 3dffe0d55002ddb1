"""
Roles and permission checks.

Every protected operation has one explicit check function here; views and
the workflow call these instead of comparing role strings themselves.

Public API:
  Actor, EXTERNAL, SYSTEM
  can_submit(actor)
  can_issue_links(actor)
  can_resend(actor, booking_request)
  can_edit(actor, booking_request)
  can_cancel(actor, booking_request)
  can_reschedule(actor)
  can_resolve(actor)
  require(allowed, action)
  get_current_actor(request)
"""
import logging
from dataclasses import dataclass

from apps.bookings.exceptions import ActionNotPermitted
from apps.bookings.models import BookingRequestStatus

from .models import Role, UserProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    email: str = ''
    name: str = ''

    @property
    def label(self) -> str:
        return self.email or self.name or self.id

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


# Merchants submitting through a public link or clicking an emailed link
EXTERNAL = Actor(id='external', role=Role.SALES, name='external')
# Scheduled sweeps
SYSTEM = Actor(id='system', role=Role.ADMIN, name='system')

SUBMIT_ROLES = {Role.ADMIN, Role.SALES}
LINK_ROLES = {Role.ADMIN, Role.SALES}

# Creator may withdraw these; admins may cancel anything non-terminal.
CREATOR_CANCELLABLE = {BookingRequestStatus.DRAFT, BookingRequestStatus.SUBMITTED}
ADMIN_CANCELLABLE = CREATOR_CANCELLABLE | {
    BookingRequestStatus.APPROVED,
    BookingRequestStatus.BOOKED,
}


def can_submit(actor: Actor) -> bool:
    return actor.role in SUBMIT_ROLES


def can_issue_links(actor: Actor) -> bool:
    return actor.role in LINK_ROLES


def can_resend(actor: Actor, booking_request) -> bool:
    return actor.is_admin or booking_request.created_by == actor.id


def can_edit(actor: Actor, booking_request) -> bool:
    return actor.is_admin or booking_request.created_by == actor.id


def can_cancel(actor: Actor, booking_request) -> bool:
    if actor.is_admin:
        return booking_request.status in ADMIN_CANCELLABLE
    return (
        booking_request.created_by == actor.id
        and booking_request.status in CREATOR_CANCELLABLE
    )


def can_reschedule(actor: Actor) -> bool:
    return actor.is_admin


def can_resolve(actor: Actor) -> bool:
    return actor.is_admin


def require(allowed: bool, action: str) -> None:
    """Raise ActionNotPermitted unless the preceding check passed."""
    if not allowed:
        raise ActionNotPermitted(f'Not allowed to {action}.')


def get_current_actor(request):
    """
    Resolve the authenticated Django user to an Actor.
    Returns None for anonymous requests.

    Superusers are always admin; everyone else gets the role stored on their
    profile, defaulting to sales on first sight (as sign-up does).
    """
    user = getattr(request, 'user', None)
    if user is None or not user.is_authenticated:
        return None

    if user.is_superuser:
        role = Role.ADMIN
    else:
        profile, created = UserProfile.objects.get_or_create(user=user)
        if created:
            logger.info('Created %s profile for user %s', profile.role, user.pk)
        role = Role(profile.role)

    return Actor(
        id=str(user.pk),
        role=role,
        email=user.email or '',
        name=user.get_full_name() or user.get_username(),
    )
