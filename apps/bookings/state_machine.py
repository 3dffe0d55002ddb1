"""
Booking request state machine — pure, no database, mail or clock access.

A trigger is first decoded into a Command, then applied to the request's
current state. apply() either returns the Transition (new state plus the
effects the caller must carry out) or raises StateConflict. BookingWorkflow
persists the transition with a compare-and-swap and executes the effects.

    draft ──► submitted ──► approved ──► booked
                  │             │  ▲        │
                  ▼             ▼  │        ▼
              rejected     needs_resolution cancelled

Public API:
  Commands: SubmitPublic, SubmitInternal, SaveDraft, Edit, Resend, Approve,
            Reject, MarkBooked, FlagConflict, Resolve, Cancel, Reschedule
  Effects:  Notify, Audit, ConsumeLink, ScheduleEvent, CancelEvent
  decode(claims, reason='')
  apply(command, status, needs_resolution=False)
"""
from dataclasses import dataclass, field

from apps.activity.models import ActivityAction

from .exceptions import StateConflict
from .models import BookingRequestStatus as S
from .tokens import APPROVE, REJECT


# ── Commands ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SubmitPublic:
    pass


@dataclass(frozen=True)
class SubmitInternal:
    pass


@dataclass(frozen=True)
class SaveDraft:
    pass


@dataclass(frozen=True)
class Edit:
    pass


@dataclass(frozen=True)
class Resend:
    pass


@dataclass(frozen=True)
class Approve:
    pass


@dataclass(frozen=True)
class Reject:
    reason: str = ''


@dataclass(frozen=True)
class MarkBooked:
    pass


@dataclass(frozen=True)
class FlagConflict:
    pass


@dataclass(frozen=True)
class Resolve:
    pass


@dataclass(frozen=True)
class Cancel:
    reason: str = ''


@dataclass(frozen=True)
class Reschedule:
    pass


# ── Effects ───────────────────────────────────────────────────────────────────

@dataclass
class Notify:
    APPROVAL_REQUEST = 'approval_request'
    REQUESTER_COPY   = 'requester_copy'
    APPROVED         = 'approved'
    REJECTED         = 'rejected'
    BOOKED           = 'booked'
    CONFLICT         = 'conflict'
    CANCELLED        = 'cancelled'

    kind: str
    params: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Audit:
    action: str


@dataclass(frozen=True)
class ConsumeLink:
    pass


@dataclass(frozen=True)
class ScheduleEvent:
    pass


@dataclass(frozen=True)
class CancelEvent:
    pass


@dataclass(frozen=True)
class Transition:
    from_status: str
    to_status: str
    needs_resolution: bool = False
    effects: list = field(default_factory=list)

    @property
    def notifications(self) -> list:
        return [e for e in self.effects if isinstance(e, Notify)]


# ── Transition table ──────────────────────────────────────────────────────────
# None stands for "no request yet".

ALLOWED_FROM = {
    SubmitPublic:   {None},
    SubmitInternal: {None, S.DRAFT},
    SaveDraft:      {None, S.DRAFT},
    Edit:           {S.DRAFT, S.SUBMITTED},
    Resend:         {S.SUBMITTED},
    Approve:        {S.SUBMITTED},
    Reject:         {S.SUBMITTED},
    MarkBooked:     {S.APPROVED},
    FlagConflict:   {S.APPROVED},
    Resolve:        {S.APPROVED},
    Cancel:         {S.DRAFT, S.SUBMITTED, S.APPROVED, S.BOOKED},
    Reschedule:     {S.BOOKED},
}


def decode(claims, reason: str = ''):
    """Turn verified approval-token claims into the command they encode."""
    if claims.action == APPROVE:
        return Approve()
    if claims.action == REJECT:
        return Reject(reason=reason.strip())
    raise ValueError(f'Unknown approval action: {claims.action!r}')


def _target(command, status, needs_resolution):
    """(to_status, needs_resolution, effects) for a command already known to be allowed."""
    if isinstance(command, SubmitPublic):
        return S.SUBMITTED, False, [
            ConsumeLink(), Audit(ActivityAction.CREATE), Notify(Notify.APPROVAL_REQUEST),
        ]

    if isinstance(command, SubmitInternal):
        action = ActivityAction.CREATE if status is None else ActivityAction.SEND
        return S.SUBMITTED, False, [
            Audit(action), Notify(Notify.APPROVAL_REQUEST), Notify(Notify.REQUESTER_COPY),
        ]

    if isinstance(command, SaveDraft):
        action = ActivityAction.CREATE if status is None else ActivityAction.UPDATE
        return S.DRAFT, False, [Audit(action)]

    if isinstance(command, Edit):
        return status, False, [Audit(ActivityAction.UPDATE)]

    if isinstance(command, Resend):
        return status, False, [Audit(ActivityAction.RESEND), Notify(Notify.APPROVAL_REQUEST)]

    if isinstance(command, Approve):
        return S.APPROVED, False, [
            Audit(ActivityAction.APPROVE), Notify(Notify.APPROVED), ScheduleEvent(),
        ]

    if isinstance(command, Reject):
        return S.REJECTED, False, [
            Audit(ActivityAction.REJECT), Notify(Notify.REJECTED, {'reason': command.reason}),
        ]

    if isinstance(command, MarkBooked):
        return S.BOOKED, False, [Audit(ActivityAction.BOOK), Notify(Notify.BOOKED)]

    if isinstance(command, FlagConflict):
        if needs_resolution:
            # Already flagged: operators have been told once
            return S.APPROVED, True, [Audit(ActivityAction.CONFLICT)]
        return S.APPROVED, True, [Audit(ActivityAction.CONFLICT), Notify(Notify.CONFLICT)]

    if isinstance(command, Resolve):
        return S.APPROVED, True, [ScheduleEvent()]

    if isinstance(command, Cancel):
        effects = [Audit(ActivityAction.CANCEL)]
        if status in (S.APPROVED, S.BOOKED):
            effects.append(CancelEvent())
        if status != S.DRAFT:
            effects.append(Notify(Notify.CANCELLED, {'reason': command.reason}))
        return S.CANCELLED, False, effects

    if isinstance(command, Reschedule):
        return S.BOOKED, False, [Audit(ActivityAction.RESCHEDULE), CancelEvent(), ScheduleEvent()]

    raise TypeError(f'Unknown command: {command!r}')


def apply(command, status, needs_resolution: bool = False) -> Transition:
    """
    Compute the transition for `command` from `status`.

    Raises:
      StateConflict — the command is not valid from the current state
                      (replayed approval link, action on a terminal request, ...)
    """
    allowed = ALLOWED_FROM.get(type(command))
    if allowed is None:
        raise TypeError(f'Unknown command: {command!r}')
    if status not in allowed:
        raise StateConflict(status, attempted=type(command).__name__)
    if isinstance(command, Resolve) and not needs_resolution:
        raise StateConflict(status, attempted='Resolve')

    to_status, flagged, effects = _target(command, status, needs_resolution)
    return Transition(
        from_status=status,
        to_status=to_status,
        needs_resolution=flagged,
        effects=effects,
    )
