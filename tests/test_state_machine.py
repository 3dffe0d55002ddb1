from datetime import datetime, timezone as dt_timezone

import pytest

from apps.activity.models import ActivityAction
from apps.bookings import state_machine as sm
from apps.bookings.exceptions import StateConflict
from apps.bookings.models import BookingRequestStatus as S
from apps.bookings.tokens import APPROVE, REJECT, ApprovalClaims

NOW = datetime(2026, 1, 1, tzinfo=dt_timezone.utc)

ALL_COMMANDS = [
    sm.SubmitPublic(), sm.SubmitInternal(), sm.SaveDraft(), sm.Edit(), sm.Resend(),
    sm.Approve(), sm.Reject(), sm.MarkBooked(), sm.FlagConflict(), sm.Resolve(),
    sm.Cancel(), sm.Reschedule(),
]


def kinds(transition):
    return [n.kind for n in transition.notifications]


def test_public_submission_consumes_the_link_before_anything_else():
    t = sm.apply(sm.SubmitPublic(), None)
    assert (t.from_status, t.to_status) == (None, S.SUBMITTED)
    assert isinstance(t.effects[0], sm.ConsumeLink)
    assert sm.Audit(ActivityAction.CREATE) in t.effects
    assert kinds(t) == [sm.Notify.APPROVAL_REQUEST]


def test_internal_submission_copies_the_requester():
    new = sm.apply(sm.SubmitInternal(), None)
    from_draft = sm.apply(sm.SubmitInternal(), S.DRAFT)
    assert new.to_status == from_draft.to_status == S.SUBMITTED
    assert kinds(new) == [sm.Notify.APPROVAL_REQUEST, sm.Notify.REQUESTER_COPY]
    assert sm.Audit(ActivityAction.CREATE) in new.effects
    assert sm.Audit(ActivityAction.SEND) in from_draft.effects


def test_draft_never_notifies():
    t = sm.apply(sm.SaveDraft(), None)
    assert t.to_status == S.DRAFT
    assert t.notifications == []


def test_approve_notifies_and_asks_for_scheduling():
    t = sm.apply(sm.Approve(), S.SUBMITTED)
    assert t.to_status == S.APPROVED
    assert kinds(t) == [sm.Notify.APPROVED]
    assert sm.ScheduleEvent() in t.effects


def test_reject_carries_the_reason():
    t = sm.apply(sm.Reject(reason='Dates taken'), S.SUBMITTED)
    assert t.to_status == S.REJECTED
    assert t.notifications == [sm.Notify(sm.Notify.REJECTED, {'reason': 'Dates taken'})]


def test_booking_clears_the_flag():
    t = sm.apply(sm.MarkBooked(), S.APPROVED, needs_resolution=True)
    assert t.to_status == S.BOOKED
    assert t.needs_resolution is False
    assert kinds(t) == [sm.Notify.BOOKED]


def test_conflict_notifies_operators_only_once():
    first = sm.apply(sm.FlagConflict(), S.APPROVED, needs_resolution=False)
    again = sm.apply(sm.FlagConflict(), S.APPROVED, needs_resolution=True)
    assert first.to_status == again.to_status == S.APPROVED
    assert first.needs_resolution and again.needs_resolution
    assert kinds(first) == [sm.Notify.CONFLICT]
    assert again.notifications == []


def test_resolve_requires_a_flagged_request():
    t = sm.apply(sm.Resolve(), S.APPROVED, needs_resolution=True)
    assert t.effects == [sm.ScheduleEvent()]
    with pytest.raises(StateConflict):
        sm.apply(sm.Resolve(), S.APPROVED, needs_resolution=False)


@pytest.mark.parametrize('status, frees_event, notifies', [
    (S.DRAFT, False, False),
    (S.SUBMITTED, False, True),
    (S.APPROVED, True, True),
    (S.BOOKED, True, True),
])
def test_cancel(status, frees_event, notifies):
    t = sm.apply(sm.Cancel(reason='Merchant withdrew'), status)
    assert t.to_status == S.CANCELLED
    assert (sm.CancelEvent() in t.effects) is frees_event
    assert bool(t.notifications) is notifies


def test_reschedule_replaces_the_event():
    t = sm.apply(sm.Reschedule(), S.BOOKED)
    assert t.to_status == S.BOOKED
    assert t.effects.index(sm.CancelEvent()) < t.effects.index(sm.ScheduleEvent())


@pytest.mark.parametrize('status', [S.REJECTED, S.CANCELLED])
@pytest.mark.parametrize('command', ALL_COMMANDS, ids=lambda c: type(c).__name__)
def test_terminal_states_are_dead_ends(status, command):
    with pytest.raises(StateConflict) as exc:
        sm.apply(command, status)
    assert exc.value.code == 'already_resolved'
    assert exc.value.current_status == status


@pytest.mark.parametrize('status', [S.APPROVED, S.BOOKED, S.REJECTED])
@pytest.mark.parametrize('command', [sm.Approve(), sm.Reject()], ids=['approve', 'reject'])
def test_decisions_only_apply_to_submitted_requests(status, command):
    with pytest.raises(StateConflict):
        sm.apply(command, status)


def test_requests_cannot_be_submitted_twice():
    with pytest.raises(StateConflict):
        sm.apply(sm.SubmitInternal(), S.SUBMITTED)
    with pytest.raises(StateConflict):
        sm.apply(sm.SubmitPublic(), S.DRAFT)


def test_decode_turns_claims_into_commands():
    approve = ApprovalClaims(booking_request_id='x', action=APPROVE, issued_at=NOW)
    reject = ApprovalClaims(booking_request_id='x', action=REJECT, issued_at=NOW)
    assert sm.decode(approve) == sm.Approve()
    assert sm.decode(reject, reason='  No stock ') == sm.Reject(reason='No stock')
