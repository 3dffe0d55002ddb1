from datetime import date, datetime, timezone as dt_timezone
from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
from django.db import OperationalError

from apps.activity.models import ActivityLog
from apps.bookings import links
from apps.bookings.exceptions import GENERIC_LINK_ERROR, StorageUnavailable
from apps.bookings.models import BookingRequest, BookingRequestStatus as S, RequestSource
from apps.bookings.tokens import APPROVE, REJECT, issue_approval_token
from apps.scheduling.models import CalendarEvent, CalendarEventStatus

pytestmark = pytest.mark.django_db


@pytest.fixture
def run(django_capture_on_commit_callbacks):
    """Run a workflow call and flush its on-commit notifications."""
    def _run(call, *args, **kwargs):
        with django_capture_on_commit_callbacks(execute=True):
            return call(*args, **kwargs)
    return _run


@pytest.fixture
def submitted(workflow, run, sales_actor, payload):
    def _submit(**overrides):
        result = run(workflow.submit_internal, sales_actor, payload(**overrides))
        assert result.success, result.errors
        return result.booking_request
    return _submit


def token_for(config, br, action):
    return issue_approval_token(br.pk, action, config.approval_secret)


def actions_for(br):
    return list(
        ActivityLog.objects.filter(entity_id=str(br.pk)).order_by('created_at').values_list('action', flat=True)
    )


# ── Public link submission ────────────────────────────────────────────────────

class TestPublicSubmission:

    def test_submit_then_reuse_the_same_link(self, workflow, run, payload, mailoutbox):
        link = links.issue()

        result = run(workflow.submit_public, link.token, payload())
        assert result.success
        br = result.booking_request
        assert br.status == S.SUBMITTED
        assert br.source == RequestSource.PUBLIC_LINK
        assert br.name == 'Café Luna | #1 | 2x1 Brunch'
        assert links.validate(link.token).booking_request == br

        again = run(workflow.submit_public, link.token, payload(merchant_name='Otra'))
        assert not again.success
        assert again.code == 'token_invalid'
        assert again.message == GENERIC_LINK_ERROR
        assert again.http_status == 410
        assert BookingRequest.objects.count() == 1
        assert links.validate(link.token).error == 'already_used'
        assert len(mailoutbox) == 1

    def test_approval_email_goes_to_all_business_contacts(self, workflow, run, payload, mailoutbox, config):
        link = links.issue()
        br = run(workflow.submit_public, link.token, payload()).booking_request

        assert len(mailoutbox) == 1
        message = mailoutbox[0]
        assert message.to == ['owner@cafeluna.test', 'manager@cafeluna.test']
        assert '/booking-requests/approve/?token=' in message.body
        assert '/booking-requests/reject/?token=' in message.body
        assert br.name in message.subject

    def test_unknown_link_gives_the_generic_error(self, workflow, run, payload):
        result = run(workflow.submit_public, 'made-up', payload())
        assert result.code == 'token_invalid'
        assert result.message == GENERIC_LINK_ERROR
        assert BookingRequest.objects.count() == 0

    def test_invalid_payload_leaves_the_link_unused(self, workflow, run, payload):
        link = links.issue()
        result = run(workflow.submit_public, link.token, payload(pricing_options=[]))
        assert result.code == 'validation_error'
        assert 'pricing_options' in result.errors
        assert links.validate(link.token).valid

    def test_losing_a_consume_race_rolls_back_the_request(self, workflow, run, payload, make_request):
        link = links.issue()
        real_validate = links.validate

        def stale_validate(token):
            # Another submission consumes the link between our check and our write
            check = real_validate(token)
            links.consume(token, make_request(merchant='Winner').pk)
            return check

        with mock.patch.object(links, 'validate', side_effect=stale_validate):
            result = run(workflow.submit_public, link.token, payload())

        assert result.code == 'token_invalid'
        assert not BookingRequest.objects.filter(merchant_name='Café Luna').exists()


# ── Internal submission / drafts / edits ──────────────────────────────────────

class TestInternalSubmission:

    def test_submit_creates_and_copies_the_requester(self, workflow, run, payload, sales_actor, mailoutbox):
        result = run(workflow.submit_internal, sales_actor, payload())
        br = result.booking_request
        assert br.status == S.SUBMITTED
        assert br.created_by == sales_actor.id
        assert br.requester_email == sales_actor.email
        recipients = [m.to for m in mailoutbox]
        assert ['owner@cafeluna.test', 'manager@cafeluna.test'] in recipients
        assert [sales_actor.email] in recipients
        copy = next(m for m in mailoutbox if m.to == [sales_actor.email])
        assert 'approve/?token=' not in copy.body
        assert actions_for(br) == ['CREATE']

    def test_sequence_increments_per_merchant(self, submitted):
        assert submitted().sequence_number == 1
        assert submitted().sequence_number == 2
        assert submitted(merchant_name='Spa Serena').sequence_number == 1

    def test_editor_may_not_submit(self, workflow, run, payload, editor_actor):
        result = run(workflow.submit_internal, editor_actor, payload())
        assert result.code == 'forbidden'
        assert result.http_status == 403
        assert BookingRequest.objects.count() == 0

    def test_draft_then_send(self, workflow, run, payload, sales_actor, mailoutbox):
        draft = run(workflow.save_draft, sales_actor, payload()).booking_request
        assert draft.status == S.DRAFT
        assert mailoutbox == []

        sent = run(workflow.submit_internal, sales_actor, payload(description='Final copy'), request_id=draft.pk)
        assert sent.success
        draft.refresh_from_db()
        assert draft.status == S.SUBMITTED
        assert draft.description == 'Final copy'
        assert actions_for(draft) == ['CREATE', 'SEND']
        assert len(mailoutbox) == 2

    def test_edit_pending_is_last_writer_wins(self, workflow, run, submitted, sales_actor, payload):
        br = submitted()
        run(workflow.edit_pending, sales_actor, br.pk, payload(description='First edit'))
        result = run(workflow.edit_pending, sales_actor, br.pk, payload(
            description='Second edit',
            pricing_options=[{'title': 'Nuevo brunch', 'price': '12.00', 'terms': ''}],
        ))
        assert result.success
        br.refresh_from_db()
        assert br.description == 'Second edit'
        assert br.name == 'Café Luna | #1 | Nuevo brunch'
        assert br.status == S.SUBMITTED

    def test_merchant_cannot_change_on_edit(self, workflow, run, submitted, sales_actor, payload):
        br = submitted()
        result = run(workflow.edit_pending, sales_actor, br.pk, payload(merchant_name='Otra'))
        assert result.code == 'validation_error'
        assert 'merchant_name' in result.errors

    def test_other_sales_user_cannot_edit(self, workflow, run, submitted, other_sales_actor, payload):
        result = run(workflow.edit_pending, other_sales_actor, submitted().pk, payload())
        assert result.code == 'forbidden'

    def test_unknown_request_is_not_found(self, workflow, run, admin_actor, payload):
        result = run(workflow.edit_pending, admin_actor, '00000000-0000-0000-0000-000000000000', payload())
        assert result.code == 'not_found'
        result = run(workflow.cancel, admin_actor, 'not-a-uuid')
        assert result.code == 'not_found'


# ── Approval links ────────────────────────────────────────────────────────────

class TestApprovalLinks:

    def test_decision_urls_carry_verifiable_tokens(self, workflow, submitted):
        br = submitted()
        approve_url, reject_url = workflow.decision_urls(br)
        assert urlparse(approve_url).path == '/booking-requests/approve/'
        assert urlparse(reject_url).path == '/booking-requests/reject/'

        token = parse_qs(urlparse(approve_url).query)['token'][0]
        result = workflow.preview_decision(token, APPROVE)
        assert result.success
        assert result.booking_request == br

    def test_approve_books_the_request(self, workflow, run, submitted, config, mailoutbox):
        br = submitted()
        mailoutbox.clear()

        result = run(workflow.redeem_approval, token_for(config, br, APPROVE))
        assert result.success
        br.refresh_from_db()
        assert br.status == S.BOOKED
        assert br.processed_by == br.contact_email
        assert br.processed_at is not None
        assert result.event.status == CalendarEventStatus.SCHEDULED
        assert actions_for(br) == ['CREATE', 'APPROVE', 'BOOK']
        subjects = [m.subject for m in mailoutbox]
        assert any(s.startswith('Booking request approved') for s in subjects)
        assert any(s.startswith('Booking confirmed') for s in subjects)
        assert all(m.to == ['sales@osdeals.test'] for m in mailoutbox)

    def test_redeeming_twice_has_no_further_effect(self, workflow, run, submitted, config, mailoutbox):
        br = submitted()
        token = token_for(config, br, APPROVE)
        run(workflow.redeem_approval, token)
        mails_after_first = len(mailoutbox)
        logs_after_first = ActivityLog.objects.count()

        again = run(workflow.redeem_approval, token)
        assert not again.success
        assert again.code == 'already_resolved'
        assert again.http_status == 409
        assert len(mailoutbox) == mails_after_first
        assert ActivityLog.objects.count() == logs_after_first
        assert CalendarEvent.objects.filter(booking_request=br).count() == 1

    def test_reject_then_approve_is_a_state_conflict(self, workflow, run, submitted, config, mailoutbox):
        br = submitted()
        mailoutbox.clear()

        rejected = run(workflow.redeem_approval, token_for(config, br, REJECT), reason='Fechas ocupadas')
        assert rejected.success
        br.refresh_from_db()
        assert br.status == S.REJECTED
        assert br.rejection_reason == 'Fechas ocupadas'
        assert len(mailoutbox) == 1
        assert 'Fechas ocupadas' in mailoutbox[0].body

        approved = run(workflow.redeem_approval, token_for(config, br, APPROVE))
        assert approved.code == 'already_resolved'
        br.refresh_from_db()
        assert br.status == S.REJECTED
        assert len(mailoutbox) == 1
        assert not CalendarEvent.objects.exists()

    def test_token_for_the_other_action_is_refused(self, workflow, run, submitted, config):
        br = submitted()
        result = run(workflow.redeem_approval, token_for(config, br, APPROVE), expected_action=REJECT)
        assert result.code == 'token_invalid'
        br.refresh_from_db()
        assert br.status == S.SUBMITTED

    def test_expired_token(self, workflow, run, submitted, config):
        br = submitted()
        token = issue_approval_token(
            br.pk, APPROVE, config.approval_secret,
            issued_at=datetime(2020, 1, 1, tzinfo=dt_timezone.utc),
        )
        result = run(workflow.redeem_approval, token)
        assert result.code == 'token_invalid'
        assert result.message == GENERIC_LINK_ERROR

    def test_preview_of_a_resolved_request(self, workflow, run, submitted, config):
        br = submitted()
        run(workflow.reject, br.pk, reason='No')
        result = workflow.preview_decision(token_for(config, br, REJECT), REJECT)
        assert result.code == 'already_resolved'
        assert result.booking_request == br


# ── Scheduling conflicts ──────────────────────────────────────────────────────

class TestSchedulingConflicts:

    def test_cancel_between_approval_and_scheduling(self, workflow, run, submitted, mailoutbox):
        br = submitted()
        mailoutbox.clear()
        real_schedule = workflow._schedule

        def cancelled_first(request, *args, **kwargs):
            BookingRequest.objects.filter(pk=request.pk).update(status=S.CANCELLED)
            return real_schedule(request, *args, **kwargs)

        with mock.patch.object(workflow, '_schedule', side_effect=cancelled_first):
            result = run(workflow.approve, br.pk)

        assert result.success
        assert result.code == 'ok'
        assert result.event is None
        assert result.booking_request.status == S.CANCELLED
        assert not CalendarEvent.objects.filter(booking_request=br).exists()
        assert 'APPROVE' in actions_for(br)
        assert any(m.subject.startswith('Booking request approved') for m in mailoutbox)

    def test_booking_reports_advisory_placement_warnings(self, workflow, run, submitted):
        first = submitted(start_date='2026-03-02', end_date='2026-03-08')
        run(workflow.approve, first.pk)
        second = submitted(category='Belleza', start_date='2026-03-20', end_date='2026-03-22')

        result = run(workflow.approve, second.pk)
        assert result.success
        assert result.event is not None
        warnings = result.data['warnings']
        assert [w['rule'] for w in warnings] == ['merchant_repeat']
        assert warnings[0]['requestId'] == str(first.pk)
        assert result.as_dict()['warnings'] == warnings

    def test_no_warnings_key_when_placement_is_clean(self, workflow, run, submitted):
        result = run(workflow.approve, submitted().pk)
        assert 'warnings' not in result.data

    def test_second_overlapping_approval_needs_resolution(self, workflow, run, submitted, config, mailoutbox):
        first = submitted(start_date='2026-03-02', end_date='2026-03-08')
        second = submitted(start_date='2026-03-05', end_date='2026-03-10')

        run(workflow.approve, first.pk)
        mailoutbox.clear()
        result = run(workflow.approve, second.pk)

        first.refresh_from_db()
        second.refresh_from_db()
        assert first.status == S.BOOKED
        assert second.status == S.APPROVED
        assert second.needs_resolution
        assert result.success
        assert [e.booking_request_id for e in result.conflicts] == [first.pk]
        assert not CalendarEvent.objects.filter(booking_request=second).exists()

        operator_mail = [m for m in mailoutbox if m.to == ['ops@osdeals.test']]
        assert len(operator_mail) == 1
        assert first.name in operator_mail[0].body

    def test_retrying_a_flagged_request_does_not_renotify(self, workflow, run, submitted, mailoutbox):
        first = submitted()
        second = submitted()
        run(workflow.approve, first.pk)
        run(workflow.approve, second.pk)
        mailoutbox.clear()

        result = run(workflow.schedule_approved, second.pk)
        assert not result.success
        assert result.code == 'scheduling_conflict'
        assert result.http_status == 409
        assert result.conflicts
        assert mailoutbox == []
        assert actions_for(second).count('CONFLICT') == 2

    def test_resolve_with_new_dates(self, workflow, run, submitted, admin_actor):
        first = submitted(start_date='2026-03-02', end_date='2026-03-08')
        second = submitted(start_date='2026-03-05', end_date='2026-03-10')
        run(workflow.approve, first.pk)
        run(workflow.approve, second.pk)

        still = run(workflow.resolve_conflict, admin_actor, second.pk, '2026-03-08', '2026-03-12')
        assert still.code == 'scheduling_conflict'

        result = run(workflow.resolve_conflict, admin_actor, second.pk, '2026-03-09', '2026-03-12')
        assert result.success
        second.refresh_from_db()
        assert second.status == S.BOOKED
        assert not second.needs_resolution
        assert second.start_date == date(2026, 3, 9)

    def test_resolve_after_the_blocker_is_cancelled(self, workflow, run, submitted, admin_actor):
        first, second = submitted(), submitted()
        run(workflow.approve, first.pk)
        run(workflow.approve, second.pk)
        run(workflow.cancel, admin_actor, first.pk, reason='Merchant withdrew')

        result = run(workflow.resolve_conflict, admin_actor, second.pk)
        assert result.success
        assert result.event.booking_request_id == second.pk

    def test_only_admins_resolve(self, workflow, run, submitted, sales_actor):
        first, second = submitted(), submitted()
        run(workflow.approve, first.pk)
        run(workflow.approve, second.pk)
        assert run(workflow.resolve_conflict, sales_actor, second.pk).code == 'forbidden'

    def test_resolve_requires_a_flagged_request(self, workflow, run, submitted, admin_actor):
        br = submitted()
        run(workflow.approve, br.pk)
        assert run(workflow.resolve_conflict, admin_actor, br.pk).code == 'already_resolved'


# ── Cancel / reschedule / resend ──────────────────────────────────────────────

class TestDashboardActions:

    def test_creator_cancels_a_submitted_request(self, workflow, run, submitted, sales_actor, config):
        br = submitted()
        result = run(workflow.cancel, sales_actor, br.pk, reason='Duplicate')
        assert result.success
        br.refresh_from_db()
        assert br.status == S.CANCELLED
        assert run(workflow.redeem_approval, token_for(config, br, APPROVE)).code == 'already_resolved'

    def test_admin_cancel_frees_the_event(self, workflow, run, submitted, sales_actor, admin_actor):
        br = submitted()
        event = run(workflow.approve, br.pk).event

        assert run(workflow.cancel, sales_actor, br.pk).code == 'forbidden'
        assert run(workflow.cancel, admin_actor, br.pk).success
        event.refresh_from_db()
        assert event.status == CalendarEventStatus.CANCELLED

        again = run(workflow.cancel, admin_actor, br.pk)
        assert again.code == 'already_resolved'
        assert actions_for(br).count('CANCEL') == 1

    def test_reschedule_replaces_the_event(self, workflow, run, submitted, admin_actor):
        br = submitted()
        old_event = run(workflow.approve, br.pk).event

        result = run(workflow.reschedule, admin_actor, br.pk, '2026-04-01', '2026-04-03')
        assert result.success
        old_event.refresh_from_db()
        assert old_event.is_cancelled
        assert result.event.pk != old_event.pk
        br.refresh_from_db()
        assert br.status == S.BOOKED
        assert (br.start_date, br.end_date) == (date(2026, 4, 1), date(2026, 4, 3))
        assert 'RESCHEDULE' in actions_for(br)

    def test_conflicting_reschedule_keeps_the_old_booking(self, workflow, run, submitted, admin_actor):
        blocker = submitted(start_date='2026-04-01', end_date='2026-04-05')
        br = submitted(start_date='2026-03-01', end_date='2026-03-03')
        run(workflow.approve, blocker.pk)
        old_event = run(workflow.approve, br.pk).event

        result = run(workflow.reschedule, admin_actor, br.pk, '2026-04-04', '2026-04-06')
        assert result.code == 'scheduling_conflict'
        assert [e.booking_request_id for e in result.conflicts] == [blocker.pk]
        old_event.refresh_from_db()
        assert old_event.status == CalendarEventStatus.SCHEDULED
        br.refresh_from_db()
        assert br.start_date == date(2026, 3, 1)

    def test_reschedule_validation(self, workflow, run, submitted, admin_actor, sales_actor):
        br = submitted()
        run(workflow.approve, br.pk)
        assert run(workflow.reschedule, admin_actor, br.pk, '2026-04-05', '2026-04-01').code == 'validation_error'
        assert run(workflow.reschedule, admin_actor, br.pk, 'soon', '2026-04-01').code == 'validation_error'
        assert run(workflow.reschedule, sales_actor, br.pk, '2026-04-01', '2026-04-02').code == 'forbidden'

    def test_only_booked_requests_are_rescheduled(self, workflow, run, submitted, admin_actor):
        result = run(workflow.reschedule, admin_actor, submitted().pk, '2026-04-01', '2026-04-02')
        assert result.code == 'already_resolved'

    def test_resend_to_custom_recipients(self, workflow, run, submitted, sales_actor, mailoutbox):
        br = submitted()
        mailoutbox.clear()
        result = run(workflow.resend, sales_actor, br.pk, emails=['Boss@CafeLuna.test'])
        assert result.success
        assert [m.to for m in mailoutbox] == [['boss@cafeluna.test']]
        assert actions_for(br) == ['CREATE', 'RESEND']

    def test_resend_after_decision_is_refused(self, workflow, run, submitted, sales_actor, mailoutbox):
        br = submitted()
        run(workflow.reject, br.pk, reason='No')
        mailoutbox.clear()
        assert run(workflow.resend, sales_actor, br.pk).code == 'already_resolved'
        assert mailoutbox == []

    def test_resend_rejects_bad_addresses(self, workflow, run, submitted, sales_actor):
        result = run(workflow.resend, sales_actor, submitted().pk, emails=['nope'])
        assert result.code == 'validation_error'


# ── Public links, sweep, failures ─────────────────────────────────────────────

class TestOperations:

    def test_issue_public_link_and_email_it(self, workflow, run, sales_actor, mailoutbox):
        result = run(workflow.issue_public_link, sales_actor, 'Owner@Merchant.test')
        assert result.success
        url = result.data['url']
        assert url.startswith('http://testserver/booking-requests/public/')
        assert result.data['expiresAt'] is not None
        assert [m.to for m in mailoutbox] == [['owner@merchant.test']]
        assert url in mailoutbox[0].body
        assert ActivityLog.objects.filter(action='ISSUE_LINK', actor_id=sales_actor.id).count() == 1

    def test_editors_cannot_issue_links(self, workflow, run, editor_actor):
        assert run(workflow.issue_public_link, editor_actor).code == 'forbidden'

    def test_sweep_resumes_interrupted_approvals(self, workflow, run, make_request, mailoutbox):
        stranded = make_request(status=S.APPROVED)
        flagged = make_request(status=S.APPROVED, needs_resolution=True, start=date(2026, 6, 1), end=date(2026, 6, 2))
        make_request(status=S.SUBMITTED)

        result = run(workflow.sweep)
        assert result.success
        assert result.data['booked'] == 1
        assert result.data['flagged'] == 0
        stranded.refresh_from_db()
        flagged.refresh_from_db()
        assert stranded.status == S.BOOKED
        assert flagged.status == S.APPROVED

        assert run(workflow.sweep).data['booked'] == 0

    def test_email_failure_does_not_undo_a_transition(self, workflow, run, submitted, config):
        br = submitted()
        with mock.patch('apps.notifications.emails.EmailMultiAlternatives.send', side_effect=OSError('smtp down')):
            result = run(workflow.redeem_approval, token_for(config, br, APPROVE))
        assert result.success
        br.refresh_from_db()
        assert br.status == S.BOOKED

    def test_database_outage_propagates_as_storage_unavailable(self, workflow, submitted):
        br = submitted()
        with mock.patch.object(BookingRequest.objects, 'get', side_effect=OperationalError('down')):
            with pytest.raises(StorageUnavailable):
                workflow.approve(br.pk)

    def test_recording_mailer_sees_each_notification(self, config, run, sales_actor, payload):
        from apps.bookings.workflow import BookingWorkflow

        mailer = mock.Mock()
        workflow = BookingWorkflow(config, mailer=mailer)
        br = run(workflow.submit_internal, sales_actor, payload()).booking_request
        run(workflow.reject, br.pk, reason='Sin cupo')

        mailer.send_approval_request.assert_called_once()
        mailer.send_requester_copy.assert_called_once_with(br, sales_actor.email)
        mailer.send_request_rejected.assert_called_once()
        assert mailer.send_request_rejected.call_args.args[1] == 'Sin cupo'
