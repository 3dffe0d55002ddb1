"""
Booking workflow orchestrator.

Runs one external trigger (form submit, email-link click, dashboard action,
scheduled sweep) to completion: decode, apply the state machine, persist with
a compare-and-swap, then carry out the transition's effects. Every operation
returns a WorkflowResult; only StorageUnavailable and unexpected faults raise.

Public API:
  WorkflowResult
  BookingWorkflow(config=None, mailer=None)
    .submit_public(token, data)
    .check_public_link(token)
    .submit_internal(actor, data, request_id=None)
    .save_draft(actor, data, request_id=None)
    .edit_pending(actor, request_id, data)
    .preview_decision(token, expected_action)
    .redeem_approval(token, expected_action=None, reason='')
    .approve(request_id, processed_by='')
    .reject(request_id, reason='', processed_by='')
    .schedule_approved(request_id)
    .cancel(actor, request_id, reason='')
    .reschedule(actor, request_id, start_date, end_date)
    .resolve_conflict(actor, request_id, start_date=None, end_date=None)
    .resend(actor, request_id, emails=None)
    .issue_public_link(actor, recipient_email='')
    .sweep(now=None)
  get_workflow()
"""
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date as date_type
from functools import partial, wraps
from urllib.parse import urlencode

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, InterfaceError, OperationalError, transaction
from django.urls import reverse
from django.utils import timezone
from django.utils.dateparse import parse_date

from apps.accounts import roles
from apps.accounts.roles import EXTERNAL, SYSTEM
from apps.activity.log import log_activity, status_summary
from apps.activity.models import ActivityAction
from apps.notifications import emails
from apps.scheduling import engine as scheduler
from apps.scheduling.models import CalendarEventStatus

from . import links
from . import state_machine as sm
from .config import WorkflowConfig, get_workflow_config
from .exceptions import (
    BookingRequestNotFound,
    BookingWorkflowError,
    RequestValidationError,
    SchedulingConflict,
    StateConflict,
    StorageUnavailable,
    TokenInvalid,
)
from .forms import validate_submission
from .models import BookingRequest, BookingRequestStatus, RequestSource
from .naming import build_request_name, next_sequence_number
from .tokens import APPROVE, REJECT, issue_approval_token, verify_approval_token

logger = logging.getLogger(__name__)

CREATE_ATTEMPTS = 3

HTTP_STATUS = {
    'ok':                  200,
    'validation_error':    400,
    'forbidden':           403,
    'not_found':           404,
    'already_resolved':    409,
    'scheduling_conflict': 409,
    'token_invalid':       410,
    'storage_unavailable': 503,
}


# ── Result ────────────────────────────────────────────────────────────────────

@dataclass
class WorkflowResult:
    success: bool
    code: str = 'ok'
    message: str = ''
    booking_request: BookingRequest = None
    event: object = None
    conflicts: list = field(default_factory=list)
    errors: dict = field(default_factory=dict)
    data: dict = field(default_factory=dict)

    @classmethod
    def ok(cls, message='', **kwargs):
        return cls(success=True, message=message, **kwargs)

    @classmethod
    def from_error(cls, exc: BookingWorkflowError, **kwargs):
        return cls(success=False, code=exc.code, message=exc.message, **kwargs)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS.get(self.code, 500)

    def as_dict(self) -> dict:
        body = {'success': self.success, 'code': self.code, 'message': self.message}
        br = self.booking_request
        if br is not None:
            body['requestId'] = str(br.pk)
            body['name'] = br.name
            body['status'] = br.status
            body['needsResolution'] = br.needs_resolution
        if self.event is not None:
            body['event'] = {
                'id': str(self.event.pk),
                'resource': self.event.resource.key,
                'start': self.event.start.isoformat(),
                'end': self.event.end.isoformat(),
            }
        if self.conflicts:
            body['conflicts'] = [
                {
                    'eventId': str(e.pk),
                    'requestId': str(e.booking_request_id),
                    'name': e.name,
                    'start': e.start.isoformat(),
                    'end': e.end.isoformat(),
                }
                for e in self.conflicts
            ]
        if self.errors:
            body['errors'] = self.errors
        body.update(self.data)
        return body


def _operation(method):
    """
    Operation boundary: workflow errors become a failed WorkflowResult,
    transient database errors become StorageUnavailable.
    """
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except StorageUnavailable:
            raise
        except TokenInvalid as exc:
            # The reason stays in the log; callers only ever see the generic message
            logger.warning('%s: token rejected (%s)', method.__name__, exc.reason)
            return WorkflowResult.from_error(exc)
        except RequestValidationError as exc:
            logger.info('%s: validation failed on %s', method.__name__, sorted(exc.errors))
            return WorkflowResult.from_error(exc, errors=exc.errors)
        except SchedulingConflict as exc:
            return WorkflowResult.from_error(
                exc, conflicts=exc.conflicts, booking_request=exc.extra.get('booking_request'),
            )
        except StateConflict as exc:
            logger.info('%s: %s', method.__name__, exc.message)
            return WorkflowResult.from_error(exc, booking_request=exc.extra.get('booking_request'))
        except BookingWorkflowError as exc:
            logger.info('%s: %s (%s)', method.__name__, exc.message, exc.code)
            return WorkflowResult.from_error(exc)
        except (OperationalError, InterfaceError) as exc:
            logger.exception('%s: database unavailable', method.__name__)
            raise StorageUnavailable('The booking store is temporarily unavailable. Please retry.') from exc
    return wrapper


# ── Orchestrator ──────────────────────────────────────────────────────────────

class BookingWorkflow:

    def __init__(self, config: WorkflowConfig = None, mailer=None):
        self.config = config or get_workflow_config()
        self.mailer = mailer or emails

    # ── Loading / persisting ──────────────────────────────────────────────────

    def _load(self, request_id) -> BookingRequest:
        try:
            return BookingRequest.objects.get(pk=request_id)
        except (BookingRequest.DoesNotExist, ValidationError, ValueError):
            raise BookingRequestNotFound(f'Booking request {request_id} not found.')

    def _create(self, fields: dict, command, actor, context=None, **extra) -> BookingRequest:
        """
        Insert a new request in the state `command` leads to.
        The per-merchant sequence number is max + 1; a concurrent insert that
        took the same number trips the unique constraint and is retried.
        """
        transition = sm.apply(command, None)
        merchant = fields['merchant_name']
        first_title = fields['pricing_options'][0]['title']
        for attempt in range(1, CREATE_ATTEMPTS + 1):
            sequence = next_sequence_number(merchant)
            try:
                with transaction.atomic():
                    br = BookingRequest.objects.create(
                        name=build_request_name(merchant, sequence, first_title),
                        sequence_number=sequence,
                        status=transition.to_status,
                        **fields,
                        **extra,
                    )
                break
            except IntegrityError:
                logger.warning('Sequence %s for "%s" taken (attempt %s)', sequence, merchant, attempt)
        else:
            raise StorageUnavailable('Could not allocate a request number. Please retry.')

        self._execute(transition, br, actor, before=None, **(context or {}))
        return br

    def _transition(self, br: BookingRequest, command, actor, fields=None, **context):
        """
        Apply `command` to the stored request and persist it with a
        compare-and-swap on the status it was read in. Losing the race, or
        starting from a state the command does not accept, is a StateConflict.
        """
        try:
            transition = sm.apply(command, br.status, br.needs_resolution)
        except StateConflict as exc:
            exc.extra['booking_request'] = br
            raise

        before = status_summary(br)
        if not br.compare_and_set_status(
            transition.from_status, transition.to_status,
            needs_resolution=transition.needs_resolution, **(fields or {}),
        ):
            raise StateConflict(br.status, attempted=type(command).__name__, booking_request=br)

        self._execute(transition, br, actor, before=before, **context)
        return transition

    # ── Effects ───────────────────────────────────────────────────────────────

    def _execute(self, transition, br, actor, before=None, **context):
        """
        Carry out the effects the database transaction owns. ScheduleEvent is
        left to the caller: approval commits before scheduling starts.
        """
        for effect in transition.effects:
            if isinstance(effect, sm.ConsumeLink):
                links.consume(context['token'], br.pk)
            elif isinstance(effect, sm.Audit):
                log_activity(
                    actor, effect.action, br,
                    before=before, after=status_summary(br),
                    details=context.get('details'),
                )
            elif isinstance(effect, sm.CancelEvent):
                event = scheduler.live_event_for(br)
                if event is not None:
                    scheduler.cancel(event)
            elif isinstance(effect, sm.Notify):
                self._notify_on_commit(effect, br, **context)

    def _notify_on_commit(self, effect, br, **context):
        transaction.on_commit(partial(self._dispatch, effect, br, context))

    def _dispatch(self, effect, br, context):
        if effect.kind == sm.Notify.APPROVAL_REQUEST:
            approve_url, reject_url = self.decision_urls(br)
            self.mailer.send_approval_request(
                br, context.get('emails') or br.recipients, approve_url, reject_url,
            )
        elif effect.kind == sm.Notify.REQUESTER_COPY:
            if br.requester_email:
                self.mailer.send_requester_copy(br, br.requester_email)
        elif effect.kind == sm.Notify.APPROVED:
            self.mailer.send_request_approved(br)
        elif effect.kind == sm.Notify.REJECTED:
            self.mailer.send_request_rejected(br, effect.params.get('reason', ''))
        elif effect.kind == sm.Notify.BOOKED:
            self.mailer.send_request_booked(br, context['event'])
        elif effect.kind == sm.Notify.CONFLICT:
            self.mailer.send_scheduling_conflict(br, context['conflicts'], list(self.config.operator_emails))
        elif effect.kind == sm.Notify.CANCELLED:
            self.mailer.send_request_cancelled(br, effect.params.get('reason', ''))

    def decision_urls(self, br) -> tuple:
        """Signed approve/reject links for the approval email."""
        secret = self.config.approval_secret

        def url(action, name):
            token = issue_approval_token(br.pk, action, secret)
            return f"{self.config.site_url}{reverse(name)}?{urlencode({'token': token})}"

        return url(APPROVE, 'bookings:approve'), url(REJECT, 'bookings:reject')

    def _schedule(self, br, actor=SYSTEM):
        """
        Try to place an approved request on the calendar.
        Returns (event, []) when booked, (None, conflicts) when flagged.
        """
        try:
            with transaction.atomic():
                event = scheduler.schedule(br, self.config.default_resource, self.config.time_zone)
                self._transition(br, sm.MarkBooked(), actor, event=event)
            return event, []
        except SchedulingConflict as exc:
            br.refresh_from_db()
            with transaction.atomic():
                self._transition(
                    br, sm.FlagConflict(), actor,
                    conflicts=exc.conflicts,
                    details={'resource': exc.resource_key, 'conflicts': [str(e.pk) for e in exc.conflicts]},
                )
            return None, exc.conflicts

    def _placement_data(self, br) -> dict:
        """Advisory placement warnings for a freshly booked request."""
        warnings = scheduler.placement_warnings(
            br, self.config.time_zone,
            merchant_repeat_days=self.config.merchant_repeat_days,
            max_daily_launches=self.config.max_daily_launches,
        )
        return {'warnings': warnings} if warnings else {}

    # ── Public link submission ────────────────────────────────────────────────

    @_operation
    def check_public_link(self, token):
        check = links.validate(token)
        if not check.valid:
            raise TokenInvalid(check.error)
        return WorkflowResult.ok('Link is valid.')

    @_operation
    def submit_public(self, token, data):
        """
        Create a submitted request from an anonymous public-link submission.
        The request insert and the link consumption share one transaction, so
        a losing concurrent submission leaves no request behind.
        """
        check = links.validate(token)
        if not check.valid:
            raise TokenInvalid(check.error)
        fields = validate_submission(data)

        with transaction.atomic():
            br = self._create(
                fields, sm.SubmitPublic(), EXTERNAL,
                context={'token': token},
                source=RequestSource.PUBLIC_LINK,
            )
        logger.info('Public submission %s created from link %s…', br.pk, token[:8])
        return WorkflowResult.ok('Your request was submitted.', booking_request=br)

    # ── Internal submission ───────────────────────────────────────────────────

    def _editable_fields(self, br, fields: dict) -> dict:
        """Fields an edit may change; the merchant (and so the sequence) is fixed."""
        if fields['merchant_name'] != br.merchant_name:
            raise RequestValidationError({'merchant_name': ['Business name cannot be changed.']})
        fields = dict(fields)
        fields.pop('merchant_name')
        fields['name'] = build_request_name(
            br.merchant_name, br.sequence_number, fields['pricing_options'][0]['title'],
        )
        return fields

    @_operation
    def submit_internal(self, actor, data, request_id=None):
        """Submit a new request, or send an existing draft, for approval."""
        roles.require(roles.can_submit(actor), 'submit booking requests')
        fields = validate_submission(data)

        with transaction.atomic():
            if request_id is None:
                br = self._create(
                    fields, sm.SubmitInternal(), actor,
                    source=RequestSource.INTERNAL,
                    created_by=actor.id,
                    requester_email=actor.email,
                )
            else:
                br = self._load(request_id)
                roles.require(roles.can_edit(actor, br), 'submit this draft')
                self._transition(br, sm.SubmitInternal(), actor, fields=self._editable_fields(br, fields))
        return WorkflowResult.ok('Request sent for approval.', booking_request=br)

    @_operation
    def save_draft(self, actor, data, request_id=None):
        roles.require(roles.can_submit(actor), 'save drafts')
        fields = validate_submission(data)

        with transaction.atomic():
            if request_id is None:
                br = self._create(
                    fields, sm.SaveDraft(), actor,
                    source=RequestSource.INTERNAL,
                    created_by=actor.id,
                    requester_email=actor.email,
                )
            else:
                br = self._load(request_id)
                roles.require(roles.can_edit(actor, br), 'edit this draft')
                self._transition(br, sm.SaveDraft(), actor, fields=self._editable_fields(br, fields))
        return WorkflowResult.ok('Draft saved.', booking_request=br)

    @_operation
    def edit_pending(self, actor, request_id, data):
        """Edit a draft or submitted request. Concurrent edits: last writer wins."""
        fields = validate_submission(data)
        with transaction.atomic():
            br = self._load(request_id)
            roles.require(roles.can_edit(actor, br), 'edit this request')
            self._transition(br, sm.Edit(), actor, fields=self._editable_fields(br, fields))
        return WorkflowResult.ok('Request updated.', booking_request=br)

    # ── Approval links ────────────────────────────────────────────────────────

    def _claims(self, token, expected_action=None):
        claims = verify_approval_token(
            token, self.config.approval_secret, self.config.approval_max_age,
        )
        if expected_action and claims.action != expected_action:
            raise TokenInvalid(TokenInvalid.WRONG_ACTION)
        return claims

    @_operation
    def preview_decision(self, token, expected_action):
        """Verify a decision link without acting on it (the reject reason form)."""
        claims = self._claims(token, expected_action)
        br = self._load(claims.booking_request_id)
        try:
            sm.apply(sm.decode(claims), br.status, br.needs_resolution)
        except StateConflict as exc:
            exc.extra['booking_request'] = br
            raise
        return WorkflowResult.ok(booking_request=br)

    @_operation
    def redeem_approval(self, token, expected_action=None, reason=''):
        """
        Verify an emailed approve/reject token and apply the decision.
        Redeeming the same token again yields 'already_resolved' and no side effects.
        """
        claims = self._claims(token, expected_action)
        command = sm.decode(claims, reason)
        if isinstance(command, sm.Reject):
            return self.reject(claims.booking_request_id, reason=command.reason)
        return self.approve(claims.booking_request_id)

    @_operation
    def approve(self, request_id, processed_by=''):
        """
        submitted → approved, then schedule. Approval commits first so an
        interrupted scheduling step can be resumed by the sweep.
        """
        with transaction.atomic():
            br = self._load(request_id)
            processed_by = processed_by or br.contact_email
            self._transition(
                br, sm.Approve(), dataclasses.replace(EXTERNAL, email=processed_by),
                fields={'processed_at': timezone.now(), 'processed_by': processed_by},
            )
        logger.info('Request %s approved by %s', br.pk, processed_by)

        try:
            event, conflicts = self._schedule(br)
        except StateConflict as exc:
            # Cancelled between the approval commit and the calendar write
            logger.info('Request %s approved but not scheduled: %s', br.pk, exc.message)
            br.refresh_from_db()
            return WorkflowResult.ok(
                'Request approved. It changed before it could be scheduled.', booking_request=br,
            )
        if conflicts:
            return WorkflowResult.ok(
                'Request approved. Scheduling needs manual resolution.',
                booking_request=br, conflicts=conflicts,
            )
        return WorkflowResult.ok(
            'Request approved and booked.',
            booking_request=br, event=event, data=self._placement_data(br),
        )

    @_operation
    def reject(self, request_id, reason='', processed_by=''):
        with transaction.atomic():
            br = self._load(request_id)
            processed_by = processed_by or br.contact_email
            self._transition(
                br, sm.Reject(reason=reason), dataclasses.replace(EXTERNAL, email=processed_by),
                fields={
                    'processed_at': timezone.now(),
                    'processed_by': processed_by,
                    'rejection_reason': reason,
                },
                details={'reason': reason} if reason else None,
            )
        logger.info('Request %s rejected by %s', br.pk, processed_by)
        return WorkflowResult.ok('Request rejected.', booking_request=br)

    # ── Scheduling ────────────────────────────────────────────────────────────

    @_operation
    def schedule_approved(self, request_id):
        """Schedule (or re-try scheduling) an approved request."""
        br = self._load(request_id)
        if br.status != BookingRequestStatus.APPROVED:
            raise StateConflict(br.status, attempted='schedule', booking_request=br)

        event, conflicts = self._schedule(br)
        if conflicts:
            return WorkflowResult(
                success=False, code=SchedulingConflict.code,
                message='Overlapping events block this request; it needs manual resolution.',
                booking_request=br, conflicts=conflicts,
            )
        return WorkflowResult.ok('Request booked.', booking_request=br, event=event, data=self._placement_data(br))

    # ── Dashboard actions ─────────────────────────────────────────────────────

    @_operation
    def cancel(self, actor, request_id, reason=''):
        """Cancel a request; a booked request also frees its calendar event."""
        with transaction.atomic():
            br = self._load(request_id)
            if br.is_terminal:
                raise StateConflict(br.status, attempted='Cancel', booking_request=br)
            roles.require(roles.can_cancel(actor, br), 'cancel this request')
            self._transition(
                br, sm.Cancel(reason=reason), actor,
                details={'reason': reason} if reason else None,
            )
        logger.info('Request %s cancelled by %s', br.pk, actor.id)
        return WorkflowResult.ok('Request cancelled.', booking_request=br)

    def _parse_window(self, start_date, end_date):
        def as_date(value):
            if isinstance(value, date_type):
                return value
            try:
                return parse_date(value) if isinstance(value, str) else None
            except ValueError:
                return None

        start, end = as_date(start_date), as_date(end_date)
        errors = {}
        if start is None:
            errors['start_date'] = ['Enter a valid date.']
        if end is None:
            errors['end_date'] = ['Enter a valid date.']
        if not errors and start > end:
            errors['end_date'] = ['End date must be on or after the start date.']
        if errors:
            raise RequestValidationError(errors)
        return start, end

    @_operation
    def reschedule(self, actor, request_id, start_date, end_date):
        """
        Move a booked request to new dates: cancel its event and book the new
        window in one transaction. A conflict leaves the old booking in place.
        """
        roles.require(roles.can_reschedule(actor), 'reschedule requests')
        start, end = self._parse_window(start_date, end_date)

        with transaction.atomic():
            br = self._load(request_id)
            previous = [br.start_date.isoformat(), br.end_date.isoformat()]
            self._transition(
                br, sm.Reschedule(), actor,
                fields={'start_date': start, 'end_date': end},
                details={'from': previous, 'to': [start.isoformat(), end.isoformat()]},
            )
            try:
                event = scheduler.schedule(br, self.config.default_resource, self.config.time_zone)
            except SchedulingConflict as exc:
                exc.extra['booking_request'] = br
                raise
            self._notify_on_commit(sm.Notify(sm.Notify.BOOKED), br, event=event)

        br.refresh_from_db()
        return WorkflowResult.ok(
            'Request rescheduled.', booking_request=br, event=event, data=self._placement_data(br),
        )

    @_operation
    def resolve_conflict(self, actor, request_id, start_date=None, end_date=None):
        """
        Retry scheduling a flagged request, optionally with new dates.
        Still conflicting → stays approved and flagged, operators are not re-notified.
        """
        roles.require(roles.can_resolve(actor), 'resolve scheduling conflicts')
        fields = {}
        if start_date or end_date:
            start, end = self._parse_window(start_date, end_date)
            fields = {'start_date': start, 'end_date': end}

        with transaction.atomic():
            br = self._load(request_id)
            self._transition(br, sm.Resolve(), actor, fields=fields)

        event, conflicts = self._schedule(br, actor)
        if conflicts:
            return WorkflowResult(
                success=False, code=SchedulingConflict.code,
                message='The request still overlaps existing events.',
                booking_request=br, conflicts=conflicts,
            )
        return WorkflowResult.ok(
            'Conflict resolved; request booked.',
            booking_request=br, event=event, data=self._placement_data(br),
        )

    @_operation
    def resend(self, actor, request_id, emails=None):
        """Send the approval email again, optionally to a different recipient list."""
        recipients = None
        if emails:
            recipients = []
            for value in emails:
                value = (value or '').strip().lower()
                try:
                    validate_email(value)
                except ValidationError:
                    raise RequestValidationError({'emails': [f'"{value}" is not a valid email address.']})
                if value not in recipients:
                    recipients.append(value)

        with transaction.atomic():
            br = self._load(request_id)
            roles.require(roles.can_resend(actor, br), 'resend this request')
            self._transition(
                br, sm.Resend(), actor,
                emails=recipients,
                details={'recipients': recipients or br.recipients},
            )
        return WorkflowResult.ok('Approval email re-sent.', booking_request=br)

    @_operation
    def issue_public_link(self, actor, recipient_email=''):
        """Create a shareable single-use submission link and optionally email it."""
        roles.require(roles.can_issue_links(actor), 'issue public links')
        recipient_email = (recipient_email or '').strip().lower()
        if recipient_email:
            try:
                validate_email(recipient_email)
            except ValidationError:
                raise RequestValidationError({'recipient_email': ['Enter a valid email address.']})

        with transaction.atomic():
            link = links.issue(
                created_by=actor.id, recipient_email=recipient_email,
                ttl=self.config.public_link_ttl,
            )
            log_activity(actor, ActivityAction.ISSUE_LINK, link, details={'recipient': recipient_email})
            url = links.url_for(link, self.config.site_url)
            if recipient_email:
                transaction.on_commit(
                    partial(self.mailer.send_public_link, url, recipient_email, link.expires_at)
                )
        return WorkflowResult.ok(
            'Link created.',
            data={
                'url': url,
                'token': link.token,
                'expiresAt': link.expires_at.isoformat() if link.expires_at else None,
            },
        )

    # ── Sweep ─────────────────────────────────────────────────────────────────

    @_operation
    def sweep(self, now=None):
        """
        Resume approved requests whose scheduling step never ran (no live
        event, not flagged) and report unused links past their expiry.
        """
        now = now or timezone.now()
        pending = (
            BookingRequest.objects
            .filter(status=BookingRequestStatus.APPROVED, needs_resolution=False)
            .exclude(calendar_events__status=CalendarEventStatus.SCHEDULED)
            .order_by('processed_at', 'created_at')
        )

        booked = flagged = skipped = 0
        for br in pending:
            try:
                event, conflicts = self._schedule(br)
            except StateConflict as exc:
                # Moved on (cancelled, booked) since the query ran
                logger.info('Sweep skipped %s: %s', br.pk, exc.message)
                skipped += 1
                continue
            if conflicts:
                flagged += 1
            else:
                booked += 1

        expired_links = links.count_expired_unused(now)
        report = {
            'booked': booked,
            'flagged': flagged,
            'skipped': skipped,
            'expiredLinks': expired_links,
        }
        logger.info('Sweep finished: %s', report)
        return WorkflowResult.ok('Sweep finished.', data=report)


def get_workflow() -> BookingWorkflow:
    """Workflow wired to the process configuration and the email notifier."""
    return BookingWorkflow(get_workflow_config(), emails)
