"""
Custom exceptions for the booking-request workflow.
Raised in the codec, link store, state machine and scheduler; caught at the
workflow boundary and turned into a WorkflowResult.
"""

# Shown to anyone presenting a bad public or approval link, whatever the cause.
GENERIC_LINK_ERROR = 'This link is invalid or has expired.'


class BookingWorkflowError(Exception):
    """Base exception for all booking-request workflow errors."""
    code = 'error'

    def __init__(self, message='', **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class RequestValidationError(BookingWorkflowError):
    """Raised when a submission payload is malformed; nothing has been written."""
    code = 'validation_error'

    def __init__(self, errors, message='Please correct the highlighted fields.'):
        super().__init__(message)
        self.errors = errors


class TokenInvalid(BookingWorkflowError):
    """
    Raised for any unusable public-link or approval token.
    `reason` is for logs only; callers show GENERIC_LINK_ERROR.
    """
    code = 'token_invalid'

    NOT_FOUND     = 'not_found'
    ALREADY_USED  = 'already_used'
    EXPIRED       = 'expired'
    BAD_SIGNATURE = 'bad_signature'
    MALFORMED     = 'malformed'
    WRONG_ACTION  = 'wrong_action'

    def __init__(self, reason):
        super().__init__(GENERIC_LINK_ERROR)
        self.reason = reason


class StateConflict(BookingWorkflowError):
    """Raised when a transition is attempted from a state that no longer allows it."""
    code = 'already_resolved'

    def __init__(self, current_status, attempted='', **extra):
        super().__init__(
            f'Request is already {current_status}; {attempted or "transition"} not applied.',
            **extra,
        )
        self.current_status = current_status
        self.attempted = attempted


class SchedulingConflict(BookingWorkflowError):
    """Raised when the candidate window overlaps live events on the same resource."""
    code = 'scheduling_conflict'

    def __init__(self, conflicts, resource_key=''):
        super().__init__(
            f'{len(conflicts)} event(s) already occupy resource "{resource_key}" in this window.'
        )
        self.conflicts = list(conflicts)
        self.resource_key = resource_key


class ActionNotPermitted(BookingWorkflowError):
    """Raised when the current actor's role does not allow the operation."""
    code = 'forbidden'


class BookingRequestNotFound(BookingWorkflowError):
    """Raised when a request id does not resolve to a stored request."""
    code = 'not_found'


class StorageUnavailable(BookingWorkflowError):
    """Raised for transient database failures. Safe for the caller to retry."""
    code = 'storage_unavailable'
