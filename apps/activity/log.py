"""
Activity log writer.

Public API:
  log_activity(actor, action, entity, before=None, after=None, details=None)
  status_summary(booking_request)
"""
import logging

from .models import ActivityLog

logger = logging.getLogger(__name__)


def status_summary(booking_request) -> dict:
    """Before/after snapshot used for status transitions."""
    return {
        'status': booking_request.status,
        'needs_resolution': booking_request.needs_resolution,
    }


def log_activity(actor, action, entity, before=None, after=None, details=None) -> ActivityLog:
    """
    Append one entry. Runs inside the caller's transaction, so the entry
    exists exactly when the change it describes was committed.
    """
    entry = ActivityLog.objects.create(
        actor_id=actor.id,
        actor_label=actor.label,
        action=action,
        entity_type=type(entity).__name__,
        entity_id=str(entity.pk),
        entity_name=str(getattr(entity, 'name', '') or '')[:255],
        before=before,
        after=after,
        details=details or {},
    )
    logger.debug('Activity %s %s %s by %s', action, entry.entity_type, entry.entity_id, actor.id)
    return entry
