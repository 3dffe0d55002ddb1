"""
Core base model mixins.
All production models should inherit from these.
"""
import uuid
from django.db import models


class UUIDModel(models.Model):
    """Primary key is a UUID, not an auto-incrementing integer."""
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class TimestampedModel(models.Model):
    """Automatically tracks creation and last-update timestamps."""
    created_at = models.DateTimeField(auto_now_add=True, editable=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class RecordDeletionError(Exception):
    """Raised when code tries to physically delete a retained record."""
    pass


class RetainedQuerySet(models.QuerySet):
    """Queryset whose bulk delete is refused."""
    def delete(self):
        raise RecordDeletionError(
            f'{self.model.__name__} rows are retained for audit and cannot be deleted.'
        )


class RetainedModel(models.Model):
    """
    Records are never physically deleted.
    Terminal rows (rejected, cancelled) stay in place as the audit trail;
    state changes happen through explicit transitions instead.
    """
    objects = RetainedQuerySet.as_manager()

    class Meta:
        abstract = True

    def delete(self, *args, **kwargs):
        raise RecordDeletionError(
            f'{type(self).__name__} rows are retained for audit and cannot be deleted.'
        )


class BaseModel(UUIDModel, TimestampedModel, RetainedModel):
    """
    Convenience base combining UUID pk + timestamps + delete protection.
    Use this for all main business models.
    """
    class Meta:
        abstract = True
