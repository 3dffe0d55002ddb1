"""
Activity log — immutable audit trail of actions on booking requests,
calendar events and public links.
"""
from django.db import models
from apps.core.models import UUIDModel, RetainedModel


class ActivityAction(models.TextChoices):
    CREATE     = 'CREATE',     'Create'
    SUBMIT     = 'SUBMIT',     'Submit'
    UPDATE     = 'UPDATE',     'Update'
    SEND       = 'SEND',       'Send'
    RESEND     = 'RESEND',     'Resend'
    APPROVE    = 'APPROVE',    'Approve'
    REJECT     = 'REJECT',     'Reject'
    BOOK       = 'BOOK',       'Book'
    CONFLICT   = 'CONFLICT',   'Scheduling conflict'
    CANCEL     = 'CANCEL',     'Cancel'
    RESCHEDULE = 'RESCHEDULE', 'Reschedule'
    ISSUE_LINK = 'ISSUE_LINK', 'Issue public link'


class ActivityLog(UUIDModel, RetainedModel):
    actor_id = models.CharField(max_length=80, help_text='actor id / external / system')
    actor_label = models.CharField(max_length=254, blank=True)
    action = models.CharField(max_length=12, choices=ActivityAction.choices, db_index=True)
    entity_type = models.CharField(max_length=40, db_index=True)
    entity_id = models.CharField(max_length=64, db_index=True)
    entity_name = models.CharField(max_length=255, blank=True)
    before = models.JSONField(null=True, blank=True)
    after = models.JSONField(null=True, blank=True)
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = 'Activity Log'
        verbose_name_plural = 'Activity Log'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.entity_type} {self.entity_id[:8]}: {self.action} by {self.actor_label or self.actor_id}"
