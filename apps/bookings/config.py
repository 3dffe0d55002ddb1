"""
Workflow configuration, built once from Django settings and injected into
the token codec calls and BookingWorkflow. Business logic never reads
settings or the environment on its own.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class WorkflowConfig:
    approval_secret: str
    approval_max_age: timedelta
    cron_secret: str = ''
    public_link_ttl: timedelta = None   # None = links never expire
    site_url: str = 'http://127.0.0.1:8000'
    default_resource: str = 'general'
    time_zone: ZoneInfo = field(default_factory=lambda: ZoneInfo('America/Panama'))
    operator_emails: tuple = ()
    merchant_repeat_days: int = 30
    max_daily_launches: int = 13

    @classmethod
    def from_settings(cls, settings=None):
        if settings is None:
            from django.conf import settings
        ttl_days = settings.PUBLIC_LINK_TTL_DAYS
        return cls(
            approval_secret=settings.APPROVAL_TOKEN_SECRET,
            approval_max_age=timedelta(days=settings.APPROVAL_TOKEN_MAX_AGE_DAYS),
            cron_secret=settings.CRON_SECRET,
            public_link_ttl=timedelta(days=ttl_days) if ttl_days else None,
            site_url=settings.SITE_URL.rstrip('/'),
            default_resource=settings.BOOKING_DEFAULT_RESOURCE,
            time_zone=ZoneInfo(settings.TIME_ZONE),
            operator_emails=tuple(e for e in settings.BOOKING_OPERATOR_EMAILS if e),
            merchant_repeat_days=settings.BOOKING_MERCHANT_REPEAT_DAYS,
            max_daily_launches=settings.BOOKING_MAX_DAILY_LAUNCHES,
        )


@lru_cache(maxsize=1)
def get_workflow_config() -> WorkflowConfig:
    """Return the process-wide configuration (built on first use)."""
    return WorkflowConfig.from_settings()
