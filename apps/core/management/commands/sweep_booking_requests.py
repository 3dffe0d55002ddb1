"""
management command: sweep_booking_requests

Schedules approved booking requests whose scheduling step never ran
(approval committed, process died before the calendar write) and reports
unused public links past their expiry.

Run via OS cron every 10 minutes:
  */10 * * * *  /path/to/venv/bin/python manage.py sweep_booking_requests

The same sweep is reachable over HTTP at POST /cron/sweep/ (Bearer CRON_SECRET).
"""
from django.core.management.base import BaseCommand

from apps.bookings.workflow import get_workflow


class Command(BaseCommand):
    help = 'Resume scheduling for approved booking requests and report expired public links'

    def handle(self, *args, **options):
        result = get_workflow().sweep()
        report = result.data

        self.stdout.write(
            self.style.SUCCESS(
                f"sweep_booking_requests: booked {report['booked']}, "
                f"flagged {report['flagged']}, skipped {report['skipped']}, "
                f"{report['expiredLinks']} expired unused links"
            )
        )
