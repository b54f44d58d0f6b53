"""
Management command to reconcile a month's salary payouts.
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from hris.tasks import reconcile_payroll_month
from hris.utils import first_of_month, parse_month


class Command(BaseCommand):
    help = 'Verify outstanding salary payouts of a month with the payment providers'

    def add_arguments(self, parser):
        parser.add_argument(
            '--month',
            type=str,
            help='Month to reconcile as YYYY-MM (defaults to the current month)'
        )
        parser.add_argument(
            '--async',
            action='store_true',
            help='Run the task asynchronously through Celery'
        )

    def handle(self, *args, **options):
        try:
            month = parse_month(options['month']) if options.get('month') else first_of_month(timezone.localdate())
        except ValueError:
            raise CommandError(f"Invalid month: {options['month']}. Use YYYY-MM.")

        self.stdout.write(f"Reconciling payroll for {month:%Y-%m} (async={options['async']})")

        try:
            if options['async']:
                task = reconcile_payroll_month.delay(month.isoformat())
                self.stdout.write(self.style.SUCCESS(f"Task queued with ID: {task.id}"))
            else:
                result = reconcile_payroll_month(month.isoformat())
                self.stdout.write(self.style.SUCCESS(result['message']))
                for issue in result['issues']:
                    self.stdout.write(self.style.WARNING(f"  {issue['payout_ref']}: {issue['reason']}"))
        except Exception as e:
            raise CommandError(f"Error reconciling payroll: {e}")
