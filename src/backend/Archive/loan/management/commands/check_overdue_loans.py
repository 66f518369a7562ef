"""Run the daily loan request checks."""

from django.core.management.base import BaseCommand

from loan.tasks import check_overdue_loan_requests, notify_upcoming_due_dates


class Command(BaseCommand):
    """Notify about overdue and soon due loan requests."""

    help = 'Notify about overdue and soon due loan requests'

    def add_arguments(self, parser):
        """Add the command line arguments."""
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Size of the due soon window, in days',
        )

    def handle(self, *args, **kwargs):
        """Run both checks and report the counts."""
        overdue = check_overdue_loan_requests()
        due_soon = notify_upcoming_due_dates(days=kwargs.get('days'))

        self.stdout.write(f'{overdue} overdue, {due_soon} due soon')
