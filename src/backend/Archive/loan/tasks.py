"""Background tasks for the loan module.

The tasks are plain functions, run daily by the check_overdue_loans
management command (e.g. from cron).
"""

from datetime import timedelta

from django.conf import settings

import structlog

from Archive.events import trigger_event
from Archive.helpers import current_date

logger = structlog.get_logger('archive')


def notify_overdue_loan_request(loan_request) -> None:
    """Notify that a LoanRequest has just become overdue.

    Arguments:
        loan_request: The LoanRequest object that is overdue.
    """
    from loan.events import LoanRequestEvents

    trigger_event(
        LoanRequestEvents.OVERDUE,
        id=loan_request.pk,
        reference=loan_request.reference,
        requester=loan_request.requester_name,
        expected_return_date=loan_request.expected_return_date,
    )


def check_overdue_loan_requests() -> int:
    """Check for overdue loan requests and trigger notifications.

    This task runs daily. It checks for loan requests where:
    - Items are still out (DELIVERED or PARTIALLY_RETURNED)
    - expected_return_date expired *yesterday* (just became overdue)

    Returns:
        The number of requests notified
    """
    from loan.models import LoanRequest

    yesterday = current_date() - timedelta(days=1)

    # Find requests that just became overdue yesterday
    overdue_requests = LoanRequest.objects.outstanding().filter(
        expected_return_date=yesterday
    )

    count = overdue_requests.count()

    logger.info('Newly overdue loan requests', count=count)

    for loan_request in overdue_requests:
        notify_overdue_loan_request(loan_request)
        logger.debug('Notified overdue loan request', reference=loan_request.reference)

    return count


def notify_upcoming_due_dates(days=None) -> int:
    """Notify about loan requests due within the notification window.

    Arguments:
        days: Size of the window (defaults to the LOAN_DUE_SOON_DAYS setting)

    Returns:
        The number of requests notified
    """
    from loan.events import LoanRequestEvents
    from loan.models import LoanRequest

    if days is None:
        days = settings.LOAN_DUE_SOON_DAYS

    today = current_date()
    notification_date = today + timedelta(days=days)

    upcoming_requests = LoanRequest.objects.outstanding().filter(
        expected_return_date__isnull=False,
        expected_return_date__gte=today,
        expected_return_date__lte=notification_date,
    )

    count = upcoming_requests.count()

    logger.info('Loan requests due soon', count=count, days=days)

    for loan_request in upcoming_requests:
        days_until_due = (loan_request.expected_return_date - today).days

        trigger_event(
            LoanRequestEvents.DUE_SOON,
            id=loan_request.pk,
            reference=loan_request.reference,
            days=days_until_due,
        )

        logger.debug(
            'Loan request due soon',
            reference=loan_request.reference,
            days=days_until_due,
        )

    return count
