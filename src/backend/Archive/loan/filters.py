"""Custom filters for the loan app."""

from django.db.models import Q

from loan.status_codes import LoanRequestStatus, LoanRequestStatusGroups


def filter_pending_loan_requests():
    """Return a Q filter for loan requests awaiting attention."""
    return Q(status=LoanRequestStatus.PENDING.value)


def filter_outstanding_loan_requests():
    """Return a Q filter for loan requests with items still out."""
    return Q(status__in=LoanRequestStatusGroups.OUTSTANDING)


def filter_closed_loan_requests():
    """Return a Q filter for loan requests in a terminal state."""
    return Q(status__in=LoanRequestStatusGroups.CLOSED)
