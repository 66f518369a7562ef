"""Event definitions for the loan app."""

from Archive.events import BaseEventEnum


class LoanRequestEvents(BaseEventEnum):
    """Event definitions for LoanRequest model."""

    # Loan request lifecycle events
    CREATED = 'loanrequest.created'
    DELIVERED = 'loanrequest.delivered'
    PARTIALLY_RETURNED = 'loanrequest.partially_returned'
    FULLY_RETURNED = 'loanrequest.fully_returned'
    REJECTED = 'loanrequest.rejected'
    CANCELLED = 'loanrequest.cancelled'

    # Special events
    OVERDUE = 'loanrequest.overdue'  # Triggered by scheduled task, not status change
    DUE_SOON = 'loanrequest.due_soon'

    # Item events
    ITEMS_RETURNED = 'loanrequest.items_returned'

    # Draft events
    DRAFT_SAVED = 'loanrequest.draft_saved'
    DRAFT_CLEARED = 'loanrequest.draft_cleared'
