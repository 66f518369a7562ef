"""Loan status codes."""

from django.db import models
from django.utils.translation import gettext_lazy as _

from generic.states import ColorEnum, StatusCode
from inventory.status_codes import ItemAvailability


class LoanRequestStatus(StatusCode):
    """Defines a set of status codes for a LoanRequest.

    Note: OVERDUE is NOT a status - it's a computed property based on
    expected_return_date and whether items are still out.
    """

    # Request received, not yet attended
    PENDING = 10, _('Pending'), ColorEnum.secondary

    # Items have been handed over to the requester
    DELIVERED = 20, _('Delivered'), ColorEnum.primary

    # Some items returned, some still out
    PARTIALLY_RETURNED = 30, _('Partially Returned'), ColorEnum.warning

    # All items have been returned
    FULLY_RETURNED = 40, _('Fully Returned'), ColorEnum.success

    # Request refused by the archive
    REJECTED = 50, _('Rejected'), ColorEnum.danger

    # Request withdrawn by the requester
    CANCELLED = 60, _('Cancelled'), ColorEnum.dark


class LoanRequestStatusGroups:
    """Groups for LoanRequestStatus codes."""

    # Items are out with the requester
    OUTSTANDING = [
        LoanRequestStatus.DELIVERED.value,
        LoanRequestStatus.PARTIALLY_RETURNED.value,
    ]

    # Requests which may still change
    OPEN = [LoanRequestStatus.PENDING.value, *OUTSTANDING]

    # Requests which were fulfilled at some point
    FULFILLED = [*OUTSTANDING, LoanRequestStatus.FULLY_RETURNED.value]

    # Terminal states
    CLOSED = [
        LoanRequestStatus.FULLY_RETURNED.value,
        LoanRequestStatus.REJECTED.value,
        LoanRequestStatus.CANCELLED.value,
    ]


class ServiceModality(models.TextChoices):
    """The kind of service requested."""

    LOAN_ORIGINAL = 'LOAN_ORIGINAL', _('Loan of original')
    SIMPLE_COPY = 'SIMPLE_COPY', _('Simple copy')
    CERTIFIED_COPY = 'CERTIFIED_COPY', _('Certified copy')
    ON_SITE_CONSULT = 'ON_SITE_CONSULT', _('On-site consultation')
    DIGITIZATION = 'DIGITIZATION', _('Digitization')
    REPROGRAPHY = 'REPROGRAPHY', _('Reprography')
    OTHER = 'OTHER', _('Other')

    @classmethod
    def requires_signature(cls, modality) -> bool:
        """Only the loan of an original is handed over under signature."""
        return modality == cls.LOAN_ORIGINAL

    @classmethod
    def availability_for(cls, modality):
        """Availability of the items while out under this modality."""
        if modality == cls.LOAN_ORIGINAL:
            return ItemAvailability.ON_LOAN
        return ItemAvailability.IN_SERVICE
