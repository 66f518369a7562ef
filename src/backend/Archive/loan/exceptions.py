"""Error kinds raised by the loan engine.

Validation kinds are raised before any transaction opens; conflict kinds
are raised inside the atomic transaction, which is then rolled back.
"""

from django.utils.translation import gettext_lazy as _

from Archive.exceptions import ArchiveConflictError, ArchiveValidationError


class EmptySelection(ArchiveValidationError):
    """No item was selected."""

    default_message = _('At least one item must be selected')


class SignatureRequired(ArchiveValidationError):
    """A signature is mandatory for the loan of an original."""

    default_message = _('A signature is required for the loan of an original')


class UnexpectedSignature(ArchiveValidationError):
    """A signature was supplied for a modality which does not take one."""

    default_message = _('A signature is only accepted for the loan of an original')


class MissingReason(ArchiveValidationError):
    """A rejection needs a non-empty reason."""

    default_message = _('A reason must be provided')


class ItemNotFound(ArchiveValidationError):
    """A selected inventory item does not exist."""

    default_message = _('Inventory item not found')


class LoanItemNotFound(ArchiveValidationError):
    """A selected loan item does not belong to the request."""

    default_message = _('Loan item does not belong to this request')


class ItemNotAvailable(ArchiveConflictError):
    """A selected item is no longer available."""

    default_message = _('Item is not available')


class AlreadyReturned(ArchiveConflictError):
    """A selected loan item already has a return record."""

    default_message = _('Item has already been returned')


class RequestNotPending(ArchiveConflictError):
    """The request has already been attended, rejected or cancelled."""

    default_message = _('Request is no longer pending')
