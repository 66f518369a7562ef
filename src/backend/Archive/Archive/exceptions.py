"""Custom exception handling for the Archive API.

Every engine failure carries a discriminated error kind plus the ids of the
offending entities. Errors fall in three families:

- validation: bad input, detected before any transaction opens
- conflict: a precondition failed inside the atomic transaction
- integrity: unexpected database inconsistency, surfaced as-is
"""

from django.core.exceptions import ValidationError as DjangoValidationError
from django.utils.translation import gettext_lazy as _

import structlog
from rest_framework import serializers, status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = structlog.get_logger('archive')


class ArchiveError(Exception):
    """Base class for all typed engine errors.

    Attributes:
        code: Discriminated error kind (defaults to the class name)
        message: Human readable message
        ids: Identifiers of the offending entities
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = _('Operation failed')

    def __init__(self, message=None, ids=None, code=None):
        """Construct the error, normalising the list of offending ids."""
        self.message = str(message or self.default_message)
        self.ids = list(ids or [])
        self.code = code or self.__class__.__name__
        super().__init__(self.message)

    def __str__(self):
        """Render the message, listing the offending ids if any."""
        if self.ids:
            return f'{self.message}: {", ".join(str(i) for i in self.ids)}'
        return self.message

    def as_dict(self) -> dict:
        """Return the serialized representation used in API responses."""
        return {'error': self.code, 'detail': self.message, 'ids': self.ids}


class ArchiveValidationError(ArchiveError):
    """Invalid input; raised before any state is touched."""


class ArchiveConflictError(ArchiveError):
    """A precondition no longer holds; the transaction was rolled back."""

    status_code = status.HTTP_409_CONFLICT


class ArchiveIntegrityError(ArchiveError):
    """Unexpected inconsistency in persisted data. Not retried."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class InvalidStateTransition(ArchiveConflictError):
    """The requested status transition is not allowed from the current state."""

    default_message = _('Invalid state transition')


def exception_handler(exc, context):
    """Custom exception handler for DRF framework.

    Typed engine errors are rendered with their error kind and offending ids.
    Django ValidationError instances (raised by model validation) are converted
    to DRF ValidationError, so they are reported as a 400 response.
    """
    if isinstance(exc, ArchiveError):
        if isinstance(exc, ArchiveIntegrityError):
            logger.error('Integrity error', error=exc.code, ids=exc.ids)
        return Response(exc.as_dict(), status=exc.status_code)

    if isinstance(exc, DjangoValidationError):
        if hasattr(exc, 'message_dict'):
            exc = serializers.ValidationError(exc.message_dict)
        else:
            exc = serializers.ValidationError({'non_field_errors': exc.messages})

    return drf_exception_handler(exc, context)
