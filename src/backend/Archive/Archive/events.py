"""Event dispatch for the Archive project.

Engine operations broadcast lifecycle events through the ``archive_event``
signal. Collaborators (notifications, receipt printing) connect receivers
instead of being called directly.
"""

import enum

from django.dispatch import Signal

import structlog

logger = structlog.get_logger('archive')

# Sent with keyword arguments: event (str) plus the event payload
archive_event = Signal()


class BaseEventEnum(str, enum.Enum):
    """Base class for event name enumerations."""

    def __str__(self):
        """Return the raw event name."""
        return str(self.value)


def trigger_event(event, *args, **kwargs) -> None:
    """Broadcast an event to all connected receivers.

    Arguments:
        event: Event name (string or BaseEventEnum member)
        kwargs: Payload forwarded to the receivers
    """
    event = str(event)

    logger.debug('Triggering event', event_name=event, payload=kwargs)

    archive_event.send(sender=None, event=event, **kwargs)
