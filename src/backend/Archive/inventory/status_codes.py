"""Inventory status codes."""

from django.utils.translation import gettext_lazy as _

from generic.states import ColorEnum, StatusCode


class ItemAvailability(StatusCode):
    """Defines the loanable state of an InventoryItem.

    Availability is independent of the administrative lifecycle status.
    """

    # Item is on the shelf and may be delivered
    AVAILABLE = 10, _('Available'), ColorEnum.success

    # Original handed over to a requester
    ON_LOAN = 20, _('On Loan'), ColorEnum.primary

    # Taken off the shelf for copying, consultation or digitization
    IN_SERVICE = 30, _('In Service'), ColorEnum.info

    # Item could not be found on its shelf
    NOT_LOCATED = 50, _('Not Located'), ColorEnum.danger


class ItemAvailabilityGroups:
    """Groups for ItemAvailability codes."""

    # Item is out under a loan request
    OUT = [ItemAvailability.ON_LOAN.value, ItemAvailability.IN_SERVICE.value]


class ItemLifecycleStatus(StatusCode):
    """Administrative state of an InventoryItem."""

    ACTIVE = 10, _('Active'), ColorEnum.success

    # Moved to another repository
    TRANSFERRED = 20, _('Transferred'), ColorEnum.warning

    # Eliminated after the retention period
    DISPOSED = 30, _('Disposed'), ColorEnum.dark
