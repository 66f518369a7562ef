"""Inventory model definitions."""

from django.db import models
from django.urls import reverse
from django.utils.translation import gettext_lazy as _

import structlog

from inventory.status_codes import (
    ItemAvailability,
    ItemAvailabilityGroups,
    ItemLifecycleStatus,
)

logger = structlog.get_logger('archive')


class InventoryItemQuerySet(models.QuerySet):
    """Custom queryset for the InventoryItem model.

    Availability is only written through the methods below, which are
    called from the atomic loan operations.
    """

    def available(self):
        """Items which may be delivered."""
        return self.filter(availability=ItemAvailability.AVAILABLE.value)

    def out(self):
        """Items currently out under a loan request."""
        return self.filter(availability__in=ItemAvailabilityGroups.OUT)

    def lock_for_update(self, ids):
        """Lock the rows of the provided items until the end of the transaction.

        Rows are locked in primary key order. Must be called inside transaction.atomic.
        """
        return self.select_for_update().filter(pk__in=list(ids)).order_by('pk')

    def get_availability(self, item_id) -> int:
        """Return the availability value of a single item.

        Raises:
            InventoryItem.DoesNotExist: no item with this id
        """
        return self.values_list('availability', flat=True).get(pk=item_id)

    def set_availability(self, item_ids, value) -> int:
        """Unconditionally set the availability of the provided items.

        Returns:
            The number of rows updated
        """
        value = ItemAvailability(value).value
        item_ids = list(item_ids)
        count = self.filter(pk__in=item_ids).update(availability=value)

        logger.debug(
            'Set item availability', items=item_ids, availability=value, count=count
        )

        return count

    def claim(self, item_ids, value) -> list:
        """Move the provided items from AVAILABLE to the given value.

        Each update is conditional on the current availability, so an item
        taken by a concurrent transaction is left untouched.

        Returns:
            The ids of the items which could not be claimed
        """
        value = ItemAvailability(value).value
        refused = []

        for item_id in item_ids:
            count = self.filter(
                pk=item_id, availability=ItemAvailability.AVAILABLE.value
            ).update(availability=value)

            if count == 0:
                refused.append(item_id)

        return refused


class InventoryItem(models.Model):
    """A physical archival unit held by the archive.

    Attributes:
        code: Unique, human-assigned identifier
        description: Descriptive text
        organizational_unit: Unit which produced the documents
        document_series: Documentary series
        room: Storage room ("ambiente")
        shelf: Shelf number within the room
        section: Section ("cuerpo") of the shelf
        tier: Tier ("balda") of the section
        box_number: Box number
        volume_number: Volume number
        folio_count: Number of folios
        availability: Loanable state (see ItemAvailability)
        lifecycle_status: Administrative state (see ItemLifecycleStatus)
    """

    objects = InventoryItemQuerySet.as_manager()

    class Meta:
        """Model meta options."""

        verbose_name = _('Inventory Item')
        verbose_name_plural = _('Inventory Items')
        ordering = ['code']

    def __str__(self):
        """Render a string representation of this InventoryItem."""
        return f'{self.code} - {self.description}' if self.description else self.code

    @staticmethod
    def get_api_url() -> str:
        """Return the API URL associated with the InventoryItem model."""
        return reverse('api-inventory-item-list')

    code = models.CharField(
        unique=True,
        max_length=64,
        blank=False,
        verbose_name=_('Code'),
        help_text=_('Unique item code'),
    )

    description = models.CharField(
        max_length=500,
        blank=True,
        verbose_name=_('Description'),
        help_text=_('Item description'),
    )

    organizational_unit = models.CharField(
        max_length=250,
        blank=True,
        verbose_name=_('Organizational Unit'),
        help_text=_('Unit which produced the documents'),
    )

    document_series = models.CharField(
        max_length=250,
        blank=True,
        verbose_name=_('Document Series'),
    )

    room = models.CharField(max_length=50, blank=True, verbose_name=_('Room'))

    shelf = models.CharField(max_length=20, blank=True, verbose_name=_('Shelf'))

    section = models.CharField(max_length=20, blank=True, verbose_name=_('Section'))

    tier = models.CharField(max_length=20, blank=True, verbose_name=_('Tier'))

    box_number = models.CharField(
        max_length=20, blank=True, verbose_name=_('Box Number')
    )

    volume_number = models.CharField(
        max_length=20, blank=True, verbose_name=_('Volume Number')
    )

    folio_count = models.PositiveIntegerField(
        blank=True, null=True, verbose_name=_('Folio Count')
    )

    availability = models.PositiveIntegerField(
        default=ItemAvailability.AVAILABLE.value,
        choices=ItemAvailability.items(),
        verbose_name=_('Availability'),
        help_text=_('Loanable state of this item'),
    )

    lifecycle_status = models.PositiveIntegerField(
        default=ItemLifecycleStatus.ACTIVE.value,
        choices=ItemLifecycleStatus.items(),
        verbose_name=_('Lifecycle Status'),
    )

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created'))

    updated_at = models.DateTimeField(auto_now=True, verbose_name=_('Updated'))

    @property
    def shelf_location(self) -> str:
        """Render the shelf coordinates as room-E<shelf>-C<section>-B<tier>.

        Blank parts are omitted.
        """
        parts = []

        if self.room:
            parts.append(self.room.strip())

        for prefix, value in (('E', self.shelf), ('C', self.section), ('B', self.tier)):
            if value and str(value).strip():
                parts.append(f'{prefix}{str(value).strip()}')

        return '-'.join(parts)

    @property
    def is_available(self) -> bool:
        """Return True if this item may be delivered."""
        return self.availability == ItemAvailability.AVAILABLE.value

    @property
    def availability_text(self) -> str:
        """Return the text representation of the availability field."""
        return ItemAvailability.text(self.availability)
