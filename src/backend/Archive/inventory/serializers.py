"""JSON serializers for the Inventory API."""

from django.utils.translation import gettext_lazy as _

from rest_framework import serializers

from Archive.serializers import ArchiveModelSerializer
from inventory.models import InventoryItem


class InventoryItemBriefSerializer(ArchiveModelSerializer):
    """Brief serializer for the InventoryItem model, used for lookup results."""

    class Meta:
        """Metaclass options."""

        model = InventoryItem
        fields = [
            'pk',
            'code',
            'description',
            'document_series',
            'shelf_location',
            'availability',
            'availability_text',
        ]
        read_only_fields = fields

    shelf_location = serializers.CharField(read_only=True)

    availability_text = serializers.CharField(
        source='get_availability_display', read_only=True
    )


class InventoryItemSerializer(ArchiveModelSerializer):
    """Serializer for the InventoryItem model.

    Availability is maintained by the loan operations and cannot be set here.
    """

    class Meta:
        """Metaclass options."""

        model = InventoryItem
        fields = [
            'pk',
            'code',
            'description',
            'organizational_unit',
            'document_series',
            'room',
            'shelf',
            'section',
            'tier',
            'shelf_location',
            'box_number',
            'volume_number',
            'folio_count',
            'availability',
            'availability_text',
            'lifecycle_status',
            'lifecycle_status_text',
            'created_at',
            'updated_at',
        ]
        read_only_fields = ['availability', 'created_at', 'updated_at']

    shelf_location = serializers.CharField(
        read_only=True, label=_('Shelf Location')
    )

    availability_text = serializers.CharField(
        source='get_availability_display', read_only=True
    )

    lifecycle_status_text = serializers.CharField(
        source='get_lifecycle_status_display', read_only=True
    )
