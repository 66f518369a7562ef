"""Admin interface for inventory models."""

from django.contrib import admin

from inventory import models


@admin.register(models.InventoryItem)
class InventoryItemAdmin(admin.ModelAdmin):
    """Admin interface for InventoryItem model.

    Availability is maintained by the loan operations and is read-only here.
    """

    list_display = [
        'code',
        'description',
        'organizational_unit',
        'document_series',
        'availability',
        'lifecycle_status',
    ]

    list_filter = ['availability', 'lifecycle_status', 'organizational_unit']

    search_fields = ['code', 'description', 'document_series', 'organizational_unit']

    readonly_fields = ['availability', 'created_at', 'updated_at']
