"""App configuration for the inventory module."""

from django.apps import AppConfig


class InventoryConfig(AppConfig):
    """Configuration class for the 'inventory' app."""

    name = 'inventory'
    verbose_name = 'Archival Inventory'
