"""Item lookup: find inventory items by free text or by a scanned code.

Both lookups are read-only and safe to retry.
"""

from django.conf import settings
from django.db.models import Q

import structlog

from inventory.models import InventoryItem

logger = structlog.get_logger('archive')


class ItemLookup:
    """Search the inventory for candidate items.

    Attributes:
        min_length: Free-text queries shorter than this return no candidates
        limit: Maximum number of candidates returned by search()
    """

    SEARCH_FIELDS = [
        'code',
        'description',
        'document_series',
        'organizational_unit',
    ]

    def __init__(self, min_length=None, limit=None, queryset=None):
        """Initialize the lookup, falling back to the configured defaults."""
        self.min_length = (
            settings.ITEM_LOOKUP_MIN_QUERY_LENGTH if min_length is None else min_length
        )
        self.limit = settings.ITEM_LOOKUP_LIMIT if limit is None else limit
        self.queryset = queryset

    def get_queryset(self):
        """Return the base queryset searched by this lookup."""
        if self.queryset is not None:
            return self.queryset.all()
        return InventoryItem.objects.all()

    def search(self, query, limit=None) -> list:
        """Return the items matching the provided text.

        Exact code matches are listed first, followed by partial matches
        against code, description, series and unit.
        """
        query = (query or '').strip()

        if len(query) < self.min_length:
            return []

        limit = self.limit if limit is None else limit

        match = Q()
        for field in self.SEARCH_FIELDS:
            match |= Q(**{f'{field}__icontains': query})

        queryset = self.get_queryset()

        exact = list(queryset.filter(code__iexact=query)[:limit])
        partial = list(
            queryset.filter(match)
            .exclude(pk__in=[item.pk for item in exact])
            .order_by('code')[: max(limit - len(exact), 0)]
        )

        results = exact + partial

        logger.debug('Item search', query=query, count=len(results))

        return results

    def resolve_by_code(self, code):
        """Return the item with the provided code, or None.

        Scanned codes are compared case-insensitively after trimming.
        """
        code = (code or '').strip()

        if not code:
            return None

        return self.get_queryset().filter(code__iexact=code).first()


def search(query, limit=None) -> list:
    """Search the inventory using the configured lookup."""
    return ItemLookup().search(query, limit=limit)


def resolve_by_code(code):
    """Resolve a scanned code using the configured lookup."""
    return ItemLookup().resolve_by_code(code)
