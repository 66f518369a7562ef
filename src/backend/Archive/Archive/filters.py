"""General filters for the Archive API."""

from datetime import datetime

from django.conf import settings
from django.utils import timezone
from django.utils.timezone import make_aware

from django_filters import rest_framework as rest_filters
from rest_framework import filters


class ArchiveDateFilter(rest_filters.DateFilter):
    """Custom DateFilter class which handles timezones correctly."""

    def filter(self, qs, value):
        """Override the filter method to handle timezones correctly."""
        if settings.USE_TZ and value is not None:
            tz = timezone.get_current_timezone()
            value = datetime(value.year, value.month, value.day)
            value = make_aware(value, tz)

        return super().filter(qs, value)


class ArchiveOrderingFilter(filters.OrderingFilter):
    """Custom OrderingFilter class which allows aliased filtering of related fields.

    To use, simply specify this filter in the "filter_backends" section.

    filter_backends = [
        ArchiveOrderingFilter,
    ]

    Then, specify a ordering_field_aliases attribute:

    ordering_field_aliases = {
        'reference': ['reference_int', 'reference'],
        'item': 'item__code',
    }
    """

    def get_ordering(self, request, queryset, view):
        """Override ordering for supporting aliases."""
        ordering = super().get_ordering(request, queryset, view)

        aliases = getattr(view, 'ordering_field_aliases', None)

        # Attempt to map ordering fields based on provided aliases
        if ordering is not None and aliases is not None:
            ordering_initial = ordering
            ordering = []

            for field in ordering_initial:
                reverse = field.startswith('-')

                if reverse:
                    field = field[1:]

                # Are aliases defined for this field?
                alias = aliases.get(field, field)

                if isinstance(alias, str):
                    alias = [alias]
                elif not isinstance(alias, (list, tuple)):
                    continue

                for a in alias:
                    if reverse:
                        a = '-' + a
                    ordering.append(a)

        return ordering


SEARCH_ORDER_FILTER = [
    rest_filters.DjangoFilterBackend,
    filters.SearchFilter,
    filters.OrderingFilter,
]

SEARCH_ORDER_FILTER_ALIAS = [
    rest_filters.DjangoFilterBackend,
    filters.SearchFilter,
    ArchiveOrderingFilter,
]
