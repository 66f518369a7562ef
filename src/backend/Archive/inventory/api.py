"""JSON API for the Inventory app."""

from django.urls import include, path
from django.utils.translation import gettext_lazy as _

import django_filters.rest_framework.filters as rest_filters
from django_filters.rest_framework.filterset import FilterSet
from rest_framework import permissions
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from Archive.filters import SEARCH_ORDER_FILTER
from Archive.helpers import str2bool
from Archive.mixins import ListCreateAPI, RetrieveUpdateAPI
from generic.states.api import StatusView
from inventory import models, serializers
from inventory.lookup import ItemLookup
from inventory.status_codes import ItemAvailability, ItemLifecycleStatus


class InventoryItemFilter(FilterSet):
    """Custom filters for the InventoryItemList endpoint."""

    class Meta:
        """Metaclass options."""

        model = models.InventoryItem
        fields = ['availability', 'lifecycle_status']

    organizational_unit = rest_filters.CharFilter(
        label=_('Organizational Unit'),
        field_name='organizational_unit',
        lookup_expr='iexact',
    )

    document_series = rest_filters.CharFilter(
        label=_('Document Series'), field_name='document_series', lookup_expr='iexact'
    )

    available = rest_filters.BooleanFilter(
        label=_('Available'), method='filter_available'
    )

    def filter_available(self, queryset, name, value):
        """Filter by items which may be delivered."""
        q = {'availability': ItemAvailability.AVAILABLE.value}

        if str2bool(value):
            return queryset.filter(**q)
        return queryset.exclude(**q)


class InventoryItemMixin:
    """Mixin class for InventoryItem endpoints."""

    queryset = models.InventoryItem.objects.all()
    serializer_class = serializers.InventoryItemSerializer


class InventoryItemList(InventoryItemMixin, ListCreateAPI):
    """API endpoint for accessing a list of InventoryItem objects.

    - GET: Return list of InventoryItem objects (with filters)
    - POST: Create a new InventoryItem
    """

    filterset_class = InventoryItemFilter
    filter_backends = SEARCH_ORDER_FILTER

    ordering_fields = [
        'code',
        'organizational_unit',
        'document_series',
        'availability',
        'lifecycle_status',
        'created_at',
    ]

    search_fields = [
        'code',
        'description',
        'organizational_unit',
        'document_series',
        'box_number',
    ]

    ordering = 'code'


class InventoryItemDetail(InventoryItemMixin, RetrieveUpdateAPI):
    """API endpoint for detail view of an InventoryItem object."""


class InventoryItemLookup(APIView):
    """API endpoint for finding candidate items by free text.

    Queries shorter than the configured minimum return an empty list.
    """

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        """Return the items matching the 'search' parameter."""
        query = request.query_params.get('search', '')

        items = ItemLookup().search(query)

        return Response(
            serializers.InventoryItemBriefSerializer(items, many=True).data
        )


class InventoryItemResolve(APIView):
    """API endpoint for resolving a scanned code to a single item."""

    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        """Return the item matching the 'code' parameter."""
        code = request.query_params.get('code', '').strip()

        if not code:
            raise ValidationError({'code': _('A code must be provided')})

        item = ItemLookup().resolve_by_code(code)

        if item is None:
            raise NotFound(_('No item matches the provided code'))

        return Response(serializers.InventoryItemSerializer(item).data)


class ItemAvailabilityView(StatusView):
    """API endpoint for InventoryItem availability codes."""

    status_class = ItemAvailability


class ItemLifecycleStatusView(StatusView):
    """API endpoint for InventoryItem lifecycle status codes."""

    status_class = ItemLifecycleStatus


inventory_api_urls = [
    path(
        'availability/',
        ItemAvailabilityView.as_view(),
        name='api-inventory-availability-list',
    ),
    path(
        'lifecycle-status/',
        ItemLifecycleStatusView.as_view(),
        name='api-inventory-lifecycle-status-list',
    ),
    path('lookup/', InventoryItemLookup.as_view(), name='api-inventory-item-lookup'),
    path('resolve/', InventoryItemResolve.as_view(), name='api-inventory-item-resolve'),
    path(
        '<int:pk>/',
        include([
            path('', InventoryItemDetail.as_view(), name='api-inventory-item-detail')
        ]),
    ),
    path('', InventoryItemList.as_view(), name='api-inventory-item-list'),
]
