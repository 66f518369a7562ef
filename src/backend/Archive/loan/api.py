"""JSON API for the Loan app."""

from django.contrib.auth.models import User
from django.shortcuts import get_object_or_404
from django.urls import include, path
from django.utils.translation import gettext_lazy as _

import django_filters.rest_framework.filters as rest_filters
import structlog
from django_filters.rest_framework.filterset import FilterSet
from rest_framework import permissions, status
from rest_framework.exceptions import NotFound
from rest_framework.response import Response

from Archive.filters import (
    SEARCH_ORDER_FILTER,
    SEARCH_ORDER_FILTER_ALIAS,
    ArchiveDateFilter,
)
from Archive.helpers import str2bool
from Archive.mixins import (
    CreateAPI,
    ListAPI,
    ListCreateAPI,
    RetrieveUpdateDestroyAPI,
    SerializerContextMixin,
)
from generic.states.api import StatusView
from inventory.models import InventoryItem
from loan import models, serializers
from loan.filters import (
    filter_closed_loan_requests,
    filter_outstanding_loan_requests,
    filter_pending_loan_requests,
)
from loan.status_codes import LoanRequestStatus, ServiceModality

logger = structlog.get_logger('archive')


class LoanRequestFilter(FilterSet):
    """Custom filters for LoanRequestList endpoint."""

    class Meta:
        """Metaclass options."""

        model = models.LoanRequest
        fields = []

    # Filter against request status
    status = rest_filters.NumberFilter(
        label=_('Request Status'), method='filter_status'
    )

    def filter_status(self, queryset, name, value):
        """Filter by integer status code."""
        return queryset.filter(status=value)

    # Exact match for reference
    reference = rest_filters.CharFilter(
        label=_('Request Reference'), field_name='reference', lookup_expr='iexact'
    )

    modality = rest_filters.ChoiceFilter(
        label=_('Service Modality'),
        field_name='modality',
        choices=ServiceModality.choices,
    )

    pending = rest_filters.BooleanFilter(label=_('Pending'), method='filter_pending')

    def filter_pending(self, queryset, name, value):
        """Filter by requests waiting to be served."""
        q = filter_pending_loan_requests()

        if str2bool(value):
            return queryset.filter(q)
        return queryset.exclude(q)

    outstanding = rest_filters.BooleanFilter(
        label=_('Outstanding'), method='filter_outstanding'
    )

    def filter_outstanding(self, queryset, name, value):
        """Filter by requests with items still out."""
        q = filter_outstanding_loan_requests()

        if str2bool(value):
            return queryset.filter(q)
        return queryset.exclude(q)

    closed = rest_filters.BooleanFilter(label=_('Closed'), method='filter_closed')

    def filter_closed(self, queryset, name, value):
        """Filter by requests in a terminal state."""
        q = filter_closed_loan_requests()

        if str2bool(value):
            return queryset.filter(q)
        return queryset.exclude(q)

    overdue = rest_filters.BooleanFilter(label='overdue', method='filter_overdue')

    def filter_overdue(self, queryset, name, value):
        """Filter by overdue status (computed from expected_return_date and status)."""
        if str2bool(value):
            return queryset.filter(models.LoanRequest.overdue_filter())
        return queryset.exclude(models.LoanRequest.overdue_filter())

    requester = rest_filters.ModelChoiceFilter(
        queryset=User.objects.all(), field_name='requester', label=_('Requester')
    )

    created_by = rest_filters.ModelChoiceFilter(
        queryset=User.objects.all(), field_name='created_by', label=_('Created By')
    )

    department = rest_filters.CharFilter(
        label=_('Department'), field_name='department', lookup_expr='iexact'
    )

    created_before = ArchiveDateFilter(
        label=_('Created Before'), field_name='created_at', lookup_expr='lt'
    )

    created_after = ArchiveDateFilter(
        label=_('Created After'), field_name='created_at', lookup_expr='gt'
    )

    due_before = rest_filters.DateFilter(
        label=_('Due Before'), field_name='expected_return_date', lookup_expr='lt'
    )

    due_after = rest_filters.DateFilter(
        label=_('Due After'), field_name='expected_return_date', lookup_expr='gt'
    )


class LoanRequestMixin(SerializerContextMixin):
    """Mixin class for LoanRequest endpoints."""

    queryset = models.LoanRequest.objects.all()
    serializer_class = serializers.LoanRequestSerializer

    def get_queryset(self, *args, **kwargs):
        """Return annotated queryset for this endpoint."""
        queryset = super().get_queryset(*args, **kwargs)

        queryset = queryset.select_related('requester', 'created_by')

        queryset = serializers.LoanRequestSerializer.annotate_queryset(queryset)

        return queryset


class LoanRequestList(LoanRequestMixin, ListCreateAPI):
    """API endpoint for accessing a list of LoanRequest objects.

    - GET: Return list of LoanRequest objects (with filters)
    - POST: Register a new LoanRequest
    """

    filterset_class = LoanRequestFilter
    filter_backends = SEARCH_ORDER_FILTER_ALIAS

    ordering_field_aliases = {'reference': ['reference_int', 'reference']}

    ordering_fields = [
        'created_at',
        'reference',
        'requester_name',
        'department',
        'modality',
        'status',
        'delivered_at',
        'expected_return_date',
        'returned_at',
    ]

    search_fields = [
        'reference',
        'requester_name',
        'department',
        'entity',
        'justification',
    ]

    ordering = '-reference'


class IsStaffOrRequester(permissions.BasePermission):
    """Changes to a request are reserved to archive staff and its requester."""

    def has_object_permission(self, request, view, obj):
        """Read access is open, write access is checked against the request."""
        if request.method in permissions.SAFE_METHODS:
            return True

        user = request.user

        if user.is_staff:
            return True

        return obj.requester_id is not None and obj.requester_id == user.pk


class LoanRequestDetail(LoanRequestMixin, RetrieveUpdateDestroyAPI):
    """API endpoint for detail view of a LoanRequest object.

    - GET: Return the request joined with its loan items and return records
    - PATCH: Edit the request (only while pending)
    - DELETE: Remove the request (refused once items were delivered)
    """

    permission_classes = [permissions.IsAuthenticated, IsStaffOrRequester]
    serializer_class = serializers.LoanRequestDetailSerializer

    def get_queryset(self, *args, **kwargs):
        """Prefetch the item and return ledgers."""
        return super().get_queryset(*args, **kwargs).with_detail()

    def perform_destroy(self, instance):
        """Delete the request, logging the removal."""
        reference = instance.reference

        instance.delete()

        logger.info('Loan request deleted', reference=reference)


class LoanRequestContextMixin:
    """Mixin to add the loan request object as serializer context variable."""

    queryset = models.LoanRequest.objects.all()

    def get_serializer_context(self):
        """Add the loan request to the serializer context."""
        ctx = super().get_serializer_context()
        ctx['loan_request'] = self.get_object()
        return ctx

    def get_object(self):
        """Return the LoanRequest instance."""
        if not hasattr(self, '_object'):
            self._object = get_object_or_404(
                models.LoanRequest, pk=self.kwargs.get('pk')
            )
            self.check_object_permissions(self.request, self._object)
        return self._object

    def request_data(self, loan_request):
        """Serialize the updated request with full details."""
        loan_request.refresh_from_db()

        return serializers.LoanRequestDetailSerializer(
            loan_request, context=self.get_serializer_context()
        ).data


class LoanRequestReject(LoanRequestContextMixin, CreateAPI):
    """API endpoint to reject a LoanRequest (archive staff only)."""

    permission_classes = [permissions.IsAdminUser]
    serializer_class = serializers.LoanRequestRejectSerializer

    def create(self, request, *args, **kwargs):
        """Reject the loan request and return the updated request."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        loan_request = serializer.save()

        return Response(self.request_data(loan_request), status=status.HTTP_200_OK)


class LoanRequestCancel(LoanRequestContextMixin, CreateAPI):
    """API endpoint to cancel a LoanRequest (archive staff or the requester)."""

    permission_classes = [permissions.IsAuthenticated, IsStaffOrRequester]

    serializer_class = serializers.LoanRequestCancelSerializer

    def create(self, request, *args, **kwargs):
        """Cancel the loan request and return the updated request."""
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        loan_request = serializer.save()

        return Response(self.request_data(loan_request), status=status.HTTP_200_OK)


class LoanRequestDraft(LoanRequestContextMixin, CreateAPI):
    """API endpoint for the draft of a fulfillment in progress (archive staff only).

    - GET: Return the saved draft
    - POST: Save (overwrite) the draft
    - DELETE: Discard the draft
    """

    permission_classes = [permissions.IsAdminUser]
    serializer_class = serializers.DraftAttentionSerializer

    def get(self, request, *args, **kwargs):
        """Return the latest draft of the request."""
        draft = self.get_object().load_draft()

        if draft is None:
            raise NotFound(_('No draft saved for this request'))

        return Response(self.get_serializer(draft).data)

    def create(self, request, *args, **kwargs):
        """Save the draft and return the stored snapshot."""
        serializer = self.get_serializer(data=self.clean_data(request.data))
        serializer.is_valid(raise_exception=True)
        draft = serializer.save()

        return Response(self.get_serializer(draft).data, status=status.HTTP_200_OK)

    def delete(self, request, *args, **kwargs):
        """Discard the draft of the request."""
        if not self.get_object().clear_draft():
            raise NotFound(_('No draft saved for this request'))

        return Response(status=status.HTTP_204_NO_CONTENT)


class LoanRequestFinalize(LoanRequestContextMixin, CreateAPI):
    """API endpoint to hand over the items of a LoanRequest (archive staff only)."""

    permission_classes = [permissions.IsAdminUser]
    serializer_class = serializers.LoanRequestFinalizeSerializer

    def create(self, request, *args, **kwargs):
        """Deliver the items and return the updated request with the loan items."""
        serializer = self.get_serializer(data=self.clean_data(request.data))
        serializer.is_valid(raise_exception=True)
        loan_items = serializer.save()

        return Response(
            {
                'request': self.request_data(self.get_object()),
                'items': serializers.LoanItemSerializer(loan_items, many=True).data,
            },
            status=status.HTTP_200_OK,
        )


class LoanRequestReturnItems(LoanRequestContextMixin, CreateAPI):
    """API endpoint to return items of a LoanRequest (archive staff only)."""

    permission_classes = [permissions.IsAdminUser]
    serializer_class = serializers.LoanRequestReturnItemsSerializer

    def create(self, request, *args, **kwargs):
        """Return the items and return the updated request with the return records."""
        serializer = self.get_serializer(data=self.clean_data(request.data))
        serializer.is_valid(raise_exception=True)
        records = serializer.save()

        return Response(
            {
                'request': self.request_data(self.get_object()),
                'returns': serializers.ReturnRecordSerializer(records, many=True).data,
            },
            status=status.HTTP_200_OK,
        )


# Item ledger endpoints


class LoanItemFilter(FilterSet):
    """Custom filters for the LoanItem endpoint."""

    class Meta:
        """Metaclass options."""

        model = models.LoanItem
        fields = []

    request = rest_filters.ModelChoiceFilter(
        queryset=models.LoanRequest.objects.all(),
        field_name='request',
        label=_('Loan Request'),
    )

    item = rest_filters.ModelChoiceFilter(
        queryset=InventoryItem.objects.all(), field_name='item', label=_('Item')
    )

    outstanding = rest_filters.BooleanFilter(
        label=_('Outstanding'), method='filter_outstanding'
    )

    def filter_outstanding(self, queryset, name, value):
        """Filter by loan items which have not come back yet."""
        if str2bool(value):
            return queryset.outstanding()
        return queryset.returned()


class LoanItemList(SerializerContextMixin, ListAPI):
    """API endpoint for accessing the list of LoanItem objects (read-only)."""

    queryset = models.LoanItem.objects.all()
    serializer_class = serializers.LoanItemSerializer

    filterset_class = LoanItemFilter
    filter_backends = SEARCH_ORDER_FILTER_ALIAS

    ordering_fields = ['request', 'sequence', 'item', 'delivered_at']

    ordering_field_aliases = {
        'request': ['request__reference_int', 'sequence'],
        'item': 'item__code',
    }

    search_fields = ['item__code', 'item__description', 'request__reference']

    def get_queryset(self, *args, **kwargs):
        """Return the loan items joined with their items and return records."""
        queryset = super().get_queryset(*args, **kwargs)

        return queryset.select_related('item', 'request', 'return_record')


# Return ledger endpoints


class ReturnRecordFilter(FilterSet):
    """Custom filters for the ReturnRecord endpoint."""

    class Meta:
        """Metaclass options."""

        model = models.ReturnRecord
        fields = ['request', 'item', 'loan_item']

    returned_before = ArchiveDateFilter(
        label=_('Returned Before'), field_name='returned_at', lookup_expr='lt'
    )

    returned_after = ArchiveDateFilter(
        label=_('Returned After'), field_name='returned_at', lookup_expr='gt'
    )


class ReturnRecordList(SerializerContextMixin, ListAPI):
    """API endpoint for accessing the list of ReturnRecord objects (read-only)."""

    queryset = models.ReturnRecord.objects.all()
    serializer_class = serializers.ReturnRecordSerializer

    filterset_class = ReturnRecordFilter
    filter_backends = SEARCH_ORDER_FILTER

    ordering_fields = ['returned_at', 'request', 'item']

    search_fields = ['item__code', 'condition', 'notes']

    def get_queryset(self, *args, **kwargs):
        """Return the return records joined with their items and users."""
        queryset = super().get_queryset(*args, **kwargs)

        return queryset.select_related('item', 'received_by')


class LoanRequestStatusView(StatusView):
    """API endpoint for LoanRequest status codes."""

    status_class = LoanRequestStatus


loan_request_api_urls = [
    path(
        'status/', LoanRequestStatusView.as_view(), name='api-loan-request-status-list'
    ),
    path('item/', LoanItemList.as_view(), name='api-loan-item-list'),
    path('return/', ReturnRecordList.as_view(), name='api-loan-return-list'),
    path(
        '<int:pk>/',
        include([
            path('reject/', LoanRequestReject.as_view(), name='api-loan-request-reject'),
            path('cancel/', LoanRequestCancel.as_view(), name='api-loan-request-cancel'),
            path('draft/', LoanRequestDraft.as_view(), name='api-loan-request-draft'),
            path(
                'finalize/',
                LoanRequestFinalize.as_view(),
                name='api-loan-request-finalize',
            ),
            path(
                'return-items/',
                LoanRequestReturnItems.as_view(),
                name='api-loan-request-return-items',
            ),
            path('', LoanRequestDetail.as_view(), name='api-loan-request-detail'),
        ]),
    ),
    path('', LoanRequestList.as_view(), name='api-loan-request-list'),
]
