"""JSON serializers for the Loan API."""

from django.db.models import BooleanField, Case, Value, When
from django.utils.translation import gettext_lazy as _

from rest_framework import serializers
from rest_framework.serializers import ValidationError
from sql_util.utils import SubqueryCount

import loan.models as models
from Archive.serializers import ArchiveModelSerializer, UserSerializer
from inventory.lookup import ItemLookup
from inventory.serializers import InventoryItemBriefSerializer
from loan.exceptions import ItemNotFound, RequestNotPending
from loan.status_codes import ServiceModality


class LoanItemSerializer(serializers.ModelSerializer):
    """Serializer for the LoanItem model (read-only)."""

    class Meta:
        """Metaclass options."""

        model = models.LoanItem
        fields = [
            'pk',
            'request',
            'sequence',
            'item',
            'item_detail',
            'shelf_location',
            'delivered_at',
            'returned',
        ]
        read_only_fields = fields

    item_detail = InventoryItemBriefSerializer(source='item', read_only=True)

    returned = serializers.BooleanField(source='is_returned', read_only=True)


class ReturnRecordSerializer(serializers.ModelSerializer):
    """Serializer for the ReturnRecord model (read-only)."""

    class Meta:
        """Metaclass options."""

        model = models.ReturnRecord
        fields = [
            'pk',
            'request',
            'item',
            'item_code',
            'loan_item',
            'signature',
            'condition',
            'notes',
            'received_by',
            'received_by_detail',
            'returned_at',
        ]
        read_only_fields = fields

    item_code = serializers.CharField(source='item.code', read_only=True)

    received_by_detail = UserSerializer(source='received_by', read_only=True)


class LoanRequestSerializer(ArchiveModelSerializer):
    """Serializer for the LoanRequest model class."""

    class Meta:
        """Metaclass options."""

        model = models.LoanRequest
        fields = [
            'pk',
            'reference',
            'requester',
            'requester_name',
            'requester_email',
            'requester_phone',
            'department',
            'entity',
            'justification',
            'modality',
            'status',
            'status_text',
            'created_at',
            'created_by',
            'delivered_at',
            'delivered_by',
            'expected_return_date',
            'returned_at',
            'signature',
            'delivery_notes',
            'archive_notes',
            'updated_at',
            'updated_by',
            'overdue',
            'loan_item_count',
            'return_count',
        ]
        read_only_fields = [
            'reference',
            'status',
            'created_at',
            'created_by',
            'delivered_at',
            'delivered_by',
            'returned_at',
            'signature',
            'delivery_notes',
            'archive_notes',
            'updated_at',
            'updated_by',
        ]

    # Human-readable status text
    status_text = serializers.CharField(source='get_status_display', read_only=True)

    # Boolean field indicating if this request is overdue (annotated)
    overdue = serializers.BooleanField(read_only=True, allow_null=True)

    loan_item_count = serializers.IntegerField(
        read_only=True, allow_null=True, label=_('Items')
    )

    return_count = serializers.IntegerField(
        read_only=True, allow_null=True, label=_('Returned Items')
    )

    @staticmethod
    def annotate_queryset(queryset):
        """Add extra information to the queryset."""
        queryset = queryset.annotate(
            loan_item_count=SubqueryCount('items'), return_count=SubqueryCount('returns')
        )

        # Overdue annotation (computed from expected_return_date and status)
        queryset = queryset.annotate(
            overdue=Case(
                When(
                    models.LoanRequest.overdue_filter(),
                    then=Value(True, output_field=BooleanField()),
                ),
                default=Value(False, output_field=BooleanField()),
            )
        )

        return queryset

    def to_representation(self, instance):
        """Fill in the annotated fields for un-annotated instances."""
        data = super().to_representation(instance)

        if not hasattr(instance, 'overdue'):
            data['overdue'] = instance.is_overdue

        if not hasattr(instance, 'loan_item_count'):
            data['loan_item_count'] = instance.item_count
            data['return_count'] = instance.returned_count

        return data

    def create(self, validated_data):
        """Register the request through the model operation."""
        request = self.context.get('request')
        user = getattr(request, 'user', None)

        if user is not None and not user.is_authenticated:
            user = None

        return models.LoanRequest.create_request(user=user, **validated_data)

    def update(self, instance, validated_data):
        """Requests can only be edited while pending."""
        if not instance.is_pending:
            raise RequestNotPending(ids=[instance.pk])

        request = self.context.get('request')
        validated_data['updated_by'] = getattr(request, 'user', None)

        return super().update(instance, validated_data)


class LoanRequestDetailSerializer(LoanRequestSerializer):
    """Serializer for a LoanRequest joined with its item and return ledgers."""

    class Meta(LoanRequestSerializer.Meta):
        """Metaclass options."""

        fields = [*LoanRequestSerializer.Meta.fields, 'items', 'returns', 'has_draft']

    items = LoanItemSerializer(many=True, read_only=True)

    returns = ReturnRecordSerializer(many=True, read_only=True)

    has_draft = serializers.SerializerMethodField()

    def get_has_draft(self, instance) -> bool:
        """Return True if a draft is staged for this request.

        Uses the draft selected by LoanRequestQuerySet.with_detail() when available.
        """
        return hasattr(instance, 'draft')


class LoanRequestRejectSerializer(serializers.Serializer):
    """Serializer for rejecting a LoanRequest."""

    class Meta:
        """Metaclass options."""

        fields = ['reason']

    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        trim_whitespace=False,
        label=_('Reason'),
        help_text=_('Reason for rejecting the request'),
    )

    def save(self):
        """Save the serializer to reject the request and return updated request."""
        loan_request = self.context['loan_request']
        user = self.context['request'].user

        loan_request.reject(self.validated_data.get('reason', ''), user=user)
        loan_request.refresh_from_db()
        return loan_request


class LoanRequestCancelSerializer(serializers.Serializer):
    """Serializer for cancelling a LoanRequest."""

    class Meta:
        """Metaclass options."""

        fields = []

    def save(self):
        """Save the serializer to cancel the request and return updated request."""
        loan_request = self.context['loan_request']
        user = self.context['request'].user

        loan_request.cancel(user=user)
        loan_request.refresh_from_db()
        return loan_request


class ScannedCodeMixin(serializers.Serializer):
    """Accept scanned item codes alongside item ids."""

    codes = serializers.ListField(
        child=serializers.CharField(),
        required=False,
        write_only=True,
        label=_('Codes'),
        help_text=_('Scanned item codes, appended to the selection'),
    )

    def resolve_codes(self, items, codes) -> list:
        """Append the items matching the scanned codes to the selection."""
        lookup = ItemLookup()
        items = list(items or [])
        unknown = []

        for code in codes or []:
            item = lookup.resolve_by_code(code)

            if item is None:
                unknown.append(code)
            else:
                items.append(item.pk)

        if unknown:
            raise ItemNotFound(ids=unknown)

        return items


class DraftAttentionSerializer(ScannedCodeMixin, serializers.Serializer):
    """Serializer for the draft of a fulfillment in progress."""

    class Meta:
        """Metaclass options."""

        fields = ['selection', 'codes', 'signature', 'notes', 'updated_at']

    selection = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        allow_empty=True,
        label=_('Selection'),
        help_text=_('Ordered list of selected inventory item ids'),
    )

    signature = serializers.CharField(
        required=False, allow_blank=True, allow_null=True, label=_('Signature')
    )

    notes = serializers.CharField(
        required=False, allow_blank=True, label=_('Notes')
    )

    updated_at = serializers.DateTimeField(read_only=True)

    def save(self):
        """Store the draft and return the saved snapshot."""
        loan_request = self.context['loan_request']
        user = self.context['request'].user
        data = self.validated_data

        selection = self.resolve_codes(data.get('selection'), data.get('codes'))

        return loan_request.save_draft(
            selection,
            signature=data.get('signature'),
            notes=data.get('notes', ''),
            user=user,
        )


class LoanRequestFinalizeSerializer(ScannedCodeMixin, serializers.Serializer):
    """Serializer for handing over the items of a LoanRequest."""

    class Meta:
        """Metaclass options."""

        fields = ['items', 'codes', 'signature', 'notes', 'modality']

    items = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        allow_empty=True,
        label=_('Items'),
        help_text=_('Ordered list of inventory item ids to hand over'),
    )

    signature = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        label=_('Signature'),
        help_text=_('Requester signature, mandatory for the loan of an original'),
    )

    notes = serializers.CharField(
        required=False, allow_blank=True, label=_('Delivery Notes')
    )

    modality = serializers.ChoiceField(
        choices=ServiceModality.choices,
        required=False,
        allow_null=True,
        label=_('Service Modality'),
        help_text=_('Override the modality of the request'),
    )

    def save(self):
        """Hand over the items and return the created loan items."""
        loan_request = self.context['loan_request']
        user = self.context['request'].user
        data = self.validated_data

        items = self.resolve_codes(data.get('items'), data.get('codes'))

        return loan_request.finalize_fulfillment(
            items,
            signature=data.get('signature'),
            notes=data.get('notes'),
            user=user,
            modality=data.get('modality'),
        )


class LoanRequestReturnItemsSerializer(serializers.Serializer):
    """Serializer for returning items of a LoanRequest."""

    class Meta:
        """Metaclass options."""

        fields = ['items', 'signature', 'conditions', 'notes']

    items = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        allow_empty=True,
        label=_('Items'),
        help_text=_('List of loan item ids to mark as returned'),
    )

    signature = serializers.CharField(
        required=False,
        allow_blank=True,
        allow_null=True,
        label=_('Signature'),
        help_text=_('Receiving signature, mandatory for the loan of an original'),
    )

    conditions = serializers.DictField(
        child=serializers.CharField(allow_blank=True),
        required=False,
        label=_('Conditions'),
        help_text=_('Condition note for each returned loan item id'),
    )

    notes = serializers.CharField(required=False, allow_blank=True, label=_('Notes'))

    def validate_conditions(self, conditions):
        """Condition notes are keyed by loan item id."""
        result = {}

        for key, value in conditions.items():
            try:
                result[int(key)] = value
            except (TypeError, ValueError):
                raise ValidationError(_('Invalid loan item id: {key}').format(key=key))

        return result

    def save(self):
        """Return the items and return the created return records."""
        loan_request = self.context['loan_request']
        user = self.context['request'].user
        data = self.validated_data

        return loan_request.reconcile_return(
            data.get('items', []),
            signature=data.get('signature'),
            conditions=data.get('conditions'),
            notes=data.get('notes', ''),
            user=user,
        )
