"""Admin interface for loan models."""

from django.contrib import admin

from loan import models


class ReadOnlyLedgerAdmin(admin.ModelAdmin):
    """Ledger entries are written by the loan operations only."""

    def has_add_permission(self, request, obj=None):
        """Ledger entries cannot be added through the admin."""
        return False

    def has_change_permission(self, request, obj=None):
        """Ledger entries cannot be edited through the admin."""
        return False

    def has_delete_permission(self, request, obj=None):
        """Ledger entries cannot be deleted through the admin."""
        return False


class LoanItemInline(admin.TabularInline):
    """Inline for the items delivered under a request."""

    model = models.LoanItem
    extra = 0
    fields = ['sequence', 'item', 'shelf_location', 'delivered_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        """Loan items are created by the fulfillment only."""
        return False


@admin.register(models.LoanRequest)
class LoanRequestAdmin(admin.ModelAdmin):
    """Admin interface for LoanRequest model."""

    list_display = [
        'reference',
        'requester_name',
        'department',
        'modality',
        'status',
        'created_at',
        'delivered_at',
        'expected_return_date',
        'returned_at',
    ]

    list_filter = ['status', 'modality', 'created_at', 'expected_return_date']

    search_fields = ['reference', 'requester_name', 'department', 'justification']

    # Status changes go through the loan operations
    readonly_fields = [
        'reference_int',
        'status',
        'created_at',
        'delivered_at',
        'delivered_by',
        'returned_at',
        'signature',
        'updated_at',
    ]

    raw_id_fields = ['requester', 'created_by', 'updated_by']

    inlines = [LoanItemInline]


@admin.register(models.LoanItem)
class LoanItemAdmin(ReadOnlyLedgerAdmin):
    """Admin interface for LoanItem model."""

    list_display = ['request', 'sequence', 'item', 'shelf_location', 'delivered_at']

    search_fields = ['request__reference', 'item__code']


@admin.register(models.ReturnRecord)
class ReturnRecordAdmin(ReadOnlyLedgerAdmin):
    """Admin interface for ReturnRecord model."""

    list_display = ['request', 'item', 'condition', 'received_by', 'returned_at']

    list_filter = ['returned_at']

    search_fields = ['request__reference', 'item__code', 'condition']


@admin.register(models.DraftAttention)
class DraftAttentionAdmin(admin.ModelAdmin):
    """Admin interface for DraftAttention model."""

    list_display = ['request', 'updated_at', 'updated_by']

    search_fields = ['request__reference']

    raw_id_fields = ['request', 'updated_by']
