"""Loan request model definitions."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models import Max, Q, QuerySet
from django.urls import reverse
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

import structlog

import loan.filters
import loan.validators
from Archive.events import trigger_event
from Archive.exceptions import ArchiveIntegrityError, InvalidStateTransition
from Archive.helpers import current_date, current_time, is_blank, unique_ordered
from generic.states import StateTransitionMixin
from inventory.models import InventoryItem
from inventory.status_codes import ItemAvailability
from loan.events import LoanRequestEvents
from loan.exceptions import (
    AlreadyReturned,
    EmptySelection,
    ItemNotAvailable,
    ItemNotFound,
    LoanItemNotFound,
    MissingReason,
    RequestNotPending,
    SignatureRequired,
    UnexpectedSignature,
)
from loan.status_codes import (
    LoanRequestStatus,
    LoanRequestStatusGroups,
    ServiceModality,
)

logger = structlog.get_logger('archive')


# Allowed status transitions for LoanRequest
ALLOWED_TRANSITIONS = {
    LoanRequestStatus.PENDING.value: [
        LoanRequestStatus.DELIVERED.value,
        LoanRequestStatus.REJECTED.value,
        LoanRequestStatus.CANCELLED.value,
    ],
    LoanRequestStatus.DELIVERED.value: [
        LoanRequestStatus.PARTIALLY_RETURNED.value,
        LoanRequestStatus.FULLY_RETURNED.value,
    ],
    LoanRequestStatus.PARTIALLY_RETURNED.value: [
        LoanRequestStatus.FULLY_RETURNED.value
    ],
    LoanRequestStatus.FULLY_RETURNED.value: [],  # Terminal state
    LoanRequestStatus.REJECTED.value: [],  # Terminal state
    LoanRequestStatus.CANCELLED.value: [],  # Terminal state
}


def _pk(value) -> int:
    """Accept either a model instance or a raw primary key."""
    return int(getattr(value, 'pk', value))


@dataclass(frozen=True)
class DraftSnapshot:
    """The resumable working state of a fulfillment in progress.

    Same shape as the arguments of LoanRequest.finalize_fulfillment().
    """

    selection: tuple = field(default_factory=tuple)
    signature: Optional[str] = None
    notes: str = ''
    updated_at: Optional[datetime] = None


class LoanRequestQuerySet(models.QuerySet):
    """Custom queryset for the LoanRequest model."""

    def by_status(self, status):
        """Requests in the provided status."""
        return self.filter(status=LoanRequestStatus(int(status)).value)

    def pending(self):
        """Requests awaiting attention."""
        return self.filter(loan.filters.filter_pending_loan_requests())

    def outstanding(self):
        """Requests with items still out."""
        return self.filter(loan.filters.filter_outstanding_loan_requests())

    def closed(self):
        """Requests in a terminal state."""
        return self.filter(loan.filters.filter_closed_loan_requests())

    def overdue(self):
        """Outstanding requests past their expected return date."""
        return self.filter(LoanRequest.overdue_filter())

    def with_detail(self):
        """Prefetch the item and return ledgers, and the draft, of each request."""
        return self.select_related(
            'requester', 'created_by', 'delivered_by', 'updated_by', 'draft'
        ).prefetch_related(
            'items',
            'items__item',
            'items__return_record',
            'returns',
            'returns__received_by',
        )


class LoanRequest(StateTransitionMixin, models.Model):
    """A LoanRequest asks the archive to lend, copy, show or digitize documents.

    The request moves through the states listed in ALLOWED_TRANSITIONS.
    Items are attached when the request is fulfilled (see LoanItem) and
    given back through one or more returns (see ReturnRecord).

    Attributes:
        reference: Unique, human-readable request number
        requester: User who asked for the service (optional)
        requester_name: Name of the requester
        requester_email: Contact email
        requester_phone: Contact phone
        department: Department of the requester
        entity: External entity of the requester
        justification: Why the documents are needed
        modality: Kind of service requested (see ServiceModality)
        status: Lifecycle status (see LoanRequestStatus)
        created_at: Date and time the request was created
        created_by: User who registered the request
        delivered_at: Date and time the items were handed over
        delivered_by: Archivist who handed over the items
        expected_return_date: Date the originals are due back
        returned_at: Date and time the last item came back
        signature: Signature of the requester at delivery
        delivery_notes: Notes recorded at delivery
        archive_notes: Archive-side notes (the reason of a rejection)
        updated_at: Date and time of the last change
        updated_by: User who made the last change
    """

    TRANSITIONS = ALLOWED_TRANSITIONS

    objects = LoanRequestQuerySet.as_manager()

    class Meta:
        """Model meta options."""

        verbose_name = _('Loan Request')
        verbose_name_plural = _('Loan Requests')
        ordering = ['-reference_int']

    def __str__(self):
        """Render a string representation of this LoanRequest."""
        return f'{self.reference} - {self.requester_name}'

    def save(self, *args, **kwargs):
        """Custom save method for LoanRequest."""
        self.reference_int = self.rebuild_reference_field(self.reference)

        # The expected return date only applies to originals
        if self.modality != ServiceModality.LOAN_ORIGINAL:
            self.expected_return_date = None

        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Fulfilled requests are retained for audit."""
        if self.was_fulfilled:
            raise ValidationError({
                'non_field_errors': _('A fulfilled request cannot be deleted')
            })

        return super().delete(*args, **kwargs)

    def clean(self):
        """Custom clean method for LoanRequest."""
        super().clean()

        if is_blank(self.justification):
            raise ValidationError({'justification': _('A justification is required')})

        if is_blank(self.requester_name):
            raise ValidationError({
                'requester_name': _('The name of the requester is required')
            })

        # Expected return date should not be before creation date
        created = (
            timezone.localdate(self.created_at) if self.created_at else current_date()
        )

        if (
            self.modality == ServiceModality.LOAN_ORIGINAL
            and self.expected_return_date
            and self.expected_return_date < created
        ):
            raise ValidationError({
                'expected_return_date': _(
                    'Expected return date cannot be before creation date'
                )
            })

    @staticmethod
    def get_api_url() -> str:
        """Return the API URL associated with the LoanRequest model."""
        return reverse('api-loan-request-list')

    # region Reference

    @classmethod
    def get_reference_prefix(cls) -> str:
        """Return the configured reference prefix."""
        return settings.LOAN_REQUEST_REFERENCE_PREFIX

    @classmethod
    def generate_reference(cls) -> str:
        """Generate the next available reference, e.g. SA-0001."""
        latest = cls.objects.aggregate(latest=Max('reference_int'))['latest'] or 0
        return f'{cls.get_reference_prefix()}{latest + 1:04d}'

    @classmethod
    def validate_reference_field(cls, value):
        """Check that the reference is the prefix followed by a number."""
        pattern = rf'^{re.escape(cls.get_reference_prefix())}\d+$'

        if not re.match(pattern, str(value or '')):
            raise ValidationError(
                _('Reference must match pattern {pattern}').format(
                    pattern=f'{cls.get_reference_prefix()}0000'
                )
            )

    @staticmethod
    def rebuild_reference_field(reference) -> int:
        """Extract the trailing number of a reference, for sorting."""
        match = re.search(r'(\d+)$', str(reference or ''))

        if match is None:
            return 0

        return int(match.group(1))

    # endregion

    # region Fields

    reference = models.CharField(
        unique=True,
        max_length=64,
        blank=False,
        verbose_name=_('Reference'),
        help_text=_('Loan request reference'),
        default=loan.validators.generate_next_loan_request_reference,
        validators=[loan.validators.validate_loan_request_reference],
    )

    reference_int = models.BigIntegerField(default=0)

    requester = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='loan_requests',
        verbose_name=_('Requester'),
        help_text=_('User who asked for the service'),
    )

    requester_name = models.CharField(
        max_length=250, verbose_name=_('Requester Name')
    )

    requester_email = models.EmailField(blank=True, verbose_name=_('Email'))

    requester_phone = models.CharField(
        max_length=50, blank=True, verbose_name=_('Phone')
    )

    department = models.CharField(
        max_length=250, blank=True, verbose_name=_('Department')
    )

    entity = models.CharField(max_length=250, blank=True, verbose_name=_('Entity'))

    justification = models.TextField(
        verbose_name=_('Justification'), help_text=_('Why the documents are needed')
    )

    modality = models.CharField(
        max_length=32,
        choices=ServiceModality.choices,
        default=ServiceModality.LOAN_ORIGINAL,
        verbose_name=_('Service Modality'),
    )

    status = models.PositiveIntegerField(
        default=LoanRequestStatus.PENDING.value,
        choices=LoanRequestStatus.items(),
        verbose_name=_('Status'),
        help_text=_('Loan request status'),
    )

    created_at = models.DateTimeField(auto_now_add=True, verbose_name=_('Created'))

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
        verbose_name=_('Created By'),
    )

    delivered_at = models.DateTimeField(
        blank=True, null=True, verbose_name=_('Delivered')
    )

    delivered_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
        verbose_name=_('Delivered By'),
    )

    expected_return_date = models.DateField(
        blank=True,
        null=True,
        verbose_name=_('Expected Return Date'),
        help_text=_('Date the originals are due back'),
    )

    returned_at = models.DateTimeField(
        blank=True,
        null=True,
        verbose_name=_('Returned'),
        help_text=_('Date and time the last item came back'),
    )

    signature = models.TextField(
        blank=True,
        null=True,
        verbose_name=_('Signature'),
        help_text=_('Signature of the requester at delivery'),
    )

    delivery_notes = models.TextField(blank=True, verbose_name=_('Delivery Notes'))

    archive_notes = models.TextField(blank=True, verbose_name=_('Archive Notes'))

    updated_at = models.DateTimeField(auto_now=True, verbose_name=_('Updated'))

    updated_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
        verbose_name=_('Updated By'),
    )

    # endregion

    # region Properties

    @property
    def status_text(self) -> str:
        """Return the text representation of the status field."""
        return LoanRequestStatus.text(self.status)

    @property
    def is_pending(self) -> bool:
        """Return True if the LoanRequest is 'pending'."""
        return self.status == LoanRequestStatus.PENDING.value

    @property
    def is_outstanding(self) -> bool:
        """Return True if items are still out with the requester."""
        return self.status in LoanRequestStatusGroups.OUTSTANDING

    @property
    def was_fulfilled(self) -> bool:
        """Return True if items were handed over at some point."""
        return self.status in LoanRequestStatusGroups.FULFILLED

    @property
    def requires_signature(self) -> bool:
        """Return True if delivery and return must be signed."""
        return ServiceModality.requires_signature(self.modality)

    @classmethod
    def overdue_filter(cls):
        """Return a Q filter for overdue loan requests.

        OVERDUE is NOT a status - it's computed from:
        - Items are still out (DELIVERED or PARTIALLY_RETURNED)
        - expected_return_date is set and is in the past
        """
        today = current_date()
        return (
            Q(status__in=LoanRequestStatusGroups.OUTSTANDING)
            & ~Q(expected_return_date=None)
            & Q(expected_return_date__lt=today)
        )

    @property
    def is_overdue(self) -> bool:
        """Computed property to check if this loan is overdue."""
        return (
            self.is_outstanding
            and self.expected_return_date is not None
            and self.expected_return_date < current_date()
        )

    @property
    def item_count(self) -> int:
        """Return the number of items delivered under this request."""
        return self.items.count()

    @property
    def returned_count(self) -> int:
        """Return the number of delivered items which have come back."""
        return self.items.filter(return_record__isnull=False).count()

    def outstanding_items(self) -> QuerySet:
        """Return the loan items which have not been returned yet."""
        return self.items.filter(return_record__isnull=True)

    # endregion

    # region Queries

    @classmethod
    def list_by_status(cls, status) -> QuerySet:
        """Return the requests in the provided status."""
        return cls.objects.by_status(status)

    @classmethod
    def get_request_detail(cls, pk):
        """Return a request joined with its loan items and return records."""
        return cls.objects.with_detail().get(pk=pk)

    # endregion

    # region Request creation

    @classmethod
    def create_request(
        cls,
        requester_name: str,
        justification: str,
        modality=ServiceModality.LOAN_ORIGINAL,
        user: Optional[User] = None,
        **kwargs,
    ):
        """Register a new PENDING request.

        Arguments:
            requester_name: Name of the requester
            justification: Why the documents are needed
            modality: Kind of service requested
            user: The user registering the request
            kwargs: Other LoanRequest fields (contact details, expected_return_date)

        Raises:
            ValidationError: The request data is not valid
        """
        request = cls(
            requester_name=(requester_name or '').strip(),
            justification=(justification or '').strip(),
            modality=modality,
            created_by=user,
            updated_by=user,
            **kwargs,
        )

        if request.requester is None and user is not None:
            request.requester = user

        request.full_clean()
        request.save()

        logger.info(
            'Loan request created',
            reference=request.reference,
            pk=request.pk,
            modality=request.modality,
        )

        trigger_event(LoanRequestEvents.CREATED, id=request.pk)

        return request

    # endregion

    # region Locking

    def _lock_for_update(self):
        """Lock this request row and reload every field from the database.

        Must be called inside transaction.atomic. Actions save with
        update_fields, writing only the columns they change.
        """
        LoanRequest.objects.select_for_update().filter(pk=self.pk).values_list(
            'pk', flat=True
        ).get()

        self.refresh_from_db()

    def _conflict(self, error):
        """Log a conflict and return the error to be raised."""
        logger.warning(
            'Loan request conflict',
            reference=self.reference,
            pk=self.pk,
            error=error.code,
            ids=error.ids,
        )
        return error

    # endregion

    # region Rejection / cancellation

    def _action_reject(self, current_state, target_state, instance, **kwargs):
        """Mark the LoanRequest as REJECTED."""
        self.status = LoanRequestStatus.REJECTED.value
        self.archive_notes = kwargs['reason']
        self.updated_by = kwargs.get('user')
        self.save(update_fields=['status', 'archive_notes', 'updated_by', 'updated_at'])

        DraftAttention.objects.filter(request=self).delete()

    def _action_cancel(self, current_state, target_state, instance, **kwargs):
        """Mark the LoanRequest as CANCELLED."""
        self.status = LoanRequestStatus.CANCELLED.value
        self.updated_by = kwargs.get('user')
        self.save(update_fields=['status', 'updated_by', 'updated_at'])

        DraftAttention.objects.filter(request=self).delete()

    def reject(self, reason: str, user: Optional[User] = None):
        """Reject this request.

        Arguments:
            reason: Why the request is refused (mandatory)
            user: The archivist rejecting the request

        Raises:
            MissingReason: The reason is empty
            InvalidStateTransition: The request is not PENDING
        """
        if is_blank(reason):
            raise MissingReason(ids=[self.pk])

        reason = reason.strip()

        with transaction.atomic():
            self._lock_for_update()

            self.handle_transition(
                self.status,
                LoanRequestStatus.REJECTED.value,
                self,
                self._action_reject,
                reason=reason,
                user=user,
            )

        logger.info('Loan request rejected', reference=self.reference, pk=self.pk)

        trigger_event(LoanRequestEvents.REJECTED, id=self.pk, reason=reason)

        return self

    def cancel(self, user: Optional[User] = None):
        """Cancel this request, on behalf of the requester.

        Raises:
            InvalidStateTransition: The request is not PENDING
        """
        with transaction.atomic():
            self._lock_for_update()

            self.handle_transition(
                self.status,
                LoanRequestStatus.CANCELLED.value,
                self,
                self._action_cancel,
                user=user,
            )

        logger.info('Loan request cancelled', reference=self.reference, pk=self.pk)

        trigger_event(LoanRequestEvents.CANCELLED, id=self.pk)

        return self

    # endregion

    # region Draft staging

    def save_draft(
        self, selection, signature=None, notes='', user: Optional[User] = None
    ) -> DraftSnapshot:
        """Store the working state of a fulfillment in progress.

        The draft is keyed by request: saving again overwrites it.
        Drafts never touch inventory availability.

        Raises:
            RequestNotPending: The request is no longer PENDING
        """
        status = LoanRequest.objects.values_list('status', flat=True).get(pk=self.pk)

        if status != LoanRequestStatus.PENDING.value:
            raise RequestNotPending(ids=[self.pk])

        draft, _created = DraftAttention.objects.update_or_create(
            request=self,
            defaults={
                'selection': unique_ordered(_pk(item) for item in selection or []),
                'signature': None if is_blank(signature) else signature,
                'notes': notes or '',
                'updated_by': user,
            },
        )

        logger.info(
            'Loan request draft saved',
            reference=self.reference,
            pk=self.pk,
            selection=draft.selection,
        )

        trigger_event(LoanRequestEvents.DRAFT_SAVED, id=self.pk)

        return draft.snapshot()

    def load_draft(self) -> Optional[DraftSnapshot]:
        """Return the latest draft of this request, or None."""
        draft = DraftAttention.objects.filter(request=self).first()

        if draft is None:
            return None

        return draft.snapshot()

    def clear_draft(self) -> bool:
        """Discard the draft of this request.

        Returns:
            True if a draft was deleted
        """
        count, _deleted = DraftAttention.objects.filter(request=self).delete()

        if count:
            logger.info(
                'Loan request draft cleared', reference=self.reference, pk=self.pk
            )
            trigger_event(LoanRequestEvents.DRAFT_CLEARED, id=self.pk)

        return count > 0

    # endregion

    # region Fulfillment

    def _check_delivery_signature(self, modality, signature):
        """Only the loan of an original is signed at delivery."""
        if ServiceModality.requires_signature(modality):
            if signature is None:
                raise SignatureRequired(ids=[self.pk])
        elif signature is not None:
            raise UnexpectedSignature(ids=[self.pk])

    def _action_deliver(self, current_state, target_state, instance, **kwargs):
        """Mark the LoanRequest as DELIVERED."""
        now = current_time()

        self.status = LoanRequestStatus.DELIVERED.value
        self.modality = kwargs['modality']
        self.signature = kwargs['signature']
        self.delivery_notes = kwargs['notes']
        self.delivered_at = now
        self.delivered_by = kwargs.get('user')
        self.updated_by = kwargs.get('user')
        self.save(update_fields=[
            'status',
            'modality',
            'expected_return_date',
            'signature',
            'delivery_notes',
            'delivered_at',
            'delivered_by',
            'updated_by',
            'updated_at',
        ])

        DraftAttention.objects.filter(request=self).delete()

    def finalize_fulfillment(
        self,
        items,
        signature=None,
        notes=None,
        user: Optional[User] = None,
        modality=None,
    ) -> QuerySet:
        """Hand over the selected items and mark the request as DELIVERED.

        All-or-nothing: either every item is delivered, or nothing changes.

        Arguments:
            items: Ordered list of InventoryItem objects or ids (duplicates are ignored)
            signature: Requester signature (mandatory for the loan of an original, refused otherwise)
            notes: Delivery notes (a default note is stored when blank)
            user: The archivist delivering the items
            modality: Override the modality of the request

        Raises (in the order checked):
            EmptySelection: No item was selected
            ItemNotFound: A selected item does not exist
            InvalidStateTransition: The request is not PENDING
            SignatureRequired: Signature missing for the loan of an original
            UnexpectedSignature: Signature supplied for another modality
            ItemNotAvailable: A selected item is not AVAILABLE

        The state, modality and signature checks run against the row locked
        inside the transaction, not against this in-memory instance.

        Returns:
            The created LoanItem objects
        """
        if modality and modality not in ServiceModality.values:
            raise ValidationError({'modality': _('Invalid service modality')})

        item_ids = unique_ordered(_pk(item) for item in items or [])

        if not item_ids:
            raise EmptySelection(ids=[self.pk])

        signature = None if is_blank(signature) else signature

        existing = set(
            InventoryItem.objects.filter(pk__in=item_ids).values_list('pk', flat=True)
        )
        missing = [pk for pk in item_ids if pk not in existing]

        if missing:
            raise ItemNotFound(ids=missing)

        if is_blank(notes):
            notes = settings.LOAN_DEFAULT_DELIVERY_NOTE

        with transaction.atomic():
            self._lock_for_update()

            if not self.is_transition_allowed(
                self.status, LoanRequestStatus.DELIVERED.value
            ):
                raise self._conflict(
                    InvalidStateTransition(
                        _('Only pending requests can be fulfilled'), ids=[self.pk]
                    )
                )

            modality = modality or self.modality
            self._check_delivery_signature(modality, signature)

            availability = ServiceModality.availability_for(modality)

            inventory = {
                item.pk: item for item in InventoryItem.objects.lock_for_update(item_ids)
            }

            missing = [pk for pk in item_ids if pk not in inventory]

            if missing:
                raise self._conflict(ItemNotFound(ids=missing))

            # Items delivered under another request and not returned yet
            busy = set(
                LoanItem.objects.outstanding()
                .filter(item__in=item_ids)
                .values_list('item', flat=True)
            )

            unavailable = [
                pk
                for pk in item_ids
                if pk in busy
                or inventory[pk].availability != ItemAvailability.AVAILABLE.value
            ]

            if unavailable:
                raise self._conflict(ItemNotAvailable(ids=unavailable))

            refused = InventoryItem.objects.claim(item_ids, availability)

            if refused:
                raise self._conflict(ItemNotAvailable(ids=refused))

            now = current_time()

            LoanItem.objects.bulk_create([
                LoanItem(
                    request=self,
                    item=inventory[pk],
                    sequence=idx,
                    shelf_location=inventory[pk].shelf_location,
                    delivered_at=now,
                )
                for idx, pk in enumerate(item_ids, start=1)
            ])

            self.handle_transition(
                self.status,
                LoanRequestStatus.DELIVERED.value,
                self,
                self._action_deliver,
                modality=modality,
                signature=signature,
                notes=notes,
                user=user,
            )

        logger.info(
            'Loan request delivered',
            reference=self.reference,
            pk=self.pk,
            items=item_ids,
            modality=modality,
        )

        trigger_event(LoanRequestEvents.DELIVERED, id=self.pk, items=item_ids)

        return self.items.all()

    # endregion

    # region Returns

    def _action_return(self, current_state, target_state, instance, **kwargs):
        """Update the return status of the LoanRequest."""
        self.status = target_state

        if target_state == LoanRequestStatus.FULLY_RETURNED.value:
            self.returned_at = current_time()

        self.updated_by = kwargs.get('user')
        self.save(update_fields=['status', 'returned_at', 'updated_by', 'updated_at'])

    def reconcile_return(
        self,
        loan_items,
        signature=None,
        conditions=None,
        notes='',
        user: Optional[User] = None,
    ) -> list:
        """Record the return of some (or all) outstanding items.

        All-or-nothing: either every selected item is returned, or nothing changes.

        Arguments:
            loan_items: LoanItem objects or ids to mark as returned
            signature: Receiving signature (mandatory for the loan of an original)
            conditions: Optional map of loan item id to condition note
            notes: General note stored on each return record
            user: The archivist receiving the items

        Raises (in the order checked):
            EmptySelection: No item was selected
            InvalidStateTransition: No items are out under this request. This
                covers PENDING requests (nothing was delivered) and closed ones,
                FULLY_RETURNED included: a return on a completed request is a
                state error, not AlreadyReturned.
            SignatureRequired: Signature missing for the loan of an original
            LoanItemNotFound: A selected item does not belong to this request
            AlreadyReturned: A selected item has already been returned

        Every check after EmptySelection runs against the row locked inside
        the transaction, not against this in-memory instance.

        Returns:
            The created ReturnRecord objects
        """
        loan_item_ids = unique_ordered(_pk(li) for li in loan_items or [])

        if not loan_item_ids:
            raise EmptySelection(ids=[self.pk])

        signature = None if is_blank(signature) else signature

        conditions = {
            int(key): value for key, value in (conditions or {}).items()
        }

        with transaction.atomic():
            self._lock_for_update()

            if not self.is_outstanding:
                raise self._conflict(
                    InvalidStateTransition(
                        _('No items are out under this request'), ids=[self.pk]
                    )
                )

            if self.requires_signature and signature is None:
                raise SignatureRequired(ids=[self.pk])

            owned = set(
                self.items.filter(pk__in=loan_item_ids).values_list('pk', flat=True)
            )
            foreign = [pk for pk in loan_item_ids if pk not in owned]

            if foreign:
                raise LoanItemNotFound(ids=foreign)

            locked = list(
                LoanItem.objects.select_for_update()
                .filter(request=self, pk__in=loan_item_ids)
                .order_by('pk')
            )

            returned = sorted(
                ReturnRecord.objects.filter(loan_item__in=loan_item_ids).values_list(
                    'loan_item', flat=True
                )
            )

            if returned:
                raise self._conflict(AlreadyReturned(ids=returned))

            item_ids = sorted({li.item_id for li in locked})

            # Lock the inventory rows before touching availability
            list(InventoryItem.objects.lock_for_update(item_ids))

            now = current_time()

            records = []

            for loan_item in sorted(locked, key=lambda li: loan_item_ids.index(li.pk)):
                condition = str(conditions.get(loan_item.pk) or '').strip()

                records.append(
                    ReturnRecord(
                        request=self,
                        item_id=loan_item.item_id,
                        loan_item=loan_item,
                        signature=signature,
                        condition=condition or settings.LOAN_DEFAULT_RETURN_CONDITION,
                        notes=notes or '',
                        received_by=user,
                        returned_at=now,
                    )
                )

            try:
                ReturnRecord.objects.bulk_create(records)
            except IntegrityError as exc:
                raise ArchiveIntegrityError(str(exc), ids=loan_item_ids) from exc

            # Items still out under another request stay unavailable
            still_out = set(
                LoanItem.objects.outstanding()
                .filter(item__in=item_ids)
                .values_list('item', flat=True)
            )

            InventoryItem.objects.set_availability(
                [pk for pk in item_ids if pk not in still_out],
                ItemAvailability.AVAILABLE,
            )

            # Recount from the return ledger
            total = self.items.count()
            returned_count = self.items.filter(return_record__isnull=False).count()

            if returned_count == total:
                target = LoanRequestStatus.FULLY_RETURNED.value
            else:
                target = LoanRequestStatus.PARTIALLY_RETURNED.value

            previous = self.status

            if target != previous:
                self.handle_transition(
                    previous, target, self, self._action_return, user=user
                )
            else:
                self.updated_by = user
                self.save(update_fields=['updated_by', 'updated_at'])

        logger.info(
            'Loan request items returned',
            reference=self.reference,
            pk=self.pk,
            loan_items=loan_item_ids,
            returned=returned_count,
            total=total,
        )

        trigger_event(
            LoanRequestEvents.ITEMS_RETURNED,
            id=self.pk,
            loan_items=loan_item_ids,
        )

        if target != previous:
            if target == LoanRequestStatus.FULLY_RETURNED.value:
                trigger_event(LoanRequestEvents.FULLY_RETURNED, id=self.pk)
            else:
                trigger_event(LoanRequestEvents.PARTIALLY_RETURNED, id=self.pk)

        return list(
            ReturnRecord.objects.filter(loan_item__in=loan_item_ids).order_by('pk')
        )

    # endregion


class LoanItemQuerySet(models.QuerySet):
    """Custom queryset for the LoanItem model."""

    def outstanding(self):
        """Loan items without a return record."""
        return self.filter(return_record__isnull=True)

    def returned(self):
        """Loan items with a return record."""
        return self.filter(return_record__isnull=False)


class LoanItem(models.Model):
    """One item handed over under a LoanRequest.

    Loan items are created by LoanRequest.finalize_fulfillment() and are
    never modified afterwards.

    Attributes:
        request: Link to the LoanRequest
        item: Link to the InventoryItem
        sequence: Position of the item in the delivery
        shelf_location: Shelf location of the item at delivery time
        delivered_at: Date and time of delivery
    """

    objects = LoanItemQuerySet.as_manager()

    class Meta:
        """Model meta options."""

        verbose_name = _('Loan Item')
        verbose_name_plural = _('Loan Items')
        ordering = ['request', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['request', 'item'], name='unique_loan_request_item'
            ),
            models.UniqueConstraint(
                fields=['request', 'sequence'], name='unique_loan_request_sequence'
            ),
        ]

    def __str__(self):
        """Render a string representation of this LoanItem."""
        return f'{self.request.reference} #{self.sequence} - {self.item.code}'

    def save(self, *args, **kwargs):
        """Loan items are append-only."""
        if not self._state.adding:
            raise ValidationError({
                'non_field_errors': _('Loan items cannot be modified')
            })

        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        """Loan items are append-only."""
        raise ValidationError({'non_field_errors': _('Loan items cannot be deleted')})

    @staticmethod
    def get_api_url():
        """Return the API URL for this model."""
        return reverse('api-loan-item-list')

    @property
    def is_returned(self) -> bool:
        """Return True if this item has a return record."""
        return hasattr(self, 'return_record')

    request = models.ForeignKey(
        LoanRequest,
        on_delete=models.PROTECT,
        related_name='items',
        verbose_name=_('Loan Request'),
    )

    item = models.ForeignKey(
        InventoryItem,
        on_delete=models.PROTECT,
        related_name='loan_items',
        verbose_name=_('Item'),
    )

    sequence = models.PositiveIntegerField(verbose_name=_('Sequence'))

    shelf_location = models.CharField(
        max_length=250,
        blank=True,
        verbose_name=_('Shelf Location'),
        help_text=_('Shelf location of the item at delivery time'),
    )

    delivered_at = models.DateTimeField(verbose_name=_('Delivered'))


class ReturnRecord(models.Model):
    """The return of one LoanItem.

    Attributes:
        request: Link to the LoanRequest
        item: Link to the InventoryItem
        loan_item: Link to the returned LoanItem (at most one return each)
        signature: Receiving signature
        condition: Condition of the item when received
        notes: General notes on the return
        received_by: Archivist who received the item
        returned_at: Date and time of the return
    """

    class Meta:
        """Model meta options."""

        verbose_name = _('Return Record')
        verbose_name_plural = _('Return Records')
        ordering = ['returned_at', 'pk']

    def __str__(self):
        """Render a string representation of this ReturnRecord."""
        return f'{self.request.reference} - {self.item.code}'

    @staticmethod
    def get_api_url():
        """Return the API URL for this model."""
        return reverse('api-loan-return-list')

    request = models.ForeignKey(
        LoanRequest,
        on_delete=models.PROTECT,
        related_name='returns',
        verbose_name=_('Loan Request'),
    )

    item = models.ForeignKey(
        InventoryItem,
        on_delete=models.PROTECT,
        related_name='return_records',
        verbose_name=_('Item'),
    )

    loan_item = models.OneToOneField(
        LoanItem,
        on_delete=models.PROTECT,
        related_name='return_record',
        verbose_name=_('Loan Item'),
    )

    signature = models.TextField(blank=True, null=True, verbose_name=_('Signature'))

    condition = models.CharField(
        max_length=250, blank=True, verbose_name=_('Condition')
    )

    notes = models.TextField(blank=True, verbose_name=_('Notes'))

    received_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
        verbose_name=_('Received By'),
    )

    returned_at = models.DateTimeField(
        default=current_time, verbose_name=_('Returned')
    )


class DraftAttention(models.Model):
    """Resumable working state of a fulfillment in progress.

    At most one draft exists per request. The draft is discarded once the
    request is fulfilled, rejected or cancelled.

    Attributes:
        request: Link to the LoanRequest (unique)
        selection: Ordered list of selected InventoryItem ids
        signature: Provisional signature
        notes: Provisional delivery notes
        updated_at: Date and time of the last save
        updated_by: User who saved the draft
    """

    class Meta:
        """Model meta options."""

        verbose_name = _('Draft Attention')
        verbose_name_plural = _('Draft Attentions')

    def __str__(self):
        """Render a string representation of this DraftAttention."""
        return f'{self.request.reference} (draft)'

    def snapshot(self) -> DraftSnapshot:
        """Return the typed snapshot of this draft."""
        return DraftSnapshot(
            selection=tuple(int(pk) for pk in self.selection or []),
            signature=self.signature,
            notes=self.notes,
            updated_at=self.updated_at,
        )

    request = models.OneToOneField(
        LoanRequest,
        on_delete=models.CASCADE,
        related_name='draft',
        verbose_name=_('Loan Request'),
    )

    selection = models.JSONField(default=list, blank=True, verbose_name=_('Selection'))

    signature = models.TextField(blank=True, null=True, verbose_name=_('Signature'))

    notes = models.TextField(blank=True, verbose_name=_('Notes'))

    updated_at = models.DateTimeField(auto_now=True, verbose_name=_('Updated'))

    updated_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        blank=True,
        null=True,
        related_name='+',
        verbose_name=_('Updated By'),
    )
