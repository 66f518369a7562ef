"""Unit tests for the loan request lifecycle."""

from datetime import timedelta
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import TestCase, override_settings

from Archive.events import archive_event
from Archive.exceptions import InvalidStateTransition
from Archive.helpers import current_date
from inventory.models import InventoryItem, InventoryItemQuerySet
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
from loan.models import DraftAttention, LoanItem, LoanRequest, ReturnRecord
from loan.status_codes import LoanRequestStatus, ServiceModality

AVAILABLE = ItemAvailability.AVAILABLE.value
ON_LOAN = ItemAvailability.ON_LOAN.value
IN_SERVICE = ItemAvailability.IN_SERVICE.value


class LoanTestMixin:
    """Create an archivist and a few inventory items."""

    @classmethod
    def setUpTestData(cls):
        """Create the shared test data."""
        super().setUpTestData()

        cls.archivist = get_user_model().objects.create_user(
            username='archivist', password='password', is_staff=True
        )

        cls.item_a = InventoryItem.objects.create(
            code='A-001', description='Land registry', room='R1', shelf='2'
        )
        cls.item_b = InventoryItem.objects.create(
            code='B-001', description='Council minutes', room='R1', shelf='3'
        )
        cls.item_c = InventoryItem.objects.create(
            code='C-001', description='Parish census'
        )

    def setUp(self):
        """Record the events sent during each test."""
        super().setUp()

        self.events = []

        def receiver(sender, event, **kwargs):
            self.events.append(event)

        archive_event.connect(receiver, weak=False, dispatch_uid='loan-test-events')
        self.addCleanup(archive_event.disconnect, dispatch_uid='loan-test-events')

    def create_request(self, modality=ServiceModality.LOAN_ORIGINAL, **kwargs):
        """Register a new loan request."""
        kwargs.setdefault('requester_name', 'Ana Ruiz')
        kwargs.setdefault('justification', 'Boundary dispute research')

        return LoanRequest.create_request(
            modality=modality, user=self.archivist, **kwargs
        )

    def assertAvailability(self, item, value):
        """Check the stored availability of an inventory item."""
        self.assertEqual(InventoryItem.objects.get_availability(item.pk), value)


class LoanRequestCreateTest(LoanTestMixin, TestCase):
    """Tests for registering loan requests."""

    def test_create(self):
        """A new request is PENDING and carries a generated reference."""
        request = self.create_request(department='Legal')

        self.assertEqual(request.status, LoanRequestStatus.PENDING.value)
        self.assertEqual(request.reference, 'SA-0001')
        self.assertEqual(request.reference_int, 1)
        self.assertEqual(request.created_by, self.archivist)
        self.assertEqual(request.requester, self.archivist)
        self.assertEqual(request.status_text, 'Pending')
        self.assertIn(LoanRequestEvents.CREATED.value, self.events)

        second = self.create_request()
        self.assertEqual(second.reference, 'SA-0002')

        # Newest first
        self.assertEqual(list(LoanRequest.objects.all()), [second, request])

    @override_settings(LOAN_REQUEST_REFERENCE_PREFIX='PR-')
    def test_reference_prefix(self):
        """The reference prefix is configurable."""
        request = self.create_request()
        self.assertEqual(request.reference, 'PR-0001')

        with self.assertRaises(ValidationError):
            LoanRequest.validate_reference_field('SA-0001')

    def test_required_fields(self):
        """A requester name and a justification are required."""
        with self.assertRaises(ValidationError) as err:
            self.create_request(justification='   ')

        self.assertIn('justification', err.exception.message_dict)

        with self.assertRaises(ValidationError):
            self.create_request(requester_name='')

        self.assertEqual(LoanRequest.objects.count(), 0)

    def test_expected_return_date(self):
        """The expected return date cannot precede the request."""
        with self.assertRaises(ValidationError) as err:
            self.create_request(expected_return_date=current_date() - timedelta(days=1))

        self.assertIn('expected_return_date', err.exception.message_dict)

        # Only kept for the loan of an original
        request = self.create_request(
            modality=ServiceModality.SIMPLE_COPY,
            expected_return_date=current_date() + timedelta(days=5),
        )
        self.assertIsNone(request.expected_return_date)

    def test_transition_table(self):
        """Check the allowed status transitions."""
        self.assertTrue(
            LoanRequest.is_transition_allowed(
                LoanRequestStatus.PENDING.value, LoanRequestStatus.DELIVERED.value
            )
        )
        self.assertTrue(
            LoanRequest.is_transition_allowed(
                LoanRequestStatus.PARTIALLY_RETURNED.value,
                LoanRequestStatus.FULLY_RETURNED.value,
            )
        )
        self.assertFalse(
            LoanRequest.is_transition_allowed(
                LoanRequestStatus.DELIVERED.value, LoanRequestStatus.PENDING.value
            )
        )
        self.assertFalse(
            LoanRequest.is_transition_allowed(
                LoanRequestStatus.FULLY_RETURNED.value,
                LoanRequestStatus.PARTIALLY_RETURNED.value,
            )
        )

        for status in [
            LoanRequestStatus.FULLY_RETURNED,
            LoanRequestStatus.REJECTED,
            LoanRequestStatus.CANCELLED,
        ]:
            self.assertTrue(LoanRequest.is_terminal_state(status.value))

        self.assertFalse(LoanRequest.is_terminal_state(LoanRequestStatus.PENDING.value))

    def test_delete(self):
        """Pending requests may be deleted, fulfilled requests are kept."""
        request = self.create_request()
        request.delete()
        self.assertEqual(LoanRequest.objects.count(), 0)

        request = self.create_request()
        request.finalize_fulfillment([self.item_a], signature='sig')

        with self.assertRaises(ValidationError):
            request.delete()

        self.assertTrue(LoanRequest.objects.filter(pk=request.pk).exists())


class RejectCancelTest(LoanTestMixin, TestCase):
    """Tests for rejecting and cancelling requests."""

    def test_reject(self):
        """A rejection needs a reason and leaves the inventory alone."""
        request = self.create_request()

        with self.assertRaises(MissingReason) as err:
            request.reject('')

        self.assertEqual(err.exception.ids, [request.pk])

        with self.assertRaises(MissingReason):
            request.reject('   ')

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.PENDING.value)

        request.reject(' document misplaced ', user=self.archivist)

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.REJECTED.value)
        self.assertEqual(request.archive_notes, 'document misplaced')
        self.assertIn(LoanRequestEvents.REJECTED.value, self.events)

        for item in [self.item_a, self.item_b, self.item_c]:
            self.assertAvailability(item, AVAILABLE)

        # Terminal state
        with self.assertRaises(InvalidStateTransition):
            request.reject('again')

        with self.assertRaises(InvalidStateTransition):
            request.cancel()

    def test_cancel(self):
        """Only pending requests can be cancelled."""
        request = self.create_request()
        request.save_draft([self.item_a])

        request.cancel(user=self.archivist)

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.CANCELLED.value)
        self.assertIsNone(request.load_draft())
        self.assertIn(LoanRequestEvents.CANCELLED.value, self.events)

        delivered = self.create_request()
        delivered.finalize_fulfillment([self.item_b], signature='sig')

        with self.assertRaises(InvalidStateTransition) as err:
            delivered.cancel()

        self.assertEqual(err.exception.ids, [delivered.pk])

    def test_stale_instance(self):
        """The stored status is checked, not the in-memory copy."""
        request = self.create_request()
        stale = LoanRequest.objects.get(pk=request.pk)

        request.cancel()

        with self.assertRaises(InvalidStateTransition):
            stale.reject('too late')

        stale.refresh_from_db()
        self.assertEqual(stale.status, LoanRequestStatus.CANCELLED.value)

    def test_stale_fields(self):
        """A rejection only writes its own columns."""
        request = self.create_request()
        stale = LoanRequest.objects.get(pk=request.pk)

        LoanRequest.objects.filter(pk=request.pk).update(
            department='Legal', requester_email='ana@example.com'
        )

        stale.reject('Restricted series', user=self.archivist)

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.REJECTED.value)
        self.assertEqual(request.archive_notes, 'Restricted series')
        self.assertEqual(request.department, 'Legal')
        self.assertEqual(request.requester_email, 'ana@example.com')
        self.assertEqual(request.updated_by, self.archivist)


class DraftTest(LoanTestMixin, TestCase):
    """Tests for draft staging."""

    def test_save_and_load(self):
        """Saving twice keeps a single draft with the latest payload."""
        request = self.create_request()

        self.assertIsNone(request.load_draft())

        request.save_draft([self.item_a, self.item_b], signature='first', notes='x')
        snapshot = request.save_draft(
            [self.item_c.pk, self.item_a.pk, self.item_c.pk], signature='  ', notes='y'
        )

        self.assertEqual(DraftAttention.objects.filter(request=request).count(), 1)
        self.assertEqual(snapshot.selection, (self.item_c.pk, self.item_a.pk))
        self.assertIsNone(snapshot.signature)
        self.assertEqual(snapshot.notes, 'y')
        self.assertIsNotNone(snapshot.updated_at)

        self.assertEqual(request.load_draft(), snapshot)
        self.assertIn(LoanRequestEvents.DRAFT_SAVED.value, self.events)

        # Drafts never touch availability
        for item in [self.item_a, self.item_b, self.item_c]:
            self.assertAvailability(item, AVAILABLE)

    def test_clear(self):
        """Clearing reports whether a draft existed."""
        request = self.create_request()

        self.assertFalse(request.clear_draft())

        request.save_draft([self.item_a])
        self.assertTrue(request.clear_draft())
        self.assertIsNone(request.load_draft())
        self.assertIn(LoanRequestEvents.DRAFT_CLEARED.value, self.events)

    def test_draft_not_pending(self):
        """Drafts are only kept for pending requests."""
        request = self.create_request()
        request.reject('out of scope')

        with self.assertRaises(RequestNotPending):
            request.save_draft([self.item_a])

        self.assertFalse(DraftAttention.objects.exists())

    def test_finalize_clears_draft(self):
        """A successful fulfillment discards the draft."""
        request = self.create_request()
        request.save_draft([self.item_a], signature='sig')

        request.finalize_fulfillment([self.item_a], signature='sig')

        self.assertFalse(DraftAttention.objects.filter(request=request).exists())

    def test_failed_finalize_keeps_draft(self):
        """A failed fulfillment keeps the draft."""
        request = self.create_request()
        request.save_draft([self.item_a])

        with self.assertRaises(SignatureRequired):
            request.finalize_fulfillment([self.item_a])

        self.assertIsNotNone(request.load_draft())


class FulfillmentTest(LoanTestMixin, TestCase):
    """Tests for handing over the items of a request."""

    def test_signature_required(self):
        """The loan of an original is not delivered without a signature."""
        request = self.create_request()

        for signature in [None, '', '   ']:
            with self.assertRaises(SignatureRequired):
                request.finalize_fulfillment(
                    [self.item_a, self.item_b], signature=signature
                )

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.PENDING.value)
        self.assertAvailability(self.item_a, AVAILABLE)
        self.assertAvailability(self.item_b, AVAILABLE)
        self.assertFalse(LoanItem.objects.exists())

    def test_deliver(self):
        """Delivering an original puts every item on loan."""
        request = self.create_request()

        loan_items = list(
            request.finalize_fulfillment(
                [self.item_b, self.item_a, self.item_b],
                signature='signature-data',
                user=self.archivist,
            )
        )

        self.assertEqual([li.item for li in loan_items], [self.item_b, self.item_a])
        self.assertEqual([li.sequence for li in loan_items], [1, 2])
        self.assertEqual(loan_items[1].shelf_location, 'R1-E2')

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.DELIVERED.value)
        self.assertEqual(request.signature, 'signature-data')
        self.assertEqual(request.delivered_by, self.archivist)
        self.assertIsNotNone(request.delivered_at)
        self.assertIsNone(request.returned_at)
        self.assertEqual(request.delivery_notes, 'Document delivery completed')
        self.assertEqual(request.item_count, 2)
        self.assertEqual(request.returned_count, 0)

        self.assertAvailability(self.item_a, ON_LOAN)
        self.assertAvailability(self.item_b, ON_LOAN)
        self.assertAvailability(self.item_c, AVAILABLE)

        self.assertIn(LoanRequestEvents.DELIVERED.value, self.events)

        # Cannot be delivered twice
        with self.assertRaises(InvalidStateTransition):
            request.finalize_fulfillment([self.item_c], signature='signature-data')

        self.assertAvailability(self.item_c, AVAILABLE)

    def test_copy(self):
        """Copies are delivered without signature and put items in service."""
        request = self.create_request(modality=ServiceModality.CERTIFIED_COPY)

        with self.assertRaises(UnexpectedSignature):
            request.finalize_fulfillment([self.item_a], signature='sig')

        request.finalize_fulfillment([self.item_a], notes='Two copies')

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.DELIVERED.value)
        self.assertIsNone(request.signature)
        self.assertEqual(request.delivery_notes, 'Two copies')
        self.assertAvailability(self.item_a, IN_SERVICE)

    def test_modality_override(self):
        """The archivist may change the modality when serving the request."""
        request = self.create_request(
            expected_return_date=current_date() + timedelta(days=10)
        )

        request.finalize_fulfillment(
            [self.item_a], modality=ServiceModality.DIGITIZATION
        )

        request.refresh_from_db()
        self.assertEqual(request.modality, ServiceModality.DIGITIZATION)
        self.assertIsNone(request.expected_return_date)
        self.assertAvailability(self.item_a, IN_SERVICE)

        with self.assertRaises(ValidationError):
            self.create_request().finalize_fulfillment([self.item_b], modality='FAX')

    def test_invalid_selection(self):
        """Empty and unknown selections are refused before any change."""
        request = self.create_request()

        with self.assertRaises(EmptySelection):
            request.finalize_fulfillment([], signature='sig')

        with self.assertRaises(ItemNotFound) as err:
            request.finalize_fulfillment([self.item_a.pk, 9999], signature='sig')

        self.assertEqual(err.exception.ids, [9999])

        self.assertAvailability(self.item_a, AVAILABLE)
        self.assertEqual(request.status, LoanRequestStatus.PENDING.value)

    def test_not_available(self):
        """An item out under another request cannot be delivered again."""
        first = self.create_request()
        first.finalize_fulfillment([self.item_a], signature='sig')

        second = self.create_request()

        with self.assertRaises(ItemNotAvailable) as err:
            second.finalize_fulfillment([self.item_c, self.item_a], signature='sig')

        self.assertEqual(err.exception.ids, [self.item_a.pk])
        self.assertEqual(err.exception.code, 'ItemNotAvailable')

        # Nothing persisted
        second.refresh_from_db()
        self.assertEqual(second.status, LoanRequestStatus.PENDING.value)
        self.assertEqual(second.items.count(), 0)
        self.assertAvailability(self.item_c, AVAILABLE)

    def test_outstanding_loan_item(self):
        """An unreturned loan item blocks delivery whatever the stored availability."""
        first = self.create_request()
        first.finalize_fulfillment([self.item_a], signature='sig')

        InventoryItem.objects.set_availability([self.item_a.pk], AVAILABLE)

        second = self.create_request()

        with self.assertRaises(ItemNotAvailable):
            second.finalize_fulfillment([self.item_a], signature='sig')

        self.assertEqual(LoanItem.objects.filter(item=self.item_a).count(), 1)

    def test_item_in_service(self):
        """Items which are not AVAILABLE cannot be delivered."""
        InventoryItem.objects.set_availability(
            [self.item_b.pk], ItemAvailability.NOT_LOCATED
        )

        request = self.create_request()

        with self.assertRaises(ItemNotAvailable) as err:
            request.finalize_fulfillment([self.item_a, self.item_b], signature='sig')

        self.assertEqual(err.exception.ids, [self.item_b.pk])
        self.assertAvailability(self.item_a, AVAILABLE)

    def test_stale_instance(self):
        """Fulfillment checks the stored request, not the in-memory copy."""
        request = self.create_request()
        stale = LoanRequest.objects.get(pk=request.pk)

        request.finalize_fulfillment(
            [self.item_a], signature='sig', notes='Handed over', user=self.archivist
        )

        with self.assertRaises(InvalidStateTransition) as err:
            stale.finalize_fulfillment([self.item_b], signature='other')

        self.assertEqual(err.exception.ids, [request.pk])
        self.assertAvailability(self.item_b, AVAILABLE)

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.DELIVERED.value)
        self.assertEqual(request.signature, 'sig')
        self.assertEqual(request.delivery_notes, 'Handed over')
        self.assertEqual(request.delivered_by, self.archivist)
        self.assertEqual(list(request.items.values_list('item', flat=True)), [self.item_a.pk])

    def test_stale_modality(self):
        """The signature rule follows the stored modality."""
        request = self.create_request(department='Legal')
        stale = LoanRequest.objects.get(pk=request.pk)

        LoanRequest.objects.filter(pk=request.pk).update(
            modality=ServiceModality.SIMPLE_COPY, department='History'
        )

        with self.assertRaises(UnexpectedSignature):
            stale.finalize_fulfillment([self.item_a], signature='sig')

        stale.finalize_fulfillment([self.item_a])

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.DELIVERED.value)
        self.assertEqual(request.modality, ServiceModality.SIMPLE_COPY)
        self.assertIsNone(request.signature)
        self.assertEqual(request.department, 'History')
        self.assertAvailability(self.item_a, IN_SERVICE)

    def test_claim_refused(self):
        """An item taken while the delivery runs aborts the whole delivery."""
        request = self.create_request()
        request.save_draft([self.item_a, self.item_b])

        claim = InventoryItemQuerySet.claim

        def claim_first(queryset, item_ids, value):
            # Another transaction takes every item after the first one
            return claim(queryset, item_ids[:1], value) + list(item_ids[1:])

        with mock.patch.object(
            InventoryItemQuerySet, 'claim', autospec=True, side_effect=claim_first
        ) as patched:
            with self.assertRaises(ItemNotAvailable) as err:
                request.finalize_fulfillment(
                    [self.item_a, self.item_b], signature='sig'
                )

        patched.assert_called_once()
        self.assertEqual(err.exception.ids, [self.item_b.pk])

        # The first claim is rolled back with the rest of the delivery
        self.assertAvailability(self.item_a, AVAILABLE)
        self.assertAvailability(self.item_b, AVAILABLE)
        self.assertFalse(LoanItem.objects.exists())

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.PENDING.value)
        self.assertIsNone(request.signature)
        self.assertIsNotNone(request.load_draft())
        self.assertNotIn(LoanRequestEvents.DELIVERED.value, self.events)

    def test_loan_items_are_immutable(self):
        """Loan items cannot be edited or deleted."""
        request = self.create_request()
        loan_item = request.finalize_fulfillment([self.item_a], signature='sig')[0]

        loan_item.shelf_location = 'Elsewhere'

        with self.assertRaises(ValidationError):
            loan_item.save()

        with self.assertRaises(ValidationError):
            loan_item.delete()


class ReturnTest(LoanTestMixin, TestCase):
    """Tests for reconciling returns."""

    def setUp(self):
        """Deliver two items under a new request."""
        super().setUp()

        self.request = self.create_request(
            expected_return_date=current_date() + timedelta(days=7)
        )

        self.request.finalize_fulfillment(
            [self.item_a, self.item_b], signature='sig', user=self.archivist
        )

        self.loan_a = self.request.items.get(item=self.item_a)
        self.loan_b = self.request.items.get(item=self.item_b)

    def test_partial_then_full(self):
        """Partial returns lead to a full return once every item is back."""
        records = self.request.reconcile_return(
            [self.loan_a],
            signature='sig',
            conditions={str(self.loan_a.pk): 'Torn cover'},
            user=self.archivist,
        )

        self.assertEqual(len(records), 1)
        self.assertEqual(records[0].condition, 'Torn cover')
        self.assertEqual(records[0].item, self.item_a)
        self.assertEqual(records[0].received_by, self.archivist)

        self.request.refresh_from_db()
        self.assertEqual(
            self.request.status, LoanRequestStatus.PARTIALLY_RETURNED.value
        )
        self.assertIsNone(self.request.returned_at)
        self.assertAvailability(self.item_a, AVAILABLE)
        self.assertAvailability(self.item_b, ON_LOAN)
        self.assertIn(LoanRequestEvents.PARTIALLY_RETURNED.value, self.events)

        records = self.request.reconcile_return([self.loan_b.pk], signature='sig')

        self.assertEqual(records[0].condition, 'Good')

        self.request.refresh_from_db()
        self.assertEqual(self.request.status, LoanRequestStatus.FULLY_RETURNED.value)
        self.assertIsNotNone(self.request.returned_at)
        self.assertEqual(self.request.returned_count, 2)
        self.assertAvailability(self.item_b, AVAILABLE)
        self.assertIn(LoanRequestEvents.FULLY_RETURNED.value, self.events)

    def test_return_all(self):
        """Returning every item at once completes the request."""
        self.request.reconcile_return(
            [self.loan_a, self.loan_b], signature='sig', notes='On time'
        )

        self.request.refresh_from_db()
        self.assertEqual(self.request.status, LoanRequestStatus.FULLY_RETURNED.value)
        self.assertEqual(ReturnRecord.objects.filter(notes='On time').count(), 2)
        self.assertNotIn(LoanRequestEvents.PARTIALLY_RETURNED.value, self.events)

    def test_partial_returns_in_steps(self):
        """A second partial return keeps the request partially returned."""
        third = InventoryItem.objects.create(code='D-001')

        other = self.create_request()
        other.finalize_fulfillment([self.item_c, third], signature='sig')

        li_c, li_third = list(other.items.all())

        other.reconcile_return([li_c], signature='sig')
        other.refresh_from_db()
        self.assertEqual(other.status, LoanRequestStatus.PARTIALLY_RETURNED.value)

        # Still partially returned: one item remains out
        self.request.reconcile_return([self.loan_a], signature='sig')
        self.request.refresh_from_db()
        self.assertEqual(
            self.request.status, LoanRequestStatus.PARTIALLY_RETURNED.value
        )

        self.assertEqual(other.outstanding_items().get(), li_third)
        self.assertEqual(self.request.outstanding_items().get(), self.loan_b)

    def test_already_returned(self):
        """A loan item is returned at most once."""
        self.request.reconcile_return([self.loan_a], signature='sig')

        with self.assertRaises(AlreadyReturned) as err:
            self.request.reconcile_return([self.loan_b, self.loan_a], signature='sig')

        self.assertEqual(err.exception.ids, [self.loan_a.pk])

        # Nothing persisted for loan_b
        self.assertFalse(ReturnRecord.objects.filter(loan_item=self.loan_b).exists())
        self.assertAvailability(self.item_b, ON_LOAN)

        self.request.refresh_from_db()
        self.assertEqual(
            self.request.status, LoanRequestStatus.PARTIALLY_RETURNED.value
        )

    def test_invalid_input(self):
        """Invalid returns are refused before any change."""
        with self.assertRaises(EmptySelection):
            self.request.reconcile_return([], signature='sig')

        with self.assertRaises(SignatureRequired):
            self.request.reconcile_return([self.loan_a])

        other = self.create_request()
        foreign = other.finalize_fulfillment([self.item_c], signature='sig')[0]

        with self.assertRaises(LoanItemNotFound) as err:
            self.request.reconcile_return([self.loan_a, foreign], signature='sig')

        self.assertEqual(err.exception.ids, [foreign.pk])
        self.assertAvailability(self.item_a, ON_LOAN)
        self.assertFalse(ReturnRecord.objects.exists())

    def test_return_closed_request(self):
        """Returns are only accepted while items are out.

        Both a pending request and a completed one raise a state error,
        checked before item ownership and previous returns.
        """
        pending = self.create_request()

        with self.assertRaises(InvalidStateTransition) as err:
            pending.reconcile_return([self.loan_a], signature='sig')

        self.assertEqual(err.exception.ids, [pending.pk])
        self.assertAvailability(self.item_a, ON_LOAN)

        self.request.reconcile_return([self.loan_a, self.loan_b], signature='sig')

        with self.assertRaises(InvalidStateTransition) as err:
            self.request.reconcile_return([self.loan_a], signature='sig')

        self.assertEqual(err.exception.code, 'InvalidStateTransition')
        self.assertEqual(err.exception.ids, [self.request.pk])
        self.assertEqual(ReturnRecord.objects.count(), 2)

    def test_stale_instance(self):
        """Returns through an out-of-date instance keep the delivery data."""
        expected = current_date() + timedelta(days=10)

        request = self.create_request(expected_return_date=expected)
        stale = LoanRequest.objects.get(pk=request.pk)

        request.finalize_fulfillment(
            [self.item_c], signature='SIG', notes='Handed over', user=self.archivist
        )
        loan_item = request.items.get()

        stale.reconcile_return([loan_item], signature='RSIG', user=self.archivist)

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.FULLY_RETURNED.value)
        self.assertEqual(request.modality, ServiceModality.LOAN_ORIGINAL)
        self.assertEqual(request.signature, 'SIG')
        self.assertEqual(request.delivery_notes, 'Handed over')
        self.assertIsNotNone(request.delivered_at)
        self.assertEqual(request.delivered_by, self.archivist)
        self.assertEqual(request.expected_return_date, expected)
        self.assertIsNotNone(request.returned_at)
        self.assertEqual(request.updated_by, self.archivist)
        self.assertAvailability(self.item_c, AVAILABLE)

        # A partial return through a stale copy keeps the delivery data too
        stale_b = LoanRequest.objects.get(pk=self.request.pk)
        LoanRequest.objects.filter(pk=self.request.pk).update(department='Legal')

        stale_b.reconcile_return([self.loan_a], signature='sig')
        stale_b.reconcile_return([self.loan_b], signature='sig')

        self.request.refresh_from_db()
        self.assertEqual(self.request.status, LoanRequestStatus.FULLY_RETURNED.value)
        self.assertEqual(self.request.signature, 'sig')
        self.assertEqual(self.request.department, 'Legal')

    def test_stale_modality(self):
        """A return needs a signature if the request became a loan of an original."""
        request = self.create_request(modality=ServiceModality.SIMPLE_COPY)
        stale = LoanRequest.objects.get(pk=request.pk)

        request.finalize_fulfillment(
            [self.item_c], signature='SIG', modality=ServiceModality.LOAN_ORIGINAL
        )
        loan_item = request.items.get()

        with self.assertRaises(SignatureRequired):
            stale.reconcile_return([loan_item])

        self.assertFalse(ReturnRecord.objects.filter(loan_item=loan_item).exists())
        self.assertAvailability(self.item_c, ON_LOAN)

        stale.reconcile_return([loan_item], signature='RSIG')

        request.refresh_from_db()
        self.assertEqual(request.status, LoanRequestStatus.FULLY_RETURNED.value)
        self.assertEqual(request.modality, ServiceModality.LOAN_ORIGINAL)
        self.assertEqual(request.signature, 'SIG')

    def test_return_copy(self):
        """Returns of items in service do not need a signature."""
        request = self.create_request(modality=ServiceModality.SIMPLE_COPY)
        loan_item = request.finalize_fulfillment([self.item_c])[0]

        records = request.reconcile_return([loan_item])

        self.assertIsNone(records[0].signature)
        self.assertAvailability(self.item_c, AVAILABLE)

    def test_lend_again(self):
        """A returned item can be delivered under another request."""
        self.request.reconcile_return([self.loan_a], signature='sig')

        other = self.create_request()
        other.finalize_fulfillment([self.item_a], signature='sig')

        self.assertAvailability(self.item_a, ON_LOAN)
        self.assertEqual(LoanItem.objects.outstanding().filter(item=self.item_a).count(), 1)

        other.reconcile_return(list(other.items.all()), signature='sig')
        self.assertAvailability(self.item_a, AVAILABLE)

    def test_overdue(self):
        """Outstanding requests past their expected return date are overdue."""
        self.assertFalse(self.request.is_overdue)

        LoanRequest.objects.filter(pk=self.request.pk).update(
            expected_return_date=current_date() - timedelta(days=2)
        )
        self.request.refresh_from_db()

        self.assertTrue(self.request.is_overdue)
        self.assertEqual(list(LoanRequest.objects.overdue()), [self.request])

        self.request.reconcile_return([self.loan_a, self.loan_b], signature='sig')
        self.request.refresh_from_db()

        self.assertFalse(self.request.is_overdue)
        self.assertFalse(LoanRequest.objects.overdue().exists())


class AvailabilityMirrorTest(LoanTestMixin, TestCase):
    """Availability always mirrors the item and return ledgers."""

    def assertMirrors(self):
        """Each item is AVAILABLE exactly when it has no unreturned loan item."""
        out = set(LoanItem.objects.outstanding().values_list('item', flat=True))

        for item in InventoryItem.objects.all():
            self.assertEqual(item.is_available, item.pk not in out, item.code)

    def test_lifecycle(self):
        """Run a mixed sequence of operations."""
        r1 = self.create_request()
        r2 = self.create_request(modality=ServiceModality.ON_SITE_CONSULT)
        r3 = self.create_request()

        self.assertMirrors()

        r1.finalize_fulfillment([self.item_a, self.item_b], signature='sig')
        self.assertMirrors()

        with self.assertRaises(ItemNotAvailable):
            r2.finalize_fulfillment([self.item_b, self.item_c])

        self.assertMirrors()

        r2.finalize_fulfillment([self.item_c])
        self.assertMirrors()

        r1.reconcile_return([r1.items.get(item=self.item_b)], signature='sig')
        self.assertMirrors()

        r3.finalize_fulfillment([self.item_b], signature='sig')
        self.assertMirrors()

        r1.reconcile_return(list(r1.outstanding_items()), signature='sig')
        r2.reconcile_return(list(r2.items.all()))
        self.assertMirrors()

        self.assertEqual(
            list(LoanRequest.list_by_status(LoanRequestStatus.FULLY_RETURNED)),
            [r2, r1],
        )

        detail = LoanRequest.get_request_detail(r1.pk)
        self.assertEqual(len(detail.items.all()), 2)
        self.assertEqual(len(detail.returns.all()), 2)
