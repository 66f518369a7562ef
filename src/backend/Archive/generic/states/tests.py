"""Tests for the generic states module."""

from django.test import SimpleTestCase
from django.utils.translation import gettext_lazy as _

from Archive.exceptions import InvalidStateTransition

from .states import ColorEnum, StatusCode
from .transition import StateTransitionMixin


class SampleStatus(StatusCode):
    """A dummy status code for testing."""

    OPEN = 10, _('Open'), ColorEnum.primary
    DONE = 20, _('Done'), ColorEnum.success
    DROPPED = 30, _('Dropped')


class SampleObject(StateTransitionMixin):
    """A plain object driven by a transition table."""

    TRANSITIONS = {
        SampleStatus.OPEN.value: [SampleStatus.DONE.value, SampleStatus.DROPPED.value],
        SampleStatus.DONE.value: [],
        SampleStatus.DROPPED.value: [],
    }

    pk = 1

    def __init__(self):
        """Start in the OPEN state."""
        self.status = SampleStatus.OPEN.value

    def _action(self, current_state, target_state, instance, **kwargs):
        self.status = target_state
        return kwargs.get('result')


class StatusCodeTest(SimpleTestCase):
    """Tests for the StatusCode class."""

    def test_values(self):
        """Members behave like integers and carry label and color."""
        self.assertEqual(SampleStatus.OPEN, 10)
        self.assertEqual(SampleStatus.OPEN.value, 10)
        self.assertEqual(str(SampleStatus.DONE.label), 'Done')
        self.assertEqual(SampleStatus.DONE.color, ColorEnum.success)

        # Color falls back to 'secondary'
        self.assertEqual(SampleStatus.DROPPED.color, ColorEnum.secondary)

    def test_helpers(self):
        """Test the classmethod accessors."""
        self.assertEqual(SampleStatus.values(), [10, 20, 30])
        self.assertEqual([str(label) for label in SampleStatus.labels()], ['Open', 'Done', 'Dropped'])
        self.assertEqual(SampleStatus.names(), {'OPEN': 10, 'DONE': 20, 'DROPPED': 30})
        self.assertEqual(SampleStatus.items()[0][0], 10)

        self.assertEqual(SampleStatus.text(20), 'Done')
        self.assertEqual(SampleStatus.text(99), '99')

    def test_dict(self):
        """The dict representation is used by the status API."""
        data = SampleStatus.dict()

        self.assertEqual(
            data['OPEN'],
            {'key': 10, 'name': 'OPEN', 'label': 'Open', 'color': 'primary'},
        )


class TransitionTest(SimpleTestCase):
    """Tests for the StateTransitionMixin class."""

    def test_table(self):
        """Test the lookup-table queries."""
        self.assertTrue(SampleObject.is_transition_allowed(10, 20))
        self.assertFalse(SampleObject.is_transition_allowed(20, 10))
        self.assertFalse(SampleObject.is_transition_allowed(99, 10))

        self.assertTrue(SampleObject.is_terminal_state(SampleStatus.DONE))
        self.assertFalse(SampleObject.is_terminal_state(SampleStatus.OPEN))

    def test_allowed(self):
        """An allowed transition runs the action and returns its result."""
        obj = SampleObject()

        result = obj.handle_transition(
            obj.status, SampleStatus.DONE.value, obj, obj._action, result='ok'
        )

        self.assertEqual(result, 'ok')
        self.assertEqual(obj.status, SampleStatus.DONE.value)

    def test_refused(self):
        """A refused transition raises and performs no side effect."""
        obj = SampleObject()
        obj.status = SampleStatus.DONE.value

        with self.assertRaises(InvalidStateTransition) as err:
            obj.handle_transition(
                obj.status, SampleStatus.OPEN.value, obj, obj._action
            )

        self.assertEqual(err.exception.code, 'InvalidStateTransition')
        self.assertEqual(err.exception.ids, [1])
        self.assertEqual(obj.status, SampleStatus.DONE.value)
