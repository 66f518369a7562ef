"""Classes and functions for state transitions."""

import structlog

from Archive.exceptions import InvalidStateTransition

logger = structlog.get_logger('archive')


class StateTransitionMixin:
    """Mixin that can be used to add state transitions handling to a model.

    The model declares a TRANSITIONS lookup-table mapping each state value to
    the list of state values it may move to. States with an empty list are
    terminal.

    Usage:
    ```python
    from generic.states import StateTransitionMixin

    class MyModel(StateTransitionMixin, models.Model):
        TRANSITIONS = {
            MyStatus.OPEN.value: [MyStatus.CLOSED.value],
            MyStatus.CLOSED.value: [],
        }

        def close(self):
            self.handle_transition(self.status, MyStatus.CLOSED.value, self, self._action_close)
    ```
    """

    TRANSITIONS = {}

    @classmethod
    def allowed_transitions(cls, current_state) -> list:
        """Return the list of states reachable from the provided state."""
        return list(cls.TRANSITIONS.get(int(current_state), []))

    @classmethod
    def is_transition_allowed(cls, current_state, target_state) -> bool:
        """Check the transition table for a single move."""
        return int(target_state) in cls.allowed_transitions(current_state)

    @classmethod
    def is_terminal_state(cls, state) -> bool:
        """A state is terminal if no transition leaves it."""
        return len(cls.allowed_transitions(state)) == 0

    def check_transition(self, current_state, target_state):
        """Raise InvalidStateTransition if the move is not in the table."""
        if not self.is_transition_allowed(current_state, target_state):
            logger.warning(
                'Invalid state transition',
                model=self.__class__.__name__,
                pk=getattr(self, 'pk', None),
                current_state=int(current_state),
                target_state=int(target_state),
            )
            raise InvalidStateTransition(
                f'Cannot move {self.__class__.__name__} from state {int(current_state)} to {int(target_state)}',
                ids=[getattr(self, 'pk', None)],
            )

    def handle_transition(
        self, current_state, target_state, instance, default_action, **kwargs
    ):
        """Handle a state transition for an object.

        Args:
            current_state: Current state of instance
            target_state: Target state of instance
            instance: Object instance
            default_action: Default action to be taken if the transition is allowed
            **kwargs: Forwarded to the action

        Raises:
            InvalidStateTransition: the move is not in the transition table.
                Nothing is executed in that case.
        """
        self.check_transition(current_state, target_state)

        logger.debug(
            'Handling state transition',
            model=instance.__class__.__name__,
            pk=getattr(instance, 'pk', None),
            current_state=int(current_state),
            target_state=int(target_state),
        )

        return default_action(current_state, target_state, instance, **kwargs)
