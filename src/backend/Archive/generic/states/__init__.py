"""States are used to track the logical state of an object.

The logic value of a state is stored in the database as an integer. The logic value is used for business logic and should not be easily changed therefore.
There is a rendered state for each state value. The rendered state is used for display purposes and can be changed easily.

States can be extended with custom options for each instance. This happens by a lookup-table of allowed transitions; see the StateTransitionMixin class.
"""

from .states import ColorEnum, StatusCode
from .transition import StateTransitionMixin

__all__ = ['ColorEnum', 'StateTransitionMixin', 'StatusCode']
