"""Generic implementation of status for Archive models."""

import enum


class ColorEnum(enum.Enum):
    """Enum for color values."""

    primary = 'primary'
    secondary = 'secondary'
    success = 'success'
    danger = 'danger'
    warning = 'warning'
    info = 'info'
    dark = 'dark'


class StatusCode(enum.IntEnum):
    """Base class for representing a set of StatusCodes.

    Each member is declared as ``NAME = value, label, color``; the integer
    value is what gets stored in the database.
    """

    def __new__(cls, *args):
        """Define object out of args."""
        value = args[0]

        obj = int.__new__(cls, value)
        obj._value_ = value

        # Normal item definition
        obj.label = args[1] if len(args) > 1 else str(value)
        obj.color = args[2] if len(args) > 2 else ColorEnum.secondary

        return obj

    def __str__(self):
        """Return the label of the status code."""
        return str(self.label)

    @classmethod
    def items(cls):
        """All status code items as (value, label) pairs, usable as model choices."""
        return [(member.value, member.label) for member in cls]

    @classmethod
    def values(cls):
        """All integer values."""
        return [member.value for member in cls]

    @classmethod
    def labels(cls):
        """All status labels."""
        return [member.label for member in cls]

    @classmethod
    def names(cls):
        """Return a map of all 'names' of status codes in this class."""
        return {member.name: member.value for member in cls}

    @classmethod
    def text(cls, value):
        """Text for supplied status code, or the raw value if it is unknown."""
        try:
            return str(cls(value).label)
        except ValueError:
            return str(value)

    @classmethod
    def dict(cls) -> dict:
        """Return a dict representation containing all required information."""
        return {
            member.name: {
                'key': member.value,
                'name': member.name,
                'label': str(member.label),
                'color': member.color.value,
            }
            for member in cls
        }
