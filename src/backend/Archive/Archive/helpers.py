"""Provides helper functions used throughout the Archive project."""

import datetime

from django.utils import timezone


def str2bool(text, test=True) -> bool:
    """Test if a string 'looks' like a boolean value.

    Args:
        text: Input text
        test (default = True): Set which boolean value to look for

    Returns:
        True if the text looks like the selected boolean value
    """
    if test:
        return str(text).lower() in ['1', 'y', 'yes', 't', 'true', 'ok', 'on']
    return str(text).lower() in ['0', 'n', 'no', 'none', 'f', 'false', 'off']


def current_time() -> datetime.datetime:
    """Return the current (timezone aware) date and time."""
    return timezone.now()


def current_date() -> datetime.date:
    """Return the current date, in the configured timezone."""
    return timezone.localdate()


def unique_ordered(values) -> list:
    """Remove duplicates from a sequence, keeping the first occurrence of each."""
    seen = set()
    result = []

    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)

    return result


def is_blank(value) -> bool:
    """Return True if the value is None or an empty / whitespace-only string."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()
