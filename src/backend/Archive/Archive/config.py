"""Helper functions for loading Archive configuration options."""

import logging
import os
from pathlib import Path

logger = logging.getLogger('archive')

TRUE_VALUES = ('1', 'y', 'yes', 't', 'true', 'on')


def get_base_dir() -> Path:
    """Return the base (top-level) Archive project directory."""
    return Path(__file__).parent.parent.resolve()


def is_true(value) -> bool:
    """Return True if the provided value looks like a 'true' flag."""
    return str(value).strip().lower() in TRUE_VALUES


def get_setting(env_var=None, default_value=None, typecast=None):
    """Read a configuration setting from the environment.

    Arguments:
        env_var: Name of the environment variable to check
        default_value: Value to return if the variable is not set
        typecast: Optional callable used to coerce the value (e.g. int, bool)
    """

    def try_typecasting(value, source: str):
        """Attempt to typecast the value, falling back to the default."""
        if typecast is None or value is None:
            return value

        if typecast is bool:
            return is_true(value)

        try:
            return typecast(value)
        except (TypeError, ValueError):
            logger.error(
                "Failed to typecast '%s' with value '%s' from %s, using default",
                env_var,
                value,
                source,
            )
            return default_value

    if env_var:
        val = os.getenv(env_var, None)

        if val is not None:
            return try_typecasting(val, 'env')

    return try_typecasting(default_value, 'default')


def get_boolean_setting(env_var=None, default_value=False) -> bool:
    """Helper function for retrieving a boolean configuration setting."""
    return is_true(get_setting(env_var, default_value))


def get_database_config() -> dict:
    """Construct the 'default' database configuration from the environment.

    SQLite is used unless ARCHIVE_DB_ENGINE names another backend.
    """
    engine = get_setting('ARCHIVE_DB_ENGINE', 'sqlite3')

    if '.' not in engine:
        engine = f'django.db.backends.{engine}'

    if engine.endswith('sqlite3'):
        name = get_setting(
            'ARCHIVE_DB_NAME', str(get_base_dir().joinpath('archive.sqlite3'))
        )
        return {'ENGINE': engine, 'NAME': name}

    return {
        'ENGINE': engine,
        'NAME': get_setting('ARCHIVE_DB_NAME', 'archive'),
        'USER': get_setting('ARCHIVE_DB_USER', ''),
        'PASSWORD': get_setting('ARCHIVE_DB_PASSWORD', ''),
        'HOST': get_setting('ARCHIVE_DB_HOST', ''),
        'PORT': get_setting('ARCHIVE_DB_PORT', ''),
        'ATOMIC_REQUESTS': False,
    }
