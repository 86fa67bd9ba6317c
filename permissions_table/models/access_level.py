"""Ordinal access levels.

Each level includes all the permissions of the levels below it. The engine
only ever compares levels as integers, so inserting a new level means
renumbering the levels already recorded in the database.
"""

from enum import IntEnum

from ..exceptions import InvalidAccessLevelError


class AccessLevel(IntEnum):
    """Access levels users can have to resources."""

    NONE = 0
    LIST = 1
    READ = 2
    COMMENT = 3
    CREATE = 4
    EDIT = 5
    DELETE = 6
    GRANT = 7
    OWNER = 8


def to_access_level(value) -> AccessLevel:
    """Validate *value* against the scale and return it as an AccessLevel.

    Raises InvalidAccessLevelError for non-integers (booleans included) and
    for values outside NONE..OWNER.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAccessLevelError(value)
    if not AccessLevel.NONE <= value <= AccessLevel.OWNER:
        raise InvalidAccessLevelError(value)
    return AccessLevel(value)
