"""Argument checks run at the start of every cart and stock operation.

Each check returns ``None`` when the value is acceptable and an
``INVALID_ARGUMENT`` result otherwise, so callers can bail out early::

    invalid = require_positive_quantity(quantity)
    if invalid:
        return invalid
"""

from core.result import ErrorKind, Result


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def require_int(value, field):
    if not _is_int(value):
        return Result.failure(ErrorKind.INVALID_ARGUMENT, f"{field} must be an integer")
    return None


def require_positive_quantity(value, field="quantity"):
    invalid = require_int(value, field)
    if invalid:
        return invalid
    if value < 1:
        return Result.failure(ErrorKind.INVALID_ARGUMENT, f"{field} must be at least 1")
    return None


def require_id(value, field):
    invalid = require_int(value, field)
    if invalid:
        return invalid
    if value < 1:
        return Result.failure(ErrorKind.INVALID_ARGUMENT, f"{field} must be a positive id")
    return None
