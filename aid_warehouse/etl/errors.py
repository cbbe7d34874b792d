"""Exceptions raised while conforming raw records into the star schema.

RecordError and its subclasses are record-level: the assemblers catch them and
turn them into rejection-log entries. IntegrityViolation is fatal and aborts
the build.
"""

from typing import Any


class WarehouseError(Exception):
    """Base class for all warehouse build errors."""


class RecordError(WarehouseError):
    """A single raw record cannot be conformed.

    Attributes:
        dimension: Name of the dimension whose resolution failed, if any.
        field: Raw field that caused the failure, if known.
    """

    def __init__(self, message: str, *, dimension: str | None = None, field: str | None = None):
        super().__init__(message)
        self.dimension = dimension
        self.field = field


class MissingFieldError(RecordError):
    pass


class InvalidValueError(RecordError):
    pass


class NormalizationError(RecordError):
    """No canonical natural key can be derived from the raw value."""


class DateParseError(RecordError):
    """Date or year is unparseable or outside the configured bounds."""


class DuplicateRecordError(RecordError):
    pass


class IntegrityViolation(WarehouseError):
    """Post-build invariant check failed.

    Each violation is a dict with ``table``, ``check``, ``key`` and ``count``.
    """

    def __init__(self, violations: list[dict[str, Any]]):
        self.violations = violations
        self.summary = None
        first = violations[0] if violations else {}
        super().__init__(
            f"{len(violations)} integrity violation(s); first: "
            f"{first.get('check')} on {first.get('table')} key={first.get('key')!r}"
        )
