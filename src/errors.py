"""
Typed exceptions raised by the path scheduler and its service layer.
"""

from typing import Optional


class SchedulerError(Exception):
    """Base class for scheduler failures."""


class InvalidThreshold(SchedulerError, ValueError):
    """Raised when a mastery threshold falls outside ``[0, 1]``.

    Attributes:
        threshold: The rejected value.
    """

    def __init__(self, threshold: float) -> None:
        self.threshold = threshold
        super().__init__(
            f"mastery threshold must be within [0, 1], got {threshold!r}"
        )


class DependencyUnavailable(SchedulerError):
    """Raised when a required snapshot component could not be fetched.

    Attributes:
        operation: Name of the collaborator read that failed
                   (e.g. ``'list_prerequisite_edges'``).
        original: The underlying exception (may be ``None``).
    """

    def __init__(self, operation: str, original: Optional[Exception] = None) -> None:
        self.operation = operation
        self.original = original
        super().__init__(f"operation={operation}: {original}")


def validate_threshold(threshold: float) -> float:
    """Return *threshold* unchanged, or raise :class:`InvalidThreshold`."""
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidThreshold(threshold) from None
    # NaN fails both comparisons
    if not 0.0 <= value <= 1.0:
        raise InvalidThreshold(threshold)
    return value
