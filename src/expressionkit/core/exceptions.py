"""
Error kinds raised by the coupled-assay data structures.

All errors are usage errors: they surface immediately and are never retried
or repaired. Missing column/slot names raise the builtin ``KeyError`` and
wrong argument types raise ``TypeError``.
"""

from __future__ import annotations

__all__ = [
    'ExpressionKitError',
    'DimensionMismatchError',
    'DimensionError',
    'InvariantViolation',
]


class ExpressionKitError(Exception):
    """Base class for all expressionkit errors."""


class DimensionMismatchError(ExpressionKitError, ValueError):
    """
    Shapes disagree at construction, mutation or subsetting time.

    Raised when metadata row counts don't match assay dimensions, when
    assay slots disagree in shape, or when identifier columns don't line up
    with the assay's row/column identifiers.
    """


# Table- and store-level name for the same condition
DimensionError = DimensionMismatchError


class InvariantViolation(ExpressionKitError, AssertionError):
    """A consistency check on an existing container failed."""
