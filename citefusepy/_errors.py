# pylint: disable=C0114, C0115
from __future__ import annotations


class CiteFuseError(Exception):
    """Base class for errors raised by citefusepy."""


class ShapeMismatchError(CiteFuseError, ValueError):
    """Matrices do not share the same cell count or cell ordering."""


class EmptyInputError(CiteFuseError, ValueError):
    """Fewer modalities than an operation needs."""


class DegenerateInputError(CiteFuseError, ValueError):
    """Expression values that make cell-to-cell distances undefined."""


class InvalidParameterError(CiteFuseError, ValueError):
    pass


class NonConvergenceWarning(UserWarning):
    """Fusion hit ``max_iter`` before the requested tolerance was met."""
