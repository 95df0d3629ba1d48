"""Exceptions raised by :mod:`polydeform`."""
from __future__ import annotations

from typing import Sequence


class PolyDeformError(Exception):
    """Base class for all package errors."""


class InvalidTopologyError(PolyDeformError, ValueError):
    """Mesh incidence arrays violate their invariants."""


class UnsupportedVariantError(PolyDeformError, NotImplementedError):
    """A declared problem variant has no implementation."""


class PreconditionError(PolyDeformError, ValueError):
    """An argument does not match the precomputed problem."""


class NumericError(PolyDeformError, FloatingPointError):
    """A non-finite value appeared in a residual or Jacobian update."""

    def __init__(self, quantity: str, indices: Sequence[int]) -> None:
        self.quantity = quantity
        self.indices = [int(i) for i in indices]
        shown = ", ".join(str(i) for i in self.indices[:8])
        if len(self.indices) > 8:
            shown += ", ..."
        super().__init__(f"non-finite values in {quantity} at [{shown}]")
