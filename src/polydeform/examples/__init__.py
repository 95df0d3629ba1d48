"""Example problems for :mod:`polydeform`."""

from .offset_cube import ScaledStartOffsetProblem
from .plate_bending import bend_plate

__all__ = ["ScaledStartOffsetProblem", "bend_plate"]
