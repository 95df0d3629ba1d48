"""Logging, device and runtime-parameter helpers for :mod:`polydeform`."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import numpy as np
import torch


PACKAGE_LOGGER = "polydeform"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the package logger, or the module logger ``name`` below it.

    Only the package logger carries a handler; module loggers propagate to it.
    """
    package = logging.getLogger(PACKAGE_LOGGER)
    if not package.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        package.addHandler(handler)
        package.propagate = False
        package.setLevel(logging.INFO)
    if name is None or name == PACKAGE_LOGGER:
        return package
    if not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)


def resolve_device(device: Optional[str] = None) -> torch.device:
    """Return the device used for per-iteration residual evaluation.

    Residuals and Jacobian values are handed to scipy every iteration, so the
    default is the CPU.
    """
    resolved = torch.device("cpu" if device is None else device)
    if resolved.type == "cuda" and not torch.cuda.is_available():
        raise RuntimeError("CUDA device requested but torch.cuda is not available")
    return resolved


_NUMERIC_TYPES = {"float": float, "int": int}


@dataclass
class TunableParameter:
    """Runtime knob of a problem or of the driver.

    ``dtype`` is ``"float"``, ``"int"`` or ``"choice"``. Numeric values must be
    finite and are clamped to ``[min_value, max_value]``; choice values must be
    one of ``options``. The initial value goes through the same checks.
    """

    value: Any
    dtype: str = "float"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: Optional[Sequence[Any]] = None
    description: str = ""

    def __post_init__(self) -> None:
        self.value = self._coerce(self.value)

    def _coerce(self, new_value: Any) -> Any:
        if self.dtype == "choice":
            if not self.options or new_value not in self.options:
                raise ValueError(f"{new_value!r} not in allowed options {self.options}")
            return new_value
        cast = _NUMERIC_TYPES.get(self.dtype)
        if cast is None:
            raise ValueError(f"Unsupported parameter type {self.dtype!r}")
        number = cast(new_value)
        if not math.isfinite(number):
            raise ValueError(f"{self.description or 'parameter'} must be finite, got {new_value!r}")
        if self.min_value is not None and number < self.min_value:
            number = cast(self.min_value)
        if self.max_value is not None and number > self.max_value:
            number = cast(self.max_value)
        return number

    def update(self, new_value: Any) -> None:
        self.value = self._coerce(new_value)


def ensure_numpy(array: Any, dtype: Any = None) -> np.ndarray:
    """Return a NumPy array from torch tensors or sequences."""
    if hasattr(array, "detach"):
        array = array.detach().cpu().numpy()
    return np.asarray(array, dtype=dtype)
