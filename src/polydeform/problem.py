"""Problem abstractions consumed by the nonlinear least-squares driver."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import numpy as np
import scipy.sparse as sp
import torch

from .errors import NumericError
from .utils import TunableParameter, ensure_numpy, resolve_device


class LeastSquaresProblem(ABC):
    """Abstract base class for constrained nonlinear least-squares problems.

    A driver minimizes ``|e(x)|^2`` subject to ``c(x) = 0`` by repeatedly
    calling, in order, :meth:`pre_iteration`, :meth:`update_energy`,
    :meth:`update_jacobian`, :meth:`update_constraints` and
    :meth:`post_iteration`, then :meth:`post_optimization` once.

    Subclasses fill the residual vectors ``e_vec`` / ``c_vec`` and the
    Jacobians in triplet form (``je_rows``, ``je_cols``, ``je_vals`` and
    ``jc_rows``, ``jc_cols``, ``jc_vals``). The sparsity patterns are fixed
    by :meth:`initialize`; only values change afterwards.
    """

    def __init__(self, *, device: Optional[str] = None, dtype: torch.dtype = torch.double) -> None:
        self.device = resolve_device(device)
        self.dtype = dtype
        self.x_size = 0
        self.je_rows = np.zeros(0, dtype=np.int64)
        self.je_cols = np.zeros(0, dtype=np.int64)
        self.je_vals = np.zeros(0, dtype=np.float64)
        self.e_vec = np.zeros(0, dtype=np.float64)
        self.jc_rows = np.zeros(0, dtype=np.int64)
        self.jc_cols = np.zeros(0, dtype=np.int64)
        self.jc_vals = np.zeros(0, dtype=np.float64)
        self.c_vec = np.zeros(0, dtype=np.float64)
        self._parameters: Dict[str, TunableParameter] = {}
        self._is_initialized = False

    def initialize(self) -> None:
        self.prepare_data()
        self._is_initialized = True

    @abstractmethod
    def prepare_data(self) -> None:
        """Fix sizes, sparsity patterns and constant Jacobian blocks."""

    # Callback contract -----------------------------------------------------
    @abstractmethod
    def initial_solution(self) -> np.ndarray:
        """Return the starting iterate of length ``x_size``."""

    def pre_iteration(self, x: np.ndarray) -> None:
        return None

    @abstractmethod
    def update_energy(self, x: np.ndarray) -> None:
        """Refresh ``e_vec`` for iterate ``x``."""

    @abstractmethod
    def update_jacobian(self, x: np.ndarray) -> None:
        """Refresh ``je_vals`` (and ``jc_vals`` if not constant) for ``x``."""

    @abstractmethod
    def update_constraints(self, x: np.ndarray) -> None:
        """Refresh ``c_vec`` for iterate ``x``."""

    def post_iteration(self, x: np.ndarray) -> bool:
        """Return True to stop the driver after this iteration."""
        return False

    def post_optimization(self, x: np.ndarray) -> bool:
        """Store the final iterate; return True on success."""
        return True

    # Helpers ---------------------------------------------------------------
    def require_initialized(self) -> None:
        if not self._is_initialized:
            raise RuntimeError("Problem has not been initialized; call initialize() first")

    def is_initialized(self) -> bool:
        return self._is_initialized

    def energy_jacobian(self) -> sp.csr_matrix:
        return sp.csr_matrix(
            (self.je_vals, (self.je_rows, self.je_cols)), shape=(self.e_vec.size, self.x_size)
        )

    def constraint_jacobian(self) -> sp.csr_matrix:
        return sp.csr_matrix(
            (self.jc_vals, (self.jc_rows, self.jc_cols)), shape=(self.c_vec.size, self.x_size)
        )

    def as_tensor(self, x: Any) -> torch.Tensor:
        return torch.as_tensor(np.asarray(x), device=self.device, dtype=self.dtype)

    @staticmethod
    def check_finite(name: str, values: Any) -> np.ndarray:
        """Return ``values`` as NumPy; raise :class:`NumericError` if any is not finite."""
        array = ensure_numpy(values, dtype=np.float64)
        bad = np.flatnonzero(~np.isfinite(array))
        if bad.size:
            raise NumericError(name, bad)
        return array

    def check_size(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64).ravel()
        if x.size != self.x_size:
            raise ValueError(f"iterate must have {self.x_size} entries, got {x.size}")
        return x

    # Parameter management -------------------------------------------------
    def register_parameter(self, name: str, parameter: TunableParameter) -> None:
        self._parameters[name] = parameter

    def parameters(self) -> Dict[str, TunableParameter]:
        return self._parameters

    def get_parameter(self, name: str) -> TunableParameter:
        return self._parameters[name]

    def set_parameter(self, name: str, value: Any) -> None:
        if name not in self._parameters:
            raise KeyError(name)
        self._parameters[name].update(value)

    def get_parameter_value(self, name: str) -> Any:
        return self._parameters[name].value
