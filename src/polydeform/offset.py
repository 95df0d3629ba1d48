"""Parallel offset meshes at a prescribed distance (discrete Gauss map).

The unknown vector is ``x = [V'_0, V'_1, ..., V'_{N-1}, s_0, ..., s_{M-1}]``:
three coordinates per offset vertex followed by one scale per edge. Linear
constraints keep every offset edge parallel to its original edge,
``V'_b - V'_a - s_i (V_b - V_a) = 0``, so the constraint Jacobian is
constant. The energy measures the offset distance of the chosen mesh
elements; only vertex offsets are implemented.
"""
from __future__ import annotations

import enum
from typing import Optional, Union

import numpy as np
import scipy.sparse as sp
import torch

from .errors import UnsupportedVariantError
from .mesh import PolyMesh
from .problem import LeastSquaresProblem
from .topology import validate_edges, validate_mesh
from .utils import TunableParameter, get_logger


class OffsetType(enum.Enum):
    VERTEX = "vertex"
    EDGE = "edge"
    FACE = "face"

    @classmethod
    def coerce(cls, value: Union["OffsetType", str]) -> "OffsetType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise ValueError(f"Unknown offset type {value!r}") from exc


IMPLEMENTED_OFFSETS = (OffsetType.VERTEX,)


class OffsetMeshProblem(LeastSquaresProblem):
    """Offset of a polygonal mesh with edges kept parallel to the original.

    For :attr:`OffsetType.VERTEX` the energy has one residual per vertex,
    ``|V_i - V'_i|^2 - d^2``, with three Jacobian entries each.

    The ``jacobian`` parameter selects how those entries are computed.
    ``"original"`` reproduces the published formulation, ``2 * V_i``, which
    depends only on the original positions and is not the derivative of the
    residual. ``"exact"`` uses ``2 * (V'_i - V_i)``.
    """

    def __init__(
        self,
        vertices: np.ndarray,
        degrees: np.ndarray,
        faces: np.ndarray,
        edges: np.ndarray,
        *,
        offset_type: Union[OffsetType, str] = OffsetType.VERTEX,
        distance: float = 1.0,
        jacobian: str = "original",
        device: Optional[str] = None,
        dtype: torch.dtype = torch.double,
    ) -> None:
        super().__init__(device=device, dtype=dtype)
        self.orig_vertices = np.asarray(vertices, dtype=np.float64)
        self.degrees = np.asarray(degrees, dtype=np.int64)
        self.faces = np.asarray(faces, dtype=np.int64)
        self.edges = np.asarray(edges, dtype=np.int64)
        self.offset_type = OffsetType.coerce(offset_type)

        self.offset_constraint_matrix: Optional[sp.csr_matrix] = None
        self.full_solution: Optional[np.ndarray] = None
        self.current_solution: Optional[np.ndarray] = None
        self._orig_tensor: Optional[torch.Tensor] = None

        self.register_parameter(
            "distance",
            TunableParameter(float(distance), dtype="float", description="Requested offset distance d."),
        )
        self.register_parameter(
            "jacobian",
            TunableParameter(
                jacobian,
                dtype="choice",
                options=["original", "exact"],
                description="Energy Jacobian formula.",
            ),
        )

    @classmethod
    def from_mesh(cls, mesh: PolyMesh, **kwargs) -> "OffsetMeshProblem":
        return cls(mesh.vertices, mesh.degrees, mesh.faces, mesh.edges, **kwargs)

    @property
    def num_vertices(self) -> int:
        return int(self.orig_vertices.shape[0])

    @property
    def num_edges(self) -> int:
        return int(self.edges.shape[0])

    # ------------------------------------------------------------------
    def prepare_data(self) -> None:
        if self.offset_type not in IMPLEMENTED_OFFSETS:
            raise UnsupportedVariantError(f"{self.offset_type.name} offsets are not supported")
        validate_mesh(self.orig_vertices, self.degrees, self.faces)
        self.edges = validate_edges(self.num_vertices, self.edges)

        n, m = self.num_vertices, self.num_edges
        self.x_size = 3 * n + m
        self._orig_tensor = self.as_tensor(self.orig_vertices)

        # v'_b - v'_a - s_i * (v_b - v_a) = 0, three rows per edge
        orig_edges = self.orig_vertices[self.edges[:, 1]] - self.orig_vertices[self.edges[:, 0]]
        rows = np.repeat(np.arange(3 * m), 3)
        cols = np.empty(9 * m, dtype=np.int64)
        vals = np.empty(9 * m, dtype=np.float64)
        axis = np.tile(np.arange(3), m)
        edge = np.repeat(np.arange(m), 3)
        cols[0::3] = 3 * self.edges[edge, 0] + axis
        cols[1::3] = 3 * self.edges[edge, 1] + axis
        cols[2::3] = 3 * n + edge
        vals[0::3] = -1.0
        vals[1::3] = 1.0
        vals[2::3] = -orig_edges.ravel()

        self.jc_rows, self.jc_cols, self.jc_vals = rows, cols, vals
        self.offset_constraint_matrix = sp.csr_matrix((vals, (rows, cols)), shape=(3 * m, self.x_size))
        self.c_vec = np.zeros(3 * m, dtype=np.float64)

        self.e_vec = np.zeros(n, dtype=np.float64)
        self.je_rows = np.repeat(np.arange(n), 3)
        self.je_cols = np.arange(3 * n)
        self.je_vals = np.zeros(3 * n, dtype=np.float64)
        get_logger(__name__).debug("offset problem: %d unknowns, %d energy rows, %d constraint rows", self.x_size, n, 3 * m)

    # ------------------------------------------------------------------
    def initial_solution(self) -> np.ndarray:
        self.require_initialized()
        x0 = np.zeros(self.x_size, dtype=np.float64)
        x0[: 3 * self.num_vertices] = self.orig_vertices.ravel()
        return x0

    def pre_iteration(self, x: np.ndarray) -> None:
        self.require_initialized()
        self.current_solution = self.check_size(x).copy()

    def _current_vertices(self, x: np.ndarray) -> torch.Tensor:
        x = self.check_size(x)
        return self.as_tensor(x[: 3 * self.num_vertices]).reshape(self.num_vertices, 3)

    def update_energy(self, x: np.ndarray) -> None:
        self.require_initialized()
        current = self._current_vertices(x)
        distance = float(self.get_parameter_value("distance"))
        diff = self._orig_tensor - current
        energy = torch.sum(diff * diff, dim=1) - distance * distance
        self.e_vec[:] = self.check_finite("energy residual", energy)

    def update_jacobian(self, x: np.ndarray) -> None:
        self.require_initialized()
        if self.get_parameter_value("jacobian") == "exact":
            values = 2.0 * (self._current_vertices(x) - self._orig_tensor)
        else:
            self.check_size(x)
            values = 2.0 * self._orig_tensor
        self.je_vals[:] = self.check_finite("energy jacobian", values.reshape(-1))

    def update_constraints(self, x: np.ndarray) -> None:
        self.require_initialized()
        x = self.check_size(x)
        self.c_vec[:] = self.check_finite("constraint residual", self.offset_constraint_matrix @ x)

    def post_optimization(self, x: np.ndarray) -> bool:
        self.require_initialized()
        x = self.check_size(x)
        self.current_solution = x.copy()
        self.full_solution = x[: 3 * self.num_vertices].reshape(self.num_vertices, 3).copy()
        return True

    # ------------------------------------------------------------------
    def offset_scales(self, x: np.ndarray) -> np.ndarray:
        """Return the per-edge scale block of ``x``."""
        x = self.check_size(x)
        return x[3 * self.num_vertices :].copy()
