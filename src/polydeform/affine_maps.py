"""Polyhedral mesh deformation with one affine map per face.

Every face owns a 3x3 linear map. For each coordinate axis the unknowns are
the matching column of all face maps (``3 * F`` values, face ``f`` at
``3f .. 3f + 2``) followed by the deformed vertex coordinate (``N`` values,
vertex ``v`` at ``3F + v``). The axes are separable and share one
factorization.

Constraints require each face map to reproduce, for every edge on the face
boundary, the displacement between the deformed endpoints::

    sum_k e_k * A_f[k] - (q[EV[i, 1]] - q[EV[i, 0]]) = 0

where ``e`` is the original edge vector. The energy keeps every map close to
the identity and, on interior edges, penalizes the difference between the
maps of the two adjacent faces (bending). Edge weights are uniform.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple, Union

import numpy as np
import scipy.sparse as sp

from .errors import InvalidTopologyError, PreconditionError
from .mesh import PolyMesh
from .quadratic import QuadraticSolver
from .topology import (
    validate_edge_faces,
    validate_edge_incidence,
    validate_edges,
    validate_mesh,
    vertex_components,
)
from .utils import get_logger


class AffineEnergyType(enum.Enum):
    ARAP = "arap"  # as-rigid-as-possible
    ASAP = "asap"  # as-similar-as-possible

    @classmethod
    def coerce(cls, value: Union["AffineEnergyType", str]) -> "AffineEnergyType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as exc:
            raise ValueError(f"Unknown affine energy type {value!r}") from exc


@dataclass(frozen=True)
class AffineData:
    """Precomputed affine deformation system, reused across deform calls."""

    E: sp.csr_matrix
    C: sp.csr_matrix
    solver: QuadraticSolver
    energy_target: np.ndarray
    handles: np.ndarray
    num_faces: int
    num_vertices: int
    energy_type: AffineEnergyType
    bend_factor: float

    @property
    def num_variables(self) -> int:
        return 3 * self.num_faces + self.num_vertices


class AffineDeformResult(NamedTuple):
    maps: np.ndarray
    vertices: np.ndarray

    def face_map(self, fid: int) -> np.ndarray:
        """Return the 3x3 map of face ``fid``; it acts on row vectors (``e @ M``)."""
        return self.maps[3 * fid : 3 * fid + 3]


def assemble_affine_system(
    vertices: np.ndarray,
    num_faces: int,
    edge_faces: np.ndarray,
    edges: np.ndarray,
    bend_factor: float = 1.0,
) -> Tuple[sp.csr_matrix, sp.csr_matrix, np.ndarray]:
    """Return the energy matrix, constraint matrix and energy target.

    ``E`` has ``3F`` identity rows followed by one bending row per interior
    edge. ``C`` has one row per present edge side. The target holds, per
    axis, the identity map for the self rows and zero for the bending rows.
    """
    vertices = np.asarray(vertices, dtype=np.float64)
    num_vertices = vertices.shape[0]
    num_vars = 3 * num_faces + num_vertices
    offset = 3 * num_faces

    c_rows: list[int] = []
    c_cols: list[int] = []
    c_vals: list[float] = []
    crow = 0
    for i in range(edges.shape[0]):
        v0, v1 = int(edges[i, 0]), int(edges[i, 1])
        edge_vector = vertices[v1] - vertices[v0]
        for j in range(2):
            fid = int(edge_faces[i, j])
            if fid == -1:
                continue
            for k in range(3):
                c_rows.append(crow)
                c_cols.append(3 * fid + k)
                c_vals.append(float(edge_vector[k]))
            c_rows += [crow, crow]
            c_cols += [offset + v0, offset + v1]
            c_vals += [1.0, -1.0]
            crow += 1

    e_rows = list(range(3 * num_faces))
    e_cols = list(range(3 * num_faces))
    e_vals = [1.0] * (3 * num_faces)
    erow = 3 * num_faces
    weight = float(np.sqrt(bend_factor))
    for i in range(edge_faces.shape[0]):
        f0, f1 = int(edge_faces[i, 0]), int(edge_faces[i, 1])
        if f0 == -1 or f1 == -1:
            continue
        for k in range(3):
            e_rows += [erow, erow]
            e_cols += [3 * f0 + k, 3 * f1 + k]
            e_vals += [-weight, weight]
        erow += 1

    E = sp.csr_matrix((e_vals, (e_rows, e_cols)), shape=(erow, num_vars), dtype=np.float64)
    C = sp.csr_matrix((c_vals, (c_rows, c_cols)), shape=(crow, num_vars), dtype=np.float64)
    target = np.zeros((erow, 3), dtype=np.float64)
    target[: 3 * num_faces] = np.tile(np.eye(3), (num_faces, 1))
    return E, C, target


def affine_maps_precompute(
    vertices: np.ndarray,
    degrees: np.ndarray,
    faces: np.ndarray,
    edge_faces: np.ndarray,
    edges: np.ndarray,
    handles: np.ndarray,
    bend_factor: float = 1.0,
    energy_type: Union[AffineEnergyType, str] = AffineEnergyType.ARAP,
) -> AffineData:
    """Assemble and factorize the deformation system for a fixed handle set.

    Parameters
    ----------
    vertices : (N, 3) original vertex positions.
    degrees : (F,) face degrees.
    faces : (F, max degree) face-vertex incidence.
    edge_faces : (M, 2) edge-face incidence, ``-1`` on a missing side.
    edges : (M, 2) edge-vertex incidence.
    handles : (H,) indices of vertices with prescribed positions.
    bend_factor : weight of the bending term relative to the identity prior.
    energy_type : tag stored with the system; assembly is the same for both.
    """
    logger = get_logger(__name__)
    vertices = np.asarray(vertices, dtype=np.float64)
    validate_mesh(vertices, degrees, faces)
    num_faces = int(np.asarray(faces).shape[0])
    edges = validate_edges(vertices.shape[0], edges)
    edge_faces = validate_edge_faces(num_faces, edge_faces, edges.shape[0])
    validate_edge_incidence(np.asarray(degrees, dtype=np.int64), np.asarray(faces, dtype=np.int64), edges, edge_faces)
    handles = np.asarray(handles, dtype=np.int64).ravel()
    if handles.size and (handles.min() < 0 or handles.max() >= vertices.shape[0]):
        raise InvalidTopologyError(f"handle indices must lie in [0, {vertices.shape[0]})")
    if np.unique(handles).size != handles.size:
        raise PreconditionError("handle indices must be unique")
    bend_factor = float(bend_factor)
    if not bend_factor >= 0.0:
        raise ValueError("bend_factor must be non-negative")
    count, labels = vertex_components(vertices.shape[0], edges)
    anchored = np.zeros(count, dtype=bool)
    anchored[labels[handles]] = True
    if not anchored.all():
        loose = np.flatnonzero(~anchored[labels])
        raise PreconditionError(
            f"{int(count - anchored.sum())} of {count} connected components have no handle "
            f"(e.g. vertex {int(loose[0])}); the system would be singular"
        )

    E, C, target = assemble_affine_system(vertices, num_faces, edge_faces, edges, bend_factor)
    logger.debug("affine system: E %dx%d, C %dx%d, %d handles", E.shape[0], E.shape[1], C.shape[0], C.shape[1], handles.size)

    solver = QuadraticSolver(
        (E.T @ E).tocsr(),
        3 * num_faces + handles,
        C,
        constraints_on_rhs=True,
    )
    return AffineData(
        E=E,
        C=C,
        solver=solver,
        energy_target=target,
        handles=handles,
        num_faces=num_faces,
        num_vertices=int(vertices.shape[0]),
        energy_type=AffineEnergyType.coerce(energy_type),
        bend_factor=bend_factor,
    )


def affine_maps_precompute_mesh(
    mesh: PolyMesh,
    handles: np.ndarray,
    bend_factor: float = 1.0,
    energy_type: Union[AffineEnergyType, str] = AffineEnergyType.ARAP,
) -> AffineData:
    """Convenience wrapper around :func:`affine_maps_precompute` for a :class:`PolyMesh`."""
    return affine_maps_precompute(
        mesh.vertices,
        mesh.degrees,
        mesh.faces,
        mesh.edge_faces,
        mesh.edges,
        handles,
        bend_factor=bend_factor,
        energy_type=energy_type,
    )


def affine_maps_deform(
    adata: AffineData,
    handle_targets: np.ndarray,
    initial_guess: Optional[np.ndarray] = None,
) -> AffineDeformResult:
    """Solve for the face maps and vertex positions given handle targets.

    A single global linear solve is performed. ``initial_guess`` is accepted
    and shape-checked but does not influence the result.
    """
    targets = np.asarray(handle_targets, dtype=np.float64)
    if targets.shape != (adata.handles.size, 3):
        raise PreconditionError(
            f"handle targets must have shape ({adata.handles.size}, 3), got {targets.shape}"
        )
    if not np.all(np.isfinite(targets)):
        raise PreconditionError("handle targets must be finite")
    if initial_guess is not None:
        guess = np.asarray(initial_guess)
        if guess.shape != (adata.num_vertices, 3):
            raise PreconditionError(
                f"initial guess must have shape ({adata.num_vertices}, 3), got {guess.shape}"
            )
        get_logger(__name__).debug("initial guess ignored: one global solve")

    linear_term = -(adata.E.T @ adata.energy_target)
    raw = adata.solver.solve(linear_term, targets, np.zeros((adata.C.shape[0], 3)))
    split = 3 * adata.num_faces
    return AffineDeformResult(maps=raw[:split], vertices=raw[split:])
