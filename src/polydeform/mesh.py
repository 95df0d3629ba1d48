"""Polygonal mesh container."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from .topology import interior_edge_mask, pad_faces, polygonal_edge_topology, validate_mesh


FaceInput = Union[np.ndarray, Sequence[Sequence[int]]]


@dataclass
class PolyMesh:
    """Polygonal mesh with explicit edge incidence.

    ``faces`` is ``(F, max degree)``; only the first ``degrees[f]`` entries
    of row ``f`` are meaningful. ``edge_faces`` uses ``-1`` for a missing
    side of a boundary edge.
    """

    vertices: np.ndarray
    degrees: np.ndarray
    faces: np.ndarray
    edges: np.ndarray
    edge_faces: np.ndarray

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float64)
        self.degrees = np.asarray(self.degrees, dtype=np.int64)
        self.faces = np.asarray(self.faces, dtype=np.int64)
        self.edges = np.asarray(self.edges, dtype=np.int64).reshape(-1, 2)
        self.edge_faces = np.asarray(self.edge_faces, dtype=np.int64).reshape(-1, 2)

    @classmethod
    def from_faces(
        cls,
        vertices: np.ndarray,
        faces: FaceInput,
        degrees: Optional[np.ndarray] = None,
    ) -> "PolyMesh":
        """Build a mesh and its edge incidence from vertices and face rows."""
        if degrees is None:
            degrees, padded = pad_faces(faces)
        else:
            padded = np.asarray(faces, dtype=np.int64)
            degrees = np.asarray(degrees, dtype=np.int64)
        validate_mesh(vertices, degrees, padded)
        edges, edge_faces = polygonal_edge_topology(degrees, padded)
        return cls(vertices=vertices, degrees=degrees, faces=padded, edges=edges, edge_faces=edge_faces)

    def clone(self) -> "PolyMesh":
        return PolyMesh(
            vertices=np.array(self.vertices, copy=True),
            degrees=np.array(self.degrees, copy=True),
            faces=np.array(self.faces, copy=True),
            edges=np.array(self.edges, copy=True),
            edge_faces=np.array(self.edge_faces, copy=True),
        )

    def validate(self) -> None:
        validate_mesh(self.vertices, self.degrees, self.faces, self.edges, self.edge_faces)

    @property
    def num_vertices(self) -> int:
        return int(self.vertices.shape[0])

    @property
    def num_faces(self) -> int:
        return int(self.faces.shape[0])

    @property
    def num_edges(self) -> int:
        return int(self.edges.shape[0])

    def interior_edge_mask(self) -> np.ndarray:
        return interior_edge_mask(self.edge_faces)

    def boundary_edge_mask(self) -> np.ndarray:
        return ~self.interior_edge_mask()

    def edge_vectors(self, vertices: Optional[np.ndarray] = None) -> np.ndarray:
        """Return ``V[EV[:, 1]] - V[EV[:, 0]]`` for ``vertices`` (default: own)."""
        verts = self.vertices if vertices is None else np.asarray(vertices, dtype=np.float64)
        return verts[self.edges[:, 1]] - verts[self.edges[:, 0]]
