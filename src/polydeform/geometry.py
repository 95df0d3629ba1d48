"""Small mesh builders shared by examples and tests."""
from __future__ import annotations

import numpy as np

from .mesh import PolyMesh


_CUBE_FACES = (
    (0, 3, 2, 1),
    (4, 5, 6, 7),
    (0, 1, 5, 4),
    (2, 3, 7, 6),
    (0, 4, 7, 3),
    (1, 2, 6, 5),
)


def cube_mesh(size: float = 1.0, center: bool = False) -> PolyMesh:
    """Return an axis-aligned cube with six outward-oriented quads."""
    verts = np.array(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [1.0, 1.0, 0.0],
            [0.0, 1.0, 0.0],
            [0.0, 0.0, 1.0],
            [1.0, 0.0, 1.0],
            [1.0, 1.0, 1.0],
            [0.0, 1.0, 1.0],
        ]
    )
    if center:
        verts -= 0.5
    return PolyMesh.from_faces(verts * float(size), _CUBE_FACES)


def grid_mesh(rows: int = 4, cols: int = 5, spacing: float = 1.0) -> PolyMesh:
    """Return a planar ``rows`` x ``cols`` vertex grid of quads in ``z = 0``."""
    if rows < 2 or cols < 2:
        raise ValueError("Grid must have at least 2x2 vertices")
    if spacing <= 0.0:
        raise ValueError("Vertex spacing must be positive")

    def idx(r: int, c: int) -> int:
        return r * cols + c

    verts = np.zeros((rows * cols, 3), dtype=np.float64)
    faces: list[tuple[int, int, int, int]] = []
    for r in range(rows):
        for c in range(cols):
            verts[idx(r, c)] = (c * spacing, r * spacing, 0.0)
            if r + 1 < rows and c + 1 < cols:
                faces.append((idx(r, c), idx(r, c + 1), idx(r + 1, c + 1), idx(r + 1, c)))
    return PolyMesh.from_faces(verts, faces)


def disjoint_quads(count: int = 3, spacing: float = 2.0) -> PolyMesh:
    """Return ``count`` unit quads that share no vertex or edge."""
    square = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]])
    verts = np.vstack([square + [i * spacing, 0.0, 0.0] for i in range(count)])
    faces = [tuple(range(4 * i, 4 * i + 4)) for i in range(count)]
    return PolyMesh.from_faces(verts, faces)
