"""Edge incidence construction and validation for polygonal meshes."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import connected_components

from .errors import InvalidTopologyError


def pad_faces(faces: Sequence[Sequence[int]]) -> Tuple[np.ndarray, np.ndarray]:
    """Return ``(degrees, faces)`` with ragged face rows padded by ``-1``."""
    rows = [list(map(int, face)) for face in faces]
    degrees = np.array([len(row) for row in rows], dtype=np.int64)
    width = int(degrees.max()) if degrees.size else 0
    padded = np.full((len(rows), width), -1, dtype=np.int64)
    for fid, row in enumerate(rows):
        padded[fid, : len(row)] = row
    return degrees, padded


def face_boundary(degrees: np.ndarray, faces: np.ndarray, fid: int) -> np.ndarray:
    """Return the cyclic vertex sequence of face ``fid``."""
    return faces[fid, : int(degrees[fid])]


def polygonal_edge_topology(degrees: np.ndarray, faces: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Return edge-vertex ``(M, 2)`` and edge-face ``(M, 2)`` incidence.

    Edges are stored with ``EV[i, 0] < EV[i, 1]`` in order of first
    appearance. ``EF[i, 0]`` is the face traversing the edge from ``EV[i, 0]``
    to ``EV[i, 1]`` and ``EF[i, 1]`` the opposite one; ``-1`` marks a missing
    side. A face traversing the edge in the same direction as an existing one
    takes the free slot.
    """
    degrees = np.asarray(degrees, dtype=np.int64)
    faces = np.asarray(faces, dtype=np.int64)
    _check_faces(degrees, faces)

    edge_index: dict[tuple[int, int], int] = {}
    ev: list[tuple[int, int]] = []
    ef: list[list[int]] = []
    for fid in range(faces.shape[0]):
        boundary = face_boundary(degrees, faces, fid)
        for k in range(boundary.size):
            a = int(boundary[k])
            b = int(boundary[(k + 1) % boundary.size])
            if a == b:
                raise InvalidTopologyError(f"face {fid} repeats vertex {a} on consecutive corners")
            key = (a, b) if a < b else (b, a)
            eid = edge_index.get(key)
            if eid is None:
                eid = len(ev)
                edge_index[key] = eid
                ev.append(key)
                ef.append([-1, -1])
            slot = 0 if a < b else 1
            if ef[eid][slot] != -1:
                slot = 1 - slot
            if ef[eid][slot] != -1:
                raise InvalidTopologyError(f"edge {key} is shared by more than two faces")
            ef[eid][slot] = fid

    if not ev:
        return np.zeros((0, 2), dtype=np.int64), np.zeros((0, 2), dtype=np.int64)
    return np.asarray(ev, dtype=np.int64), np.asarray(ef, dtype=np.int64)


def interior_edge_mask(edge_faces: np.ndarray) -> np.ndarray:
    edge_faces = np.asarray(edge_faces)
    return (edge_faces[:, 0] != -1) & (edge_faces[:, 1] != -1)


def validate_edges(num_vertices: int, edges: np.ndarray) -> np.ndarray:
    """Check an edge-vertex array and return it as ``int64``."""
    edges = np.asarray(edges, dtype=np.int64)
    if edges.ndim != 2 or edges.shape[1] != 2:
        raise InvalidTopologyError(f"edge-vertex incidence must have shape (M, 2), got {edges.shape}")
    bad = np.flatnonzero(np.any((edges < 0) | (edges >= num_vertices), axis=1))
    if bad.size:
        raise InvalidTopologyError(f"edges {bad[:8].tolist()} reference vertices outside [0, {num_vertices})")
    degenerate = np.flatnonzero(edges[:, 0] == edges[:, 1])
    if degenerate.size:
        raise InvalidTopologyError(f"edges {degenerate[:8].tolist()} connect a vertex to itself")
    if edges.shape[0]:
        _, first, counts = np.unique(np.sort(edges, axis=1), axis=0, return_index=True, return_counts=True)
        repeated = np.sort(first[counts > 1])
        if repeated.size:
            raise InvalidTopologyError(f"edges {repeated[:8].tolist()} are listed more than once")
    return edges


def validate_edge_faces(num_faces: int, edge_faces: np.ndarray, num_edges: int) -> np.ndarray:
    """Check an edge-face array and return it as ``int64``."""
    edge_faces = np.asarray(edge_faces, dtype=np.int64)
    if edge_faces.shape != (num_edges, 2):
        raise InvalidTopologyError(
            f"edge-face incidence must have shape ({num_edges}, 2), got {edge_faces.shape}"
        )
    bad = np.flatnonzero(np.any((edge_faces < -1) | (edge_faces >= num_faces), axis=1))
    if bad.size:
        raise InvalidTopologyError(f"edges {bad[:8].tolist()} reference faces outside [0, {num_faces})")
    orphan = np.flatnonzero(np.all(edge_faces == -1, axis=1))
    if orphan.size:
        raise InvalidTopologyError(f"edges {orphan[:8].tolist()} have no incident face")
    return edge_faces


def validate_edge_incidence(
    degrees: np.ndarray,
    faces: np.ndarray,
    edges: np.ndarray,
    edge_faces: np.ndarray,
) -> None:
    """Check that every face listed for an edge has that edge on its boundary.

    Arrays are expected to have passed the range checks already.
    """
    same = np.flatnonzero((edge_faces[:, 0] != -1) & (edge_faces[:, 0] == edge_faces[:, 1]))
    if same.size:
        raise InvalidTopologyError(f"edges {same[:8].tolist()} list the same face on both sides")

    face_edges: list[set[tuple[int, int]]] = []
    for fid in range(faces.shape[0]):
        boundary = face_boundary(degrees, faces, fid)
        sides = set()
        for k in range(boundary.size):
            a, b = int(boundary[k]), int(boundary[(k + 1) % boundary.size])
            sides.add((a, b) if a < b else (b, a))
        face_edges.append(sides)

    for i in range(edges.shape[0]):
        a, b = int(edges[i, 0]), int(edges[i, 1])
        key = (a, b) if a < b else (b, a)
        for fid in edge_faces[i]:
            if fid != -1 and key not in face_edges[fid]:
                raise InvalidTopologyError(f"edge {i} {key} is not on the boundary of face {int(fid)}")


def vertex_components(num_vertices: int, edges: np.ndarray) -> Tuple[int, np.ndarray]:
    """Label the connected components of the vertex-edge graph.

    Vertices without edges form their own component.
    """
    edges = np.asarray(edges, dtype=np.int64)
    graph = sp.coo_matrix(
        (np.ones(edges.shape[0]), (edges[:, 0], edges[:, 1])),
        shape=(num_vertices, num_vertices),
    )
    count, labels = connected_components(graph, directed=False)
    return int(count), labels


def validate_mesh(
    vertices: np.ndarray,
    degrees: np.ndarray,
    faces: np.ndarray,
    edges: Optional[np.ndarray] = None,
    edge_faces: Optional[np.ndarray] = None,
) -> None:
    """Raise :class:`InvalidTopologyError` if the mesh arrays are inconsistent."""
    vertices = np.asarray(vertices)
    if vertices.ndim != 2 or vertices.shape[1] != 3:
        raise InvalidTopologyError(f"vertices must have shape (N, 3), got {vertices.shape}")
    degrees = np.asarray(degrees, dtype=np.int64)
    faces = np.asarray(faces, dtype=np.int64)
    _check_faces(degrees, faces, num_vertices=vertices.shape[0])
    if edges is not None:
        edges = validate_edges(vertices.shape[0], edges)
        if edge_faces is not None:
            validate_edge_faces(faces.shape[0], edge_faces, edges.shape[0])


def _check_faces(degrees: np.ndarray, faces: np.ndarray, num_vertices: Optional[int] = None) -> None:
    if faces.ndim != 2:
        raise InvalidTopologyError("face-vertex incidence must be 2-D")
    if degrees.shape != (faces.shape[0],):
        raise InvalidTopologyError(
            f"face degrees must have shape ({faces.shape[0]},), got {degrees.shape}"
        )
    if degrees.size and (degrees.min() < 3 or degrees.max() > faces.shape[1]):
        raise InvalidTopologyError("face degrees must lie in [3, faces.shape[1]]")
    upper = np.iinfo(np.int64).max if num_vertices is None else num_vertices
    for fid in range(faces.shape[0]):
        boundary = face_boundary(degrees, faces, fid)
        if np.any((boundary < 0) | (boundary >= upper)):
            raise InvalidTopologyError(f"face {fid} references vertices outside [0, {upper})")
