import numpy as np
import pytest

from polydeform.affine_maps import (
    AffineEnergyType,
    affine_maps_deform,
    affine_maps_precompute,
    affine_maps_precompute_mesh,
    assemble_affine_system,
)
from polydeform.errors import InvalidTopologyError, PreconditionError
from polydeform.examples.plate_bending import bend_plate, main as plate_main
from polydeform.geometry import cube_mesh, disjoint_quads, grid_mesh


def _identity_unknowns(mesh):
    z = np.zeros((3 * mesh.num_faces + mesh.num_vertices, 3))
    z[: 3 * mesh.num_faces] = np.tile(np.eye(3), (mesh.num_faces, 1))
    z[3 * mesh.num_faces :] = mesh.vertices
    return z


def _assemble(mesh, bend_factor=1.0):
    return assemble_affine_system(mesh.vertices, mesh.num_faces, mesh.edge_faces, mesh.edges, bend_factor)


def test_identity_deformation_satisfies_constraints_exactly():
    mesh = cube_mesh()
    _, C, _ = _assemble(mesh)
    assert np.all(C @ _identity_unknowns(mesh) == 0.0)


def test_identity_deformation_satisfies_constraints_on_grid():
    mesh = grid_mesh(rows=4, cols=5, spacing=0.3)
    _, C, _ = _assemble(mesh)
    assert np.allclose(C @ _identity_unknowns(mesh), 0.0, atol=1e-12)


def test_row_counts_on_closed_mesh():
    mesh = cube_mesh()
    E, C, target = _assemble(mesh)
    num_vars = 3 * mesh.num_faces + mesh.num_vertices
    assert E.shape == (3 * mesh.num_faces + mesh.num_edges, num_vars)
    assert C.shape == (2 * mesh.num_edges, num_vars)
    assert target.shape == (E.shape[0], 3)
    # bending rows equal the edge count when every edge is interior
    assert E.shape[0] - 3 * mesh.num_faces == mesh.num_edges


def test_row_counts_with_boundary():
    mesh = grid_mesh(rows=3, cols=4)
    E, C, _ = _assemble(mesh)
    interior = int(mesh.interior_edge_mask().sum())
    boundary = mesh.num_edges - interior
    assert E.shape[0] == 3 * mesh.num_faces + interior
    assert C.shape[0] == 2 * interior + boundary


def test_disjoint_faces_have_no_bending_rows():
    mesh = disjoint_quads(count=3)
    E, C, _ = _assemble(mesh)
    assert E.shape[0] == 3 * mesh.num_faces
    assert C.shape[0] == mesh.num_edges


def test_bend_factor_scales_values_not_rows():
    mesh = grid_mesh(rows=3, cols=3)
    E1, _, _ = _assemble(mesh, bend_factor=1.0)
    E0, _, _ = _assemble(mesh, bend_factor=0.0)
    E4, _, _ = _assemble(mesh, bend_factor=4.0)
    assert E0.shape == E1.shape == E4.shape
    bend1 = E1[3 * mesh.num_faces :].toarray()
    assert np.allclose(E4[3 * mesh.num_faces :].toarray(), 2.0 * bend1)
    assert np.allclose(E0[3 * mesh.num_faces :].toarray(), 0.0)


def test_round_trip_reproduces_original_mesh():
    mesh = grid_mesh(rows=4, cols=5, spacing=0.5)
    handles = np.array([0])
    adata = affine_maps_precompute_mesh(mesh, handles, bend_factor=2.0)
    result = affine_maps_deform(adata, mesh.vertices[handles])
    assert result.vertices.shape == (mesh.num_vertices, 3)
    assert result.maps.shape == (3 * mesh.num_faces, 3)
    assert np.allclose(result.vertices, mesh.vertices, atol=1e-6)
    assert np.allclose(result.face_map(2), np.eye(3), atol=1e-6)


def test_round_trip_on_disjoint_faces_with_one_handle_each():
    mesh = disjoint_quads(count=3)
    handles = np.array([0, 4, 8])
    adata = affine_maps_precompute_mesh(mesh, handles)
    result = affine_maps_deform(adata, mesh.vertices[handles])
    assert np.allclose(result.vertices, mesh.vertices, atol=1e-6)


def test_translating_all_handles_translates_mesh():
    mesh = cube_mesh()
    handles = np.array([0, 6])
    shift = np.array([0.5, -1.0, 2.0])
    adata = affine_maps_precompute(
        mesh.vertices, mesh.degrees, mesh.faces, mesh.edge_faces, mesh.edges, handles, bend_factor=1.0
    )
    result = affine_maps_deform(adata, mesh.vertices[handles] + shift)
    assert np.allclose(result.vertices, mesh.vertices + shift, atol=1e-6)


def test_initial_guess_does_not_change_result():
    mesh = grid_mesh(rows=3, cols=3)
    handles = np.array([0, 8])
    targets = mesh.vertices[handles] + np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
    adata = affine_maps_precompute_mesh(mesh, handles)
    plain = affine_maps_deform(adata, targets)
    guessed = affine_maps_deform(adata, targets, initial_guess=np.random.default_rng(0).normal(size=(9, 3)))
    assert np.allclose(plain.vertices, guessed.vertices)
    assert np.allclose(plain.maps, guessed.maps)


def test_handle_target_shape_is_checked_before_solving():
    mesh = grid_mesh(rows=3, cols=3)
    adata = affine_maps_precompute_mesh(mesh, np.array([0, 1]))
    with pytest.raises(PreconditionError):
        affine_maps_deform(adata, np.zeros((3, 3)))
    with pytest.raises(PreconditionError):
        affine_maps_deform(adata, np.zeros((2, 3)), initial_guess=np.zeros((2, 3)))
    with pytest.raises(PreconditionError):
        affine_maps_deform(adata, np.full((2, 3), np.nan))


def test_invalid_topology_is_rejected_before_assembly():
    mesh = grid_mesh(rows=3, cols=3)
    edge_faces = mesh.edge_faces.copy()
    edge_faces[0] = [-1, -1]
    with pytest.raises(InvalidTopologyError):
        affine_maps_precompute(mesh.vertices, mesh.degrees, mesh.faces, edge_faces, mesh.edges, np.array([0]))
    edges = mesh.edges.copy()
    edges[0, 1] = 99
    with pytest.raises(InvalidTopologyError):
        affine_maps_precompute(mesh.vertices, mesh.degrees, mesh.faces, mesh.edge_faces, edges, np.array([0]))
    with pytest.raises(InvalidTopologyError):
        affine_maps_precompute_mesh(mesh, np.array([42]))
    with pytest.raises(PreconditionError):
        affine_maps_precompute_mesh(mesh, np.array([1, 1]))
    with pytest.raises(ValueError):
        affine_maps_precompute_mesh(mesh, np.array([0]), bend_factor=-1.0)


def test_energy_type_is_stored():
    mesh = grid_mesh(rows=3, cols=3)
    adata = affine_maps_precompute_mesh(mesh, np.array([0]), energy_type="asap")
    assert adata.energy_type is AffineEnergyType.ASAP
    assert adata.num_variables == 3 * mesh.num_faces + mesh.num_vertices
    with pytest.raises(ValueError):
        AffineEnergyType.coerce("rigid")


def test_plate_bending_reaches_handle_targets():
    original, result = bend_plate(rows=4, cols=6, lift=0.75, bend_factor=5.0)
    left = np.arange(4) * 6
    right = left + 5
    assert np.allclose(result.vertices[left], original[left])
    assert np.allclose(result.vertices[right, 2], original[right, 2] + 0.75)
    interior = result.vertices[left + 2, 2]
    assert np.all(interior > 0.0) and np.all(interior < 0.75)


def test_plate_bending_example_runs():
    assert plate_main(["--rows", "3", "--cols", "4", "--lift", "0.5"]) == 0


def test_mesh_without_handles_is_rejected():
    mesh = grid_mesh(rows=3, cols=3)
    with pytest.raises(PreconditionError):
        affine_maps_precompute_mesh(mesh, np.array([], dtype=np.int64))


def test_every_disconnected_piece_needs_a_handle():
    mesh = disjoint_quads(count=3)
    with pytest.raises(PreconditionError):
        affine_maps_precompute_mesh(mesh, np.array([0]))
    with pytest.raises(PreconditionError):
        affine_maps_precompute_mesh(mesh, np.array([0, 1, 4]))
    affine_maps_precompute_mesh(mesh, np.array([1, 5, 9]))


def test_isolated_vertex_needs_a_handle():
    mesh = grid_mesh(rows=3, cols=3)
    vertices = np.vstack((mesh.vertices, [[5.0, 5.0, 5.0]]))
    with pytest.raises(PreconditionError):
        affine_maps_precompute(vertices, mesh.degrees, mesh.faces, mesh.edge_faces, mesh.edges, np.array([0]))
    adata = affine_maps_precompute(vertices, mesh.degrees, mesh.faces, mesh.edge_faces, mesh.edges, np.array([0, 9]))
    result = affine_maps_deform(adata, vertices[[0, 9]])
    assert np.allclose(result.vertices, vertices, atol=1e-6)


def test_same_face_on_both_sides_of_an_edge_is_rejected():
    mesh = grid_mesh(rows=3, cols=3)
    edge_faces = mesh.edge_faces.copy()
    fid = int(edge_faces[0].max())
    edge_faces[0] = [fid, fid]
    with pytest.raises(InvalidTopologyError):
        affine_maps_precompute(mesh.vertices, mesh.degrees, mesh.faces, edge_faces, mesh.edges, np.array([0]))


def test_edge_face_must_contain_the_edge():
    mesh = grid_mesh(rows=3, cols=3)
    edge_faces = mesh.edge_faces.copy()
    # edge (0, 1) lies on face 0 only; face 3 is the opposite grid cell
    assert mesh.edges[0].tolist() == [0, 1]
    edge_faces[0] = [3, -1]
    with pytest.raises(InvalidTopologyError):
        affine_maps_precompute(mesh.vertices, mesh.degrees, mesh.faces, edge_faces, mesh.edges, np.array([0]))


def test_repeated_edge_is_rejected():
    mesh = grid_mesh(rows=3, cols=3)
    edges = np.vstack((mesh.edges, mesh.edges[:1, ::-1]))
    edge_faces = np.vstack((mesh.edge_faces, mesh.edge_faces[:1]))
    with pytest.raises(InvalidTopologyError):
        affine_maps_precompute(mesh.vertices, mesh.degrees, mesh.faces, edge_faces, edges, np.array([0]))
