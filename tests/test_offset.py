import numpy as np
import pytest

from polydeform.errors import InvalidTopologyError, NumericError, UnsupportedVariantError
from polydeform.geometry import cube_mesh, grid_mesh
from polydeform.offset import OffsetMeshProblem, OffsetType


def _cube_problem(**kwargs):
    mesh = cube_mesh()
    problem = OffsetMeshProblem.from_mesh(mesh, offset_type=OffsetType.VERTEX, distance=1.0, device="cpu", **kwargs)
    problem.initialize()
    return mesh, problem


def test_initial_solution_layout():
    mesh, problem = _cube_problem()
    x0 = problem.initial_solution()
    assert problem.x_size == 3 * 8 + 12
    assert x0.shape == (problem.x_size,)
    assert np.allclose(x0[:24].reshape(8, 3), mesh.vertices)
    assert np.all(x0[24:] == 0.0)


def test_cube_energy_at_initial_solution():
    _, problem = _cube_problem()
    x0 = problem.initial_solution()
    problem.update_energy(x0)
    assert problem.e_vec.shape == (8,)
    assert np.allclose(problem.e_vec, -1.0)


def test_cube_constraints_at_initial_solution_equal_edge_vectors():
    mesh, problem = _cube_problem()
    problem.update_constraints(problem.initial_solution())
    assert problem.c_vec.shape == (3 * mesh.num_edges,)
    assert np.allclose(problem.c_vec.reshape(-1, 3), mesh.edge_vectors())


def test_constraints_vanish_for_uniformly_scaled_mesh():
    mesh, problem = _cube_problem()
    x = problem.initial_solution()
    x[:24] = (2.0 * mesh.vertices + 3.0).ravel()
    x[24:] = 2.0
    problem.update_constraints(x)
    assert np.allclose(problem.c_vec, 0.0)


def test_constraint_jacobian_structure():
    mesh, problem = _cube_problem()
    J = problem.constraint_jacobian().toarray()
    assert J.shape == (36, 36)
    a, b = mesh.edges[0]
    edge = mesh.vertices[b] - mesh.vertices[a]
    for j in range(3):
        row = J[j]
        assert row[3 * a + j] == -1.0
        assert row[3 * b + j] == 1.0
        assert row[24] == -edge[j]
        assert np.count_nonzero(row) == np.count_nonzero([1.0, 1.0, edge[j]])
    assert np.allclose(J, problem.offset_constraint_matrix.toarray())


def test_energy_jacobian_pattern_and_original_formula():
    mesh, problem = _cube_problem()
    assert problem.je_rows.tolist() == np.repeat(np.arange(8), 3).tolist()
    assert problem.je_cols.tolist() == list(range(24))
    x = problem.initial_solution() + 0.25
    jc_before = problem.jc_vals.copy()
    problem.update_jacobian(x)
    assert np.allclose(problem.je_vals, 2.0 * mesh.vertices.ravel())
    assert np.array_equal(problem.jc_vals, jc_before)


def test_exact_jacobian_matches_residual_derivative():
    mesh, problem = _cube_problem(jacobian="exact")
    x = problem.initial_solution()
    x[:24] += np.linspace(-0.3, 0.4, 24)
    problem.update_jacobian(x)
    J = problem.energy_jacobian().toarray()
    eps = 1e-6
    problem.update_energy(x)
    base = problem.e_vec.copy()
    for col in (0, 5, 13, 23):
        shifted = x.copy()
        shifted[col] += eps
        problem.update_energy(shifted)
        assert np.allclose((problem.e_vec - base) / eps, J[:, col], atol=1e-4)


def test_distance_parameter_is_read_each_update():
    _, problem = _cube_problem()
    problem.set_parameter("distance", 2.0)
    problem.update_energy(problem.initial_solution())
    assert np.allclose(problem.e_vec, -4.0)


@pytest.mark.parametrize("offset_type", [OffsetType.EDGE, OffsetType.FACE, "face"])
def test_unsupported_offsets_fail_at_initialize(offset_type):
    mesh = cube_mesh()
    problem = OffsetMeshProblem.from_mesh(mesh, offset_type=offset_type, device="cpu")
    with pytest.raises(UnsupportedVariantError):
        problem.initialize()
    assert not problem.is_initialized()
    assert problem.offset_constraint_matrix is None
    with pytest.raises(RuntimeError):
        problem.initial_solution()


def test_non_finite_values_raise_numeric_error():
    _, problem = _cube_problem(jacobian="exact")
    x = problem.initial_solution()
    x[4] = np.nan
    with pytest.raises(NumericError) as info:
        problem.update_energy(x)
    assert info.value.indices == [1]
    with pytest.raises(NumericError):
        problem.update_jacobian(x)
    x[4] = np.inf
    with pytest.raises(NumericError):
        problem.update_energy(x)


def test_iteration_hooks_and_final_solution():
    mesh, problem = _cube_problem()
    x = problem.initial_solution()
    x[:24] += 1.0
    x[24:] = 0.5
    assert problem.pre_iteration(x) is None
    assert problem.post_iteration(x) is False
    assert problem.post_optimization(x) is True
    assert np.allclose(problem.full_solution, mesh.vertices + 1.0)
    assert np.allclose(problem.offset_scales(x), 0.5)


def test_invalid_inputs():
    mesh = grid_mesh(rows=3, cols=3)
    edges = mesh.edges.copy()
    edges[2, 0] = -4
    problem = OffsetMeshProblem(mesh.vertices, mesh.degrees, mesh.faces, edges, device="cpu")
    with pytest.raises(InvalidTopologyError):
        problem.initialize()
    with pytest.raises(ValueError):
        OffsetMeshProblem.from_mesh(mesh, jacobian="numeric")
    with pytest.raises(ValueError):
        OffsetMeshProblem.from_mesh(mesh, offset_type="normal")
    _, cube = _cube_problem()
    with pytest.raises(ValueError):
        cube.update_energy(np.zeros(5))


def test_updates_write_into_the_prepared_arrays():
    _, problem = _cube_problem(jacobian="exact")
    e_vec, je_vals, c_vec = problem.e_vec, problem.je_vals, problem.c_vec
    x = problem.initial_solution()
    x[:24] += 0.5
    x[24:] = 2.0
    problem.update_energy(x)
    problem.update_jacobian(x)
    problem.update_constraints(x)
    assert problem.e_vec is e_vec
    assert problem.je_vals is je_vals
    assert problem.c_vec is c_vec
    assert np.allclose(e_vec, 3 * 0.25 - 1.0)
    assert np.allclose(je_vals, 1.0)
    assert np.any(c_vec != 0.0)


def test_failed_update_leaves_previous_residual():
    _, problem = _cube_problem()
    x = problem.initial_solution()
    problem.update_energy(x)
    before = problem.e_vec.copy()
    x[0] = np.nan
    with pytest.raises(NumericError):
        problem.update_energy(x)
    assert np.array_equal(problem.e_vec, before)


def test_current_solution_tracks_each_iteration():
    from polydeform.optimizer import LevenbergMarquardtSolver

    mesh, problem = _cube_problem(jacobian="exact")
    assert problem.current_solution is None
    seen = []

    def record(iteration, cost, x, step):
        seen.append((x.copy(), problem.current_solution.copy()))

    solver = LevenbergMarquardtSolver(problem)
    solver.solve(max_iterations=3, callbacks=[record], verbose=False)
    assert np.array_equal(seen[0][1], problem.initial_solution())
    for (previous, _), (_, current) in zip(seen, seen[1:]):
        assert np.array_equal(current, previous)
    assert np.array_equal(problem.current_solution[:24], problem.full_solution.ravel())
