import numpy as np
import pytest

from pyocean.decomposition import DECOMPOSITIONS, blocks_for_rank, decompose, uniform_decomposition
from pyocean.errors import InvalidCombination
from pyocean.mesh import load_mesh, operator_self_test, planar_periodic_mesh


@pytest.fixture
def mesh():
    return planar_periodic_mesh(6, 5, 2000.0, 3, bottom_depth=500.0)


def test_dimensions(mesh):
    dims = mesh.dimensions
    assert dims["nCells"] == 30
    assert dims["nEdges"] == 60
    assert dims["nVertices"] == 30
    assert dims["nVertLevels"] == 3
    assert dims["nVertLevelsP1"] == 4
    np.testing.assert_allclose(mesh.rest_thickness.sum(axis=1), mesh.bottom_depth)


def test_operator_self_test_passes(mesh):
    results = operator_self_test(mesh)
    assert results
    assert all(results.values()), results


def test_vorticity_of_uniform_flow_vanishes(mesh):
    u = 0.4 * mesh.edge_normal_x - 0.1 * mesh.edge_normal_y
    np.testing.assert_allclose(mesh.vorticity(u), 0.0, atol=1e-14)


def test_gradient_and_divergence_are_adjoint(mesh):
    rng = np.random.default_rng(1)
    f = rng.standard_normal(mesh.n_cells)
    flux = rng.standard_normal(mesh.n_edges)
    lhs = np.sum(mesh.gradient(f) * flux * mesh.dc_edge * mesh.dv_edge)
    rhs = -np.sum(f * mesh.divergence(flux) * mesh.area_cell)
    assert lhs == pytest.approx(rhs, rel=1e-10)


def test_green_gauss_gradient_of_constant(mesh):
    gx, gy = mesh.green_gauss_gradient(np.full(mesh.n_cells, 2.5))
    np.testing.assert_allclose(gx, 0.0, atol=1e-15)
    np.testing.assert_allclose(gy, 0.0, atol=1e-15)


def test_operators_broadcast_over_levels(mesh):
    rng = np.random.default_rng(2)
    u = rng.standard_normal((mesh.n_edges, 3))
    div = mesh.divergence(u)
    assert div.shape == (mesh.n_cells, 3)
    np.testing.assert_allclose(div[:, 1], mesh.divergence(u[:, 1]))


def test_mesh_file_round_trip(mesh, tmp_path):
    path = str(tmp_path / "mesh.nc")
    mesh.to_netcdf(path)
    other = load_mesh(path)
    np.testing.assert_array_equal(other.cells_on_edge, mesh.cells_on_edge)
    np.testing.assert_array_equal(other.edges_on_cell, mesh.edges_on_cell)
    np.testing.assert_allclose(other.area_cell, mesh.area_cell)
    np.testing.assert_allclose(other.ref_bottom_depth, mesh.ref_bottom_depth)
    u = np.cos(mesh.x_cell / 3000.0)[mesh.cells_on_edge[:, 0]]
    np.testing.assert_allclose(other.divergence(u), mesh.divergence(u))


def test_uniform_decomposition(mesh):
    assert "uniform" in DECOMPOSITIONS
    owner = uniform_decomposition(mesh, 4)
    assert sorted(set(owner.tolist())) == [0, 1, 2, 3]
    assert np.all(np.diff(owner) >= 0)
    with pytest.raises(InvalidCombination):
        uniform_decomposition(mesh, 0)


def test_blocks_for_rank():
    assert blocks_for_rank(5, 0, 2) == [0, 1, 2]
    assert blocks_for_rank(5, 1, 2) == [3, 4]


def test_sub_meshes_reproduce_owned_operator_values(mesh):
    rng = np.random.default_rng(4)
    f = rng.standard_normal(mesh.n_cells)
    u = rng.standard_normal(mesh.n_edges)
    full_div = mesh.divergence(u)
    full_ke = mesh.kinetic_energy(u)
    blocks = decompose(mesh, n_blocks=3, halo_layers=2)
    assert [b for b, _ in blocks] == [0, 1, 2]
    owned = np.zeros(mesh.n_cells, dtype=int)
    for _, sub in blocks:
        n = sub.n_cells_owned
        owned[sub.cell_ids[:n]] += 1
        local_div = sub.divergence(u[sub.edge_ids])
        local_ke = sub.kinetic_energy(u[sub.edge_ids])
        np.testing.assert_allclose(local_div[:n], full_div[sub.cell_ids[:n]], rtol=1e-13, atol=1e-16)
        np.testing.assert_allclose(local_ke[:n], full_ke[sub.cell_ids[:n]], rtol=1e-13)
        grad = sub.gradient(f[sub.cell_ids])
        ne = sub.n_edges_owned
        np.testing.assert_allclose(grad[:ne], mesh.gradient(f)[sub.edge_ids[:ne]], rtol=1e-13)
    # ownership is exclusive
    np.testing.assert_array_equal(owned, 1)


def test_single_block_keeps_the_full_mesh(mesh):
    [(block_id, sub)] = decompose(mesh)
    assert block_id == 0
    assert sub is mesh
