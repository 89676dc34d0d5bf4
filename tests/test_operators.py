import numpy as np
import pytest

from mpaspv.mesh import Mesh
from mpaspv.operators import (
    cell_curl,
    cell_gradient,
    edge_average,
    edge_normal_gradient,
    reconstruct_cell_vector,
    to_local,
    vertex_curl,
)
from conftest import interior_cells, wave


def edge_midpoints(mesh):
    """Unwrapped midpoint of the segment between the two cells of each edge."""
    c1 = mesh.cells_on_edge[:, 0]
    return mesh.cell_xyz[c1] + 0.5 * mesh.dc_edge[:, None] * mesh.edge_normal


def test_edge_gradient_of_linear_field(hex_mesh):
    gx, gy = 2.0e-3, -5.0e-4
    phi = gx * hex_mesh.cell_xyz[:, 0] + gy * hex_mesh.cell_xyz[:, 1]
    grad = edge_normal_gradient(hex_mesh, phi)

    c1, c2 = hex_mesh.cells_on_edge.T
    inner = interior_cells(hex_mesh)[c1] & interior_cells(hex_mesh)[c2]
    expected = gx * hex_mesh.edge_normal[:, 0] + gy * hex_mesh.edge_normal[:, 1]
    np.testing.assert_allclose(grad[inner], expected[inner], rtol=1e-10)


def test_cell_gradient_is_exact_for_linear_field(hex_mesh):
    gx, gy = 2.0e-3, -5.0e-4
    x, y = hex_mesh.cell_xyz[:, 0], hex_mesh.cell_xyz[:, 1]
    phi = np.stack([gx * x + gy * y, 2 * (gx * x + gy * y)], axis=-1)

    grad = cell_gradient(hex_mesh, phi)
    assert grad.shape == (hex_mesh.n_cells, 2, 2)

    inner = interior_cells(hex_mesh)
    assert inner.sum() > 0
    np.testing.assert_allclose(grad[inner, 0, 0], gx, rtol=1e-10)
    np.testing.assert_allclose(grad[inner, 0, 1], gy, rtol=1e-10)
    np.testing.assert_allclose(grad[inner, 1], 2 * grad[inner, 0], rtol=1e-12)


def test_reconstruction_of_uniform_wind(hex_mesh):
    wind = np.array([7.0, -2.0, 0.0])
    u = hex_mesh.edge_normal @ wind
    vector = reconstruct_cell_vector(hex_mesh, u)
    assert vector.shape == (hex_mesh.n_cells, 3)
    np.testing.assert_allclose(to_local(hex_mesh, vector), np.tile(wind[:2], (hex_mesh.n_cells, 1)),
                               atol=1e-12)


def test_solid_body_rotation_vorticity(hex_mesh):
    omega_rot = 3.0e-5
    mid = edge_midpoints(hex_mesh)
    x0, y0 = 4.0e4, 3.0e4
    vx = -omega_rot * (mid[:, 1] - y0)
    vy = omega_rot * (mid[:, 0] - x0)
    u = vx * hex_mesh.edge_normal[:, 0] + vy * hex_mesh.edge_normal[:, 1]

    zeta = cell_curl(hex_mesh, u)
    inner = interior_cells(hex_mesh)
    np.testing.assert_allclose(zeta[inner], 2 * omega_rot, rtol=1e-10)


def test_curl_of_gradient_vanishes(hex_mesh):
    phi = wave(hex_mesh.cell_xyz) + 0.3 * hex_mesh.cell_xyz[:, 0] / 1.0e4
    curl = vertex_curl(hex_mesh, edge_normal_gradient(hex_mesh, phi))
    assert curl.shape == (hex_mesh.n_vertices,)
    np.testing.assert_allclose(curl, 0.0, atol=1e-15)


def test_uniform_flow_has_no_vorticity(hex_mesh):
    u = np.repeat((hex_mesh.edge_normal @ np.array([5.0, 1.0, 0.0]))[:, None], 3, axis=1)
    np.testing.assert_allclose(cell_curl(hex_mesh, u), 0.0, atol=1e-15)


def test_edge_average(hex_mesh):
    phi = np.arange(hex_mesh.n_cells, dtype=float)
    avg = edge_average(hex_mesh, phi)
    c1, c2 = hex_mesh.cells_on_edge.T
    np.testing.assert_allclose(avg, 0.5 * (phi[c1] + phi[c2]))


def test_operators_keep_trailing_axes(hex_mesh):
    phi = np.ones((hex_mesh.n_cells, 4, 2))
    assert edge_normal_gradient(hex_mesh, phi).shape == (hex_mesh.n_edges, 4, 2)
    assert edge_average(hex_mesh, phi).shape == (hex_mesh.n_edges, 4, 2)


def test_shape_mismatch_raises(hex_mesh):
    with pytest.raises(ValueError, match='nCells'):
        edge_normal_gradient(hex_mesh, np.zeros(hex_mesh.n_cells + 1))
    with pytest.raises(ValueError, match='nEdges'):
        vertex_curl(hex_mesh, np.zeros(hex_mesh.n_cells))
    with pytest.raises(ValueError):
        to_local(hex_mesh, np.zeros((hex_mesh.n_cells, 2)))


def test_boundary_edge_leaves_other_cells_defined(hex_mesh):
    ds = hex_mesh.to_dataset()
    ds['cellsOnEdge'][0, 1] = 0
    mesh = Mesh.from_dataset(ds)

    phi = wave(hex_mesh.cell_xyz)
    grad = edge_normal_gradient(mesh, phi)
    assert np.isnan(grad[0])
    np.testing.assert_allclose(grad[1:], edge_normal_gradient(hex_mesh, phi)[1:])

    cell = cell_gradient(mesh, phi)
    boundary = mesh.boundary_cells
    assert np.isnan(cell[boundary]).all()
    np.testing.assert_allclose(cell[~boundary], cell_gradient(hex_mesh, phi)[~boundary])

    avg = edge_average(mesh, phi)
    assert avg[0] == phi[0]
    np.testing.assert_allclose(avg[1:], edge_average(hex_mesh, phi)[1:])
