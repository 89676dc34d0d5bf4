"""
Horizontal operators on the unstructured mesh.

Every operator is a linear map between mesh locations and is stored as a
cached ``scipy.sparse`` matrix, so repeated application on many levels or
time steps costs one sparse product. Fields carry the mesh location on the
first axis and any number of trailing axes (levels, components).

References
----------
Ringler, T. D., J. Thuburn, J. B. Klemp, and W. C. Skamarock, 2010: A
    unified approach to energy conservation and potential vorticity dynamics
    for arbitrarily-structured C-grids. J. Comput. Phys., 229, 3065-3090,
    https://doi.org/10.1016/j.jcp.2009.12.007.
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp
from functools import lru_cache

from ._utils import check_leading_dim
from .mesh import Mesh

__all__ = [
    'edge_normal_gradient',
    'reconstruct_cell_vector',
    'to_local',
    'cell_gradient',
    'vertex_curl',
    'cell_curl',
    'edge_average',
]


# =============================================================================
# Cached operator matrices
# =============================================================================

@lru_cache(maxsize=16)
def _gradient_matrix(mesh: Mesh) -> sp.csr_matrix:
    """(nEdges, nCells) map of (phi[c2] - phi[c1]) / dc_edge; boundary edges are empty rows."""
    edges = np.flatnonzero(~mesh.boundary_edges)
    inv_dc = 1.0 / mesh.dc_edge[edges]
    rows = np.concatenate([edges, edges])
    cols = np.concatenate([mesh.cells_on_edge[edges, 1], mesh.cells_on_edge[edges, 0]])
    data = np.concatenate([inv_dc, -inv_dc])
    return sp.csr_matrix((data, (rows, cols)), shape=(mesh.n_edges, mesh.n_cells))


@lru_cache(maxsize=16)
def _reconstruct_matrices(mesh: Mesh) -> tuple[sp.csr_matrix, ...]:
    """Three (nCells, nEdges) maps giving the Cartesian x, y, z components."""
    coeffs = mesh.coeffs_reconstruct
    valid = mesh.edges_on_cell >= 0
    cells = np.broadcast_to(np.arange(mesh.n_cells)[:, np.newaxis], valid.shape)
    rows = cells[valid]
    cols = mesh.edges_on_cell[valid]
    shape = (mesh.n_cells, mesh.n_edges)
    return tuple(
        sp.csr_matrix((coeffs[..., axis][valid], (rows, cols)), shape=shape)
        for axis in range(3)
    )


@lru_cache(maxsize=16)
def _vertex_curl_matrix(mesh: Mesh) -> sp.csr_matrix:
    """(nVertices, nEdges) circulation around each dual triangle per unit area."""
    valid = mesh.edges_on_vertex >= 0
    vertices = np.broadcast_to(np.arange(mesh.n_vertices)[:, np.newaxis], valid.shape)
    edges = mesh.edges_on_vertex[valid]
    data = (
        mesh.edge_sign_on_vertex[valid]
        * mesh.dc_edge[edges]
        / mesh.area_triangle[vertices[valid]]
    )
    return sp.csr_matrix(
        (data, (vertices[valid], edges)), shape=(mesh.n_vertices, mesh.n_edges)
    )


@lru_cache(maxsize=16)
def _kite_average_matrix(mesh: Mesh) -> sp.csr_matrix:
    """(nCells, nVertices) kite-area weighted average of vertex values."""
    valid = mesh.cells_on_vertex >= 0
    vertices = np.broadcast_to(np.arange(mesh.n_vertices)[:, np.newaxis], valid.shape)
    cells = mesh.cells_on_vertex[valid]
    data = mesh.kite_areas_on_vertex[valid] / mesh.area_cell[cells]
    return sp.csr_matrix(
        (data, (cells, vertices[valid])), shape=(mesh.n_cells, mesh.n_vertices)
    )


@lru_cache(maxsize=16)
def _edge_average_matrix(mesh: Mesh) -> sp.csr_matrix:
    """(nEdges, nCells) two-cell mean, or the one available cell on boundary edges."""
    valid = mesh.cells_on_edge >= 0
    edges = np.broadcast_to(np.arange(mesh.n_edges)[:, np.newaxis], valid.shape)
    data = np.broadcast_to((1.0 / valid.sum(axis=1))[:, np.newaxis], valid.shape)
    return sp.csr_matrix(
        (data[valid], (edges[valid], mesh.cells_on_edge[valid])),
        shape=(mesh.n_edges, mesh.n_cells),
    )


def _apply(matrix: sp.spmatrix, field: np.ndarray) -> np.ndarray:
    """Apply *matrix* along the first axis of *field*."""
    flat = field.reshape(field.shape[0], -1)
    out = np.asarray(matrix @ flat)
    return out.reshape((matrix.shape[0],) + field.shape[1:])


# =============================================================================
# Public operators
# =============================================================================

def edge_normal_gradient(mesh: Mesh, phi: np.ndarray) -> np.ndarray:
    """
    Normal gradient of a cell field at edges.

    Parameters
    ----------
    mesh : Mesh
    phi : np.ndarray, shape (nCells, ...)

    Returns
    -------
    np.ndarray, shape (nEdges, ...)
        (phi[c2] - phi[c1]) / dc_edge, positive along the edge normal.
        NaN on boundary edges.
    """
    phi = check_leading_dim('phi', phi, mesh.n_cells, 'nCells')
    grad = _apply(_gradient_matrix(mesh), phi)
    grad[mesh.boundary_edges] = np.nan
    return grad


def reconstruct_cell_vector(mesh: Mesh, edge_field: np.ndarray) -> np.ndarray:
    """
    Cartesian vector at cell centres from its edge-normal components.

    Parameters
    ----------
    mesh : Mesh
    edge_field : np.ndarray, shape (nEdges, ...)
        Normal component at edges (wind, gradient, forcing).

    Returns
    -------
    np.ndarray, shape (nCells, ..., 3)
    """
    edge_field = check_leading_dim('edge_field', edge_field, mesh.n_edges, 'nEdges')
    return np.stack(
        [_apply(matrix, edge_field) for matrix in _reconstruct_matrices(mesh)],
        axis=-1,
    )


def to_local(mesh: Mesh, vector: np.ndarray) -> np.ndarray:
    """
    Project Cartesian cell vectors onto the local east and north directions.

    Parameters
    ----------
    mesh : Mesh
    vector : np.ndarray, shape (nCells, ..., 3)

    Returns
    -------
    np.ndarray, shape (nCells, ..., 2)
        (east, north) components.
    """
    vector = check_leading_dim('vector', vector, mesh.n_cells, 'nCells')
    if vector.shape[-1] != 3:
        raise ValueError(
            f"Cartesian vectors need a trailing axis of length 3, got {vector.shape}."
        )
    extra = (1,) * (vector.ndim - 2)
    east = mesh.cell_east.reshape((mesh.n_cells,) + extra + (3,))
    north = mesh.cell_north.reshape((mesh.n_cells,) + extra + (3,))
    return np.stack(
        [(vector * east).sum(axis=-1), (vector * north).sum(axis=-1)], axis=-1
    )


def cell_gradient(mesh: Mesh, phi: np.ndarray) -> np.ndarray:
    """
    Horizontal gradient of a cell field at cell centres.

    The edge-normal gradient is reconstructed with the same coefficients
    that reconstruct the wind, then projected onto east and north.

    Parameters
    ----------
    mesh : Mesh
    phi : np.ndarray, shape (nCells, ...)

    Returns
    -------
    np.ndarray, shape (nCells, ..., 2)
        (d/dx, d/dy) in the local east/north frame. NaN on cells bounded
        by a boundary edge.
    """
    grad = to_local(mesh, reconstruct_cell_vector(mesh, edge_normal_gradient(mesh, phi)))
    grad[mesh.boundary_cells] = np.nan
    return grad


def vertex_curl(mesh: Mesh, u: np.ndarray) -> np.ndarray:
    """
    Relative vorticity on the dual mesh from edge-normal wind.

    Parameters
    ----------
    mesh : Mesh
    u : np.ndarray, shape (nEdges, ...)

    Returns
    -------
    np.ndarray, shape (nVertices, ...)
        sum(sign * u * dc_edge) / area_triangle [s-1].
    """
    u = check_leading_dim('u', u, mesh.n_edges, 'nEdges')
    return _apply(_vertex_curl_matrix(mesh), u)


def cell_curl(mesh: Mesh, u: np.ndarray) -> np.ndarray:
    """Vertical curl at cell centres, the kite-area average of ``vertex_curl``."""
    return _apply(_kite_average_matrix(mesh), vertex_curl(mesh, u))


def edge_average(mesh: Mesh, phi: np.ndarray) -> np.ndarray:
    """
    Mean of the two cells sharing each edge, shape (nEdges, ...).

    Boundary edges take the value of their one cell.
    """
    phi = check_leading_dim('phi', phi, mesh.n_cells, 'nCells')
    return _apply(_edge_average_matrix(mesh), phi)
