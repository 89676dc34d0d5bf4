"""
Unstructured Voronoi mesh description.

This module provides the read-only ``Mesh`` container holding MPAS-style
connectivity and geometry (cells, edges, vertices, vertical interfaces),
readers and writers for MPAS grid variables, and a builder for doubly
periodic planar hexagonal meshes.

Index arrays are 0-based; ``-1`` marks a missing entry (MPAS files are
1-based with 0 as missing and are converted on read).
"""

from __future__ import annotations

import logging
import numpy as np
import xarray as xr
from typing import Sequence

from .calc.formulas import coriolis_parameter
from .numerics import layer_midpoints

logger = logging.getLogger(__name__)

__all__ = [
    'Mesh',
    'planar_hex_mesh',
]


def _frozen(values, dtype) -> np.ndarray:
    """Return a read-only contiguous copy of *values*."""
    arr = np.array(values, dtype=dtype, copy=True)
    arr.setflags(write=False)
    return arr


def _local_basis(lat: np.ndarray, lon: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Unit east and north vectors on the sphere at (lat, lon) in radians."""
    east = np.stack([-np.sin(lon), np.cos(lon), np.zeros_like(lon)], axis=-1)
    north = np.stack([
        -np.sin(lat) * np.cos(lon),
        -np.sin(lat) * np.sin(lon),
        np.cos(lat),
    ], axis=-1)
    return east, north


class Mesh:
    """
    Immutable MPAS-style mesh connectivity and geometry.

    Parameters
    ----------
    cells_on_edge : array of int, shape (nEdges, 2)
        The two cells sharing each edge. The edge normal points from the
        first to the second. Edges on a limited-area or partition boundary
        have -1 for the missing cell.
    edges_on_cell : array of int, shape (nCells, maxEdges)
        Edges bounding each cell, padded with -1.
    n_edges_on_cell : array of int, shape (nCells,)
    cells_on_vertex : array of int, shape (nVertices, 3)
    edges_on_vertex : array of int, shape (nVertices, 3)
    vertices_on_edge : array of int, shape (nEdges, 2)
        Edge end points; the tangent k x n points from the first to the
        second.
    dc_edge : array, shape (nEdges,)
        Distance between the two cell centres of each edge [m].
    dv_edge : array, shape (nEdges,)
        Length of each edge [m].
    area_cell : array, shape (nCells,)
    area_triangle : array, shape (nVertices,)
    kite_areas_on_vertex : array, shape (nVertices, 3)
        Overlap of each dual triangle with its three cells [m2].
    edge_normal : array, shape (nEdges, 3)
        Cartesian unit normal of each edge.
    cell_east, cell_north : array, shape (nCells, 3)
        Cartesian unit vectors of the local tangent plane at each cell.
    f_cell : array, shape (nCells,)
        Coriolis parameter [s-1].
    zgrid : array, shape (nCells, nVertLevels + 1)
        Interface heights [m].
    coeffs_reconstruct : array, shape (nCells, maxEdges, 3), optional
        Edge-to-cell vector reconstruction weights. Built by least squares
        in the cell tangent plane when omitted.
    cell_xyz, edge_xyz, vertex_xyz : array, shape (n, 3), optional
        Cartesian positions [m].
    on_a_sphere : bool
    """

    def __init__(
        self,
        *,
        cells_on_edge,
        edges_on_cell,
        n_edges_on_cell,
        cells_on_vertex,
        edges_on_vertex,
        vertices_on_edge,
        dc_edge,
        dv_edge,
        area_cell,
        area_triangle,
        kite_areas_on_vertex,
        edge_normal,
        cell_east,
        cell_north,
        f_cell,
        zgrid,
        coeffs_reconstruct=None,
        cell_xyz=None,
        edge_xyz=None,
        vertex_xyz=None,
        on_a_sphere: bool = False,
    ) -> None:
        self.cells_on_edge = _frozen(cells_on_edge, np.int64)
        self.edges_on_cell = _frozen(edges_on_cell, np.int64)
        self.n_edges_on_cell = _frozen(n_edges_on_cell, np.int64)
        self.cells_on_vertex = _frozen(cells_on_vertex, np.int64)
        self.edges_on_vertex = _frozen(edges_on_vertex, np.int64)
        self.vertices_on_edge = _frozen(vertices_on_edge, np.int64)
        self.dc_edge = _frozen(dc_edge, np.float64)
        self.dv_edge = _frozen(dv_edge, np.float64)
        self.area_cell = _frozen(area_cell, np.float64)
        self.area_triangle = _frozen(area_triangle, np.float64)
        self.kite_areas_on_vertex = _frozen(kite_areas_on_vertex, np.float64)
        self.edge_normal = _frozen(edge_normal, np.float64)
        self.cell_east = _frozen(cell_east, np.float64)
        self.cell_north = _frozen(cell_north, np.float64)
        self.f_cell = _frozen(f_cell, np.float64)
        self.zgrid = _frozen(zgrid, np.float64)
        self.on_a_sphere = bool(on_a_sphere)

        n_cells = self.n_cells
        self.cell_xyz = None if cell_xyz is None else _frozen(cell_xyz, np.float64)
        self.edge_xyz = None if edge_xyz is None else _frozen(edge_xyz, np.float64)
        self.vertex_xyz = None if vertex_xyz is None else _frozen(vertex_xyz, np.float64)

        self._validate()

        self._coeffs_reconstruct: np.ndarray | None = None
        if coeffs_reconstruct is not None:
            coeffs = _frozen(coeffs_reconstruct, np.float64)
            if coeffs.shape != (n_cells, self.max_edges, 3):
                raise ValueError(
                    f"coeffs_reconstruct must have shape "
                    f"{(n_cells, self.max_edges, 3)}, got {coeffs.shape}."
                )
            self._coeffs_reconstruct = coeffs

        self._z_mid: np.ndarray | None = None
        self._edge_sign_on_vertex: np.ndarray | None = None

    def __repr__(self) -> str:
        kind = 'sphere' if self.on_a_sphere else 'plane'
        return (
            f"Mesh(nCells={self.n_cells}, nEdges={self.n_edges}, "
            f"nVertices={self.n_vertices}, nVertLevels={self.n_levels}, {kind})"
        )

    # =========================================================================
    # Sizes
    # =========================================================================

    @property
    def n_cells(self) -> int:
        return self.edges_on_cell.shape[0]

    @property
    def n_edges(self) -> int:
        return self.cells_on_edge.shape[0]

    @property
    def n_vertices(self) -> int:
        return self.cells_on_vertex.shape[0]

    @property
    def n_levels(self) -> int:
        return self.zgrid.shape[1] - 1

    @property
    def max_edges(self) -> int:
        return self.edges_on_cell.shape[1]

    def _validate(self) -> None:
        """Check array shapes against each other."""
        n_cells, n_edges, n_vertices = self.n_cells, self.n_edges, self.n_vertices
        expected = {
            'n_edges_on_cell': (self.n_edges_on_cell, (n_cells,)),
            'vertices_on_edge': (self.vertices_on_edge, (n_edges, 2)),
            'edges_on_vertex': (self.edges_on_vertex, (n_vertices, 3)),
            'dc_edge': (self.dc_edge, (n_edges,)),
            'dv_edge': (self.dv_edge, (n_edges,)),
            'area_cell': (self.area_cell, (n_cells,)),
            'area_triangle': (self.area_triangle, (n_vertices,)),
            'kite_areas_on_vertex': (self.kite_areas_on_vertex, (n_vertices, 3)),
            'edge_normal': (self.edge_normal, (n_edges, 3)),
            'cell_east': (self.cell_east, (n_cells, 3)),
            'cell_north': (self.cell_north, (n_cells, 3)),
            'f_cell': (self.f_cell, (n_cells,)),
        }
        for name, (arr, shape) in expected.items():
            if arr.shape != shape:
                raise ValueError(
                    f"Mesh array '{name}' must have shape {shape}, got {arr.shape}."
                )
        if self.cells_on_edge.shape[1:] != (2,):
            raise ValueError(
                f"cells_on_edge must have shape (nEdges, 2), got {self.cells_on_edge.shape}."
            )
        if self.zgrid.ndim != 2 or self.zgrid.shape[0] != n_cells or self.zgrid.shape[1] < 3:
            raise ValueError(
                f"zgrid must have shape (nCells, nVertLevels + 1) with at least "
                f"2 levels, got {self.zgrid.shape}."
            )
        if np.any((self.cells_on_edge < 0).all(axis=1)):
            raise ValueError("Every edge needs at least one cell.")

    # =========================================================================
    # Derived geometry (computed once, read-only)
    # =========================================================================

    @property
    def z_mid(self) -> np.ndarray:
        """Layer midpoint heights, shape (nCells, nVertLevels) [m]."""
        if self._z_mid is None:
            z_mid = layer_midpoints(self.zgrid)
            z_mid.setflags(write=False)
            self._z_mid = z_mid
        return self._z_mid

    @property
    def boundary_edges(self) -> np.ndarray:
        """Mask of edges missing one of their two cells, shape (nEdges,)."""
        return (self.cells_on_edge < 0).any(axis=1)

    @property
    def boundary_cells(self) -> np.ndarray:
        """Mask of cells bounded by at least one boundary edge, shape (nCells,)."""
        edges = self.edges_on_cell
        return (self.boundary_edges[np.where(edges >= 0, edges, 0)] & (edges >= 0)).any(axis=1)

    @property
    def edge_sign_on_vertex(self) -> np.ndarray:
        """
        Circulation sign of each vertex edge, shape (nVertices, 3).

        +1 when the edge normal runs counterclockwise around the vertex,
        which is the case for the second vertex of the edge.
        """
        if self._edge_sign_on_vertex is None:
            vertex = np.arange(self.n_vertices)[:, np.newaxis]
            edges = self.edges_on_vertex
            valid = edges >= 0
            first = self.vertices_on_edge[np.where(valid, edges, 0), 0]
            sign = np.where(first == vertex, -1.0, 1.0)
            sign = np.where(valid, sign, 0.0)
            sign.setflags(write=False)
            self._edge_sign_on_vertex = sign
        return self._edge_sign_on_vertex

    @property
    def coeffs_reconstruct(self) -> np.ndarray:
        """Edge-to-cell reconstruction weights, shape (nCells, maxEdges, 3)."""
        if self._coeffs_reconstruct is None:
            coeffs = self._least_squares_coeffs()
            coeffs.setflags(write=False)
            self._coeffs_reconstruct = coeffs
        return self._coeffs_reconstruct

    def _least_squares_coeffs(self) -> np.ndarray:
        """
        Least-squares reconstruction weights in the cell tangent plane.

        For each cell the vector V minimising sum_j (V . n_j - u_j)^2 over
        its edges is V = sum_j c_j u_j; c_j is returned as a Cartesian
        vector. A field whose edge values are exact projections of one
        tangent vector is reconstructed exactly.
        """
        valid = self.edges_on_cell >= 0
        normals = self.edge_normal[np.where(valid, self.edges_on_cell, 0)]
        n_east = np.einsum('cjk,ck->cj', normals, self.cell_east) * valid
        n_north = np.einsum('cjk,ck->cj', normals, self.cell_north) * valid
        basis = np.stack([n_east, n_north], axis=-1)         # (c, j, 2)

        normal_matrix = np.einsum('cji,cjk->cik', basis, basis)
        inverse = np.linalg.inv(normal_matrix)
        weights = np.einsum('cik,cjk->cji', inverse, basis)   # (c, j, 2)

        return (
            weights[..., 0:1] * self.cell_east[:, np.newaxis, :]
            + weights[..., 1:2] * self.cell_north[:, np.newaxis, :]
        )

    # =========================================================================
    # MPAS grid variables
    # =========================================================================

    @classmethod
    def from_dataset(
        cls,
        ds: xr.Dataset,
        zgrid: np.ndarray | None = None,
    ) -> 'Mesh':
        """
        Build a mesh from MPAS grid variables.

        Parameters
        ----------
        ds : xr.Dataset
            Dataset holding MPAS grid variables (``cellsOnEdge``,
            ``edgesOnCell``, ``dcEdge``, ``zgrid``...). A ``Time`` dimension
            on any of them is reduced to its first entry.
        zgrid : np.ndarray, optional
            Interface heights overriding ``ds['zgrid']``.

        Returns
        -------
        Mesh
        """
        def var(name: str) -> np.ndarray:
            if name not in ds:
                raise KeyError(f"MPAS grid variable '{name}' not found in dataset.")
            da = ds[name]
            if 'Time' in da.dims:
                da = da.isel(Time=0)
            return np.asarray(da.values)

        def index(name: str) -> np.ndarray:
            return var(name).astype(np.int64) - 1

        on_a_sphere = str(ds.attrs.get('on_a_sphere', 'NO')).strip().upper() == 'YES'

        if zgrid is None:
            zgrid = var('zgrid')

        if on_a_sphere:
            lat_cell, lon_cell = var('latCell'), var('lonCell')
            cell_east, cell_north = _local_basis(lat_cell, lon_cell)
        else:
            n_cells = ds.sizes['nCells']
            cell_east = np.tile([1.0, 0.0, 0.0], (n_cells, 1))
            cell_north = np.tile([0.0, 1.0, 0.0], (n_cells, 1))

        if 'edgeNormalVectors' in ds:
            edge_normal = var('edgeNormalVectors')
        else:
            angle = var('angleEdge')
            if on_a_sphere:
                edge_east, edge_north = _local_basis(var('latEdge'), var('lonEdge'))
            else:
                n_edges = ds.sizes['nEdges']
                edge_east = np.tile([1.0, 0.0, 0.0], (n_edges, 1))
                edge_north = np.tile([0.0, 1.0, 0.0], (n_edges, 1))
            edge_normal = (
                np.cos(angle)[:, np.newaxis] * edge_east
                + np.sin(angle)[:, np.newaxis] * edge_north
            )

        if 'fCell' in ds:
            f_cell = var('fCell')
        elif on_a_sphere:
            f_cell = coriolis_parameter(var('latCell'))
        else:
            logger.info(
                "Coriolis parameter not available. Using f=0 (non-rotating mesh)."
            )
            f_cell = np.zeros(ds.sizes['nCells'])

        def xyz(prefix: str) -> np.ndarray | None:
            names = [f'x{prefix}', f'y{prefix}', f'z{prefix}']
            if all(name in ds for name in names):
                return np.stack([var(name) for name in names], axis=-1)
            return None

        coeffs = var('coeffs_reconstruct') if 'coeffs_reconstruct' in ds else None

        mesh = cls(
            cells_on_edge=index('cellsOnEdge'),
            edges_on_cell=index('edgesOnCell'),
            n_edges_on_cell=var('nEdgesOnCell'),
            cells_on_vertex=index('cellsOnVertex'),
            edges_on_vertex=index('edgesOnVertex'),
            vertices_on_edge=index('verticesOnEdge'),
            dc_edge=var('dcEdge'),
            dv_edge=var('dvEdge'),
            area_cell=var('areaCell'),
            area_triangle=var('areaTriangle'),
            kite_areas_on_vertex=var('kiteAreasOnVertex'),
            edge_normal=edge_normal,
            cell_east=cell_east,
            cell_north=cell_north,
            f_cell=f_cell,
            zgrid=zgrid,
            coeffs_reconstruct=coeffs,
            cell_xyz=xyz('Cell'),
            edge_xyz=xyz('Edge'),
            vertex_xyz=xyz('Vertex'),
            on_a_sphere=on_a_sphere,
        )
        logger.debug(f"Built {mesh!r} from dataset")
        return mesh

    def to_dataset(self) -> xr.Dataset:
        """
        Export the mesh as MPAS grid variables (1-based indices).

        Returns
        -------
        xr.Dataset
        """
        def index(arr: np.ndarray) -> np.ndarray:
            return (arr + 1).astype(np.int32)

        angle = np.arctan2(
            np.einsum('ek,ek->e', self.edge_normal, self._edge_north()),
            np.einsum('ek,ek->e', self.edge_normal, self._edge_east()),
        )

        data_vars = {
            'cellsOnEdge': (['nEdges', 'TWO'], index(self.cells_on_edge)),
            'edgesOnCell': (['nCells', 'maxEdges'], index(self.edges_on_cell)),
            'nEdgesOnCell': (['nCells'], self.n_edges_on_cell.astype(np.int32)),
            'cellsOnVertex': (['nVertices', 'vertexDegree'], index(self.cells_on_vertex)),
            'edgesOnVertex': (['nVertices', 'vertexDegree'], index(self.edges_on_vertex)),
            'verticesOnEdge': (['nEdges', 'TWO'], index(self.vertices_on_edge)),
            'dcEdge': (['nEdges'], self.dc_edge),
            'dvEdge': (['nEdges'], self.dv_edge),
            'areaCell': (['nCells'], self.area_cell),
            'areaTriangle': (['nVertices'], self.area_triangle),
            'kiteAreasOnVertex': (['nVertices', 'vertexDegree'], self.kite_areas_on_vertex),
            'angleEdge': (['nEdges'], angle),
            'fCell': (['nCells'], self.f_cell),
            'zgrid': (['nCells', 'nVertLevelsP1'], self.zgrid),
            'coeffs_reconstruct': (['nCells', 'maxEdges', 'R3'], self.coeffs_reconstruct),
        }
        for prefix, dim, pos in (
            ('Cell', 'nCells', self.cell_xyz),
            ('Edge', 'nEdges', self.edge_xyz),
            ('Vertex', 'nVertices', self.vertex_xyz),
        ):
            if pos is not None:
                for axis, name in enumerate('xyz'):
                    data_vars[f'{name}{prefix}'] = ([dim], pos[:, axis])

        if self.on_a_sphere:
            # Spherical readers need latitude and longitude for the local basis
            for prefix, dim, pos in (
                ('Cell', 'nCells', self.cell_xyz),
                ('Edge', 'nEdges', self.edge_xyz),
            ):
                if pos is None:
                    raise ValueError(
                        f"Spherical mesh export needs {prefix.lower()} positions."
                    )
                radius = np.linalg.norm(pos, axis=-1)
                data_vars[f'lat{prefix}'] = ([dim], np.arcsin(pos[:, 2] / radius))
                data_vars[f'lon{prefix}'] = ([dim], np.arctan2(pos[:, 1], pos[:, 0]))

        ds = xr.Dataset(data_vars)
        ds.attrs['on_a_sphere'] = 'YES' if self.on_a_sphere else 'NO'
        return ds

    def _edge_east(self) -> np.ndarray:
        if self.on_a_sphere and self.edge_xyz is not None:
            pos = self.edge_xyz
            lat = np.arcsin(pos[:, 2] / np.linalg.norm(pos, axis=-1))
            lon = np.arctan2(pos[:, 1], pos[:, 0])
            return _local_basis(lat, lon)[0]
        return np.tile([1.0, 0.0, 0.0], (self.n_edges, 1))

    def _edge_north(self) -> np.ndarray:
        if self.on_a_sphere and self.edge_xyz is not None:
            pos = self.edge_xyz
            lat = np.arcsin(pos[:, 2] / np.linalg.norm(pos, axis=-1))
            lon = np.arctan2(pos[:, 1], pos[:, 0])
            return _local_basis(lat, lon)[1]
        return np.tile([0.0, 1.0, 0.0], (self.n_edges, 1))


# =============================================================================
# Periodic planar hexagonal mesh
# =============================================================================

# Neighbour offsets (di, dj) counterclockwise from east: E, NE, NW, W, SW, SE.
# Odd rows are shifted half a cell to the east.
_EVEN_ROW_OFFSETS = np.array([(1, 0), (0, 1), (-1, 1), (-1, 0), (-1, -1), (0, -1)])
_ODD_ROW_OFFSETS = np.array([(1, 0), (1, 1), (0, 1), (-1, 0), (0, -1), (1, -1)])


def planar_hex_mesh(
    nx: int,
    ny: int,
    dc: float = 1.0e4,
    z_interfaces: Sequence[float] | np.ndarray | None = None,
    f0: float = 0.0,
) -> Mesh:
    """
    Doubly periodic mesh of regular hexagons on an f-plane.

    Each cell owns the edges towards its E, NE and NW neighbours and the
    vertices at 30 and 90 degrees from its centre, so edge ``3*c + d`` and
    vertices ``2*c`` and ``2*c + 1`` belong to cell ``c``.

    Parameters
    ----------
    nx, ny : int
        Cells per row and number of rows. *ny* must be even for the
        staggered rows to wrap.
    dc : float
        Distance between neighbouring cell centres [m].
    z_interfaces : sequence of float, optional
        Interface heights shared by all columns [m]. Defaults to 20 layers
        of 1 km.
    f0 : float
        Constant Coriolis parameter [s-1].

    Returns
    -------
    Mesh
    """
    if nx < 3 or ny < 4 or ny % 2:
        raise ValueError(
            f"Periodic hexagonal mesh needs nx >= 3 and an even ny >= 4, "
            f"got nx={nx}, ny={ny}."
        )

    if z_interfaces is None:
        z_interfaces = np.linspace(0.0, 2.0e4, 21)
    z_interfaces = np.asarray(z_interfaces, dtype=np.float64)
    if z_interfaces.ndim != 1 or np.any(np.diff(z_interfaces) <= 0.0):
        raise ValueError("z_interfaces must be a strictly increasing 1-D sequence.")

    n_cells = nx * ny
    row_dy = dc * np.sqrt(3.0) / 2.0
    lx, ly = nx * dc, ny * row_dy
    r_vertex = dc / np.sqrt(3.0)

    cell = np.arange(n_cells)
    j, i = np.divmod(cell, nx)
    x_cell = dc * (i + 0.5 * (j % 2))
    y_cell = row_dy * j

    odd = (j % 2 == 1)[:, np.newaxis]
    di = np.where(odd, _ODD_ROW_OFFSETS[:, 0], _EVEN_ROW_OFFSETS[:, 0])
    dj = np.where(odd, _ODD_ROW_OFFSETS[:, 1], _EVEN_ROW_OFFSETS[:, 1])
    neighbours = ((j[:, np.newaxis] + dj) % ny) * nx + (i[:, np.newaxis] + di) % nx

    # Edges
    owned = np.arange(3)
    edges_on_cell = np.empty((n_cells, 6), dtype=np.int64)
    edges_on_cell[:, :3] = 3 * cell[:, np.newaxis] + owned
    edges_on_cell[:, 3:] = 3 * neighbours[:, 3:] + owned
    cells_on_edge = np.stack([np.repeat(cell, 3), neighbours[:, :3].ravel()], axis=1)

    theta_edge = np.tile(np.deg2rad(60.0 * owned), n_cells)
    edge_normal = np.stack(
        [np.cos(theta_edge), np.sin(theta_edge), np.zeros_like(theta_edge)], axis=-1
    )
    owner = cells_on_edge[:, 0]
    x_edge = (x_cell[owner] + 0.5 * dc * np.cos(theta_edge)) % lx
    y_edge = (y_cell[owner] + 0.5 * dc * np.sin(theta_edge)) % ly

    # Vertices, counterclockwise from 30 degrees around each cell
    vertices_on_cell = np.stack([
        2 * cell,
        2 * cell + 1,
        2 * neighbours[:, 3],
        2 * neighbours[:, 4] + 1,
        2 * neighbours[:, 4],
        2 * neighbours[:, 5] + 1,
    ], axis=1)
    vertices_on_edge = np.stack([
        np.stack([vertices_on_cell[:, (d - 1) % 6], vertices_on_cell[:, d]], axis=-1)
        for d in owned
    ], axis=1).reshape(-1, 2)

    n_vertices = 2 * n_cells
    cells_on_vertex = np.empty((n_vertices, 3), dtype=np.int64)
    cells_on_vertex[0::2] = np.stack([cell, neighbours[:, 0], neighbours[:, 1]], axis=1)
    cells_on_vertex[1::2] = np.stack([cell, neighbours[:, 1], neighbours[:, 2]], axis=1)

    edges_on_vertex = np.empty((n_vertices, 3), dtype=np.int64)
    edges_on_vertex[0::2] = np.stack(
        [3 * cell, 3 * neighbours[:, 0] + 2, 3 * cell + 1], axis=1
    )
    edges_on_vertex[1::2] = np.stack(
        [3 * cell + 1, 3 * neighbours[:, 2], 3 * cell + 2], axis=1
    )

    vertex_angle = np.deg2rad([30.0, 90.0])
    x_vertex = np.empty(n_vertices)
    y_vertex = np.empty(n_vertices)
    for slot, angle in enumerate(vertex_angle):
        x_vertex[slot::2] = (x_cell + r_vertex * np.cos(angle)) % lx
        y_vertex[slot::2] = (y_cell + r_vertex * np.sin(angle)) % ly

    area_triangle = np.full(n_vertices, np.sqrt(3.0) / 4.0 * dc**2)
    zeros_cell = np.zeros(n_cells)

    return Mesh(
        cells_on_edge=cells_on_edge,
        edges_on_cell=edges_on_cell,
        n_edges_on_cell=np.full(n_cells, 6),
        cells_on_vertex=cells_on_vertex,
        edges_on_vertex=edges_on_vertex,
        vertices_on_edge=vertices_on_edge,
        dc_edge=np.full(3 * n_cells, dc),
        dv_edge=np.full(3 * n_cells, dc / np.sqrt(3.0)),
        area_cell=np.full(n_cells, np.sqrt(3.0) / 2.0 * dc**2),
        area_triangle=area_triangle,
        kite_areas_on_vertex=np.repeat(area_triangle[:, np.newaxis] / 3.0, 3, axis=1),
        edge_normal=edge_normal,
        cell_east=np.tile([1.0, 0.0, 0.0], (n_cells, 1)),
        cell_north=np.tile([0.0, 1.0, 0.0], (n_cells, 1)),
        f_cell=np.full(n_cells, float(f0)),
        zgrid=np.broadcast_to(z_interfaces, (n_cells, z_interfaces.size)),
        cell_xyz=np.stack([x_cell, y_cell, zeros_cell], axis=-1),
        edge_xyz=np.stack([x_edge, y_edge, np.zeros_like(x_edge)], axis=-1),
        vertex_xyz=np.stack([x_vertex, y_vertex, np.zeros(n_vertices)], axis=-1),
        on_a_sphere=False,
    )
