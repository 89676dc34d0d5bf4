"""
Dynamics calculations mixin for MPAS data.

This module provides the DynamicsMixin class which adds wind reconstruction,
vorticity and Ertel PV diagnostics to the MPAS accessor.
"""

from __future__ import annotations

import logging
import numpy as np
import xarray as xr

from .formulas import signed_pv
from .pv import kinematic_state
from ..operators import cell_curl, reconstruct_cell_vector, to_local
from .._utils import assign_compatible_coords

logger = logging.getLogger(__name__)

__all__ = [
    'DynamicsMixin',
]


def _pv_kernel(u, theta, rho, mesh):
    return kinematic_state(mesh, u, theta, rho).pv


def _wind_kernel(u, mesh):
    return to_local(mesh, reconstruct_cell_vector(mesh, u))


def _zeta_kernel(u, mesh):
    return cell_curl(mesh, u)


class DynamicsMixin:
    """
    Mixin class providing dynamics calculations for MPAS data.

    All properties return xr.DataArray with CF-style attributes. Horizontal
    operators need whole-mesh arrays, so ``nCells``, ``nEdges`` and
    ``nVertLevels`` must each be a single dask chunk; ``Time`` may be
    chunked freely.

    Available Properties
    --------------------
    **Wind Variables**

    - ``uzonal`` : Reconstructed zonal wind [m/s]
    - ``umeridional`` : Reconstructed meridional wind [m/s]

    **Vorticity-Related**

    - ``zeta`` : Relative vorticity at cell centres [s⁻¹]
    - ``eta`` : Absolute vorticity at cell centres [s⁻¹]
    - ``pv`` : Ertel potential vorticity [PVU]
    - ``spv`` : Hemisphere-signed Ertel potential vorticity [PVU]
    """

    # =========================================================================
    # Public properties - Wind
    # =========================================================================

    def _cell_wind(self) -> xr.DataArray:
        self._validate_chunks('wind')
        ds = self._ds
        wind = xr.apply_ufunc(
            _wind_kernel,
            ds['u'],
            kwargs={'mesh': self.mesh},
            input_core_dims=[['nEdges', 'nVertLevels']],
            output_core_dims=[['nCells', 'nVertLevels', 'nDirections']],
            vectorize=True,
            dask='parallelized',
            output_dtypes=[np.float64],
            dask_gufunc_kwargs={
                'output_sizes': {'nCells': self.mesh.n_cells, 'nDirections': 2},
            },
        )
        return assign_compatible_coords(wind, ds)

    @property
    def uzonal(self) -> xr.DataArray:
        """Zonal wind reconstructed at cell centres [m/s]."""
        uzonal = self._cell_wind().isel(nDirections=0)
        uzonal.attrs.update({
            'standard_name': 'eastward_wind',
            'long_name': 'reconstructed zonal wind',
            'units': 'm s-1',
        })
        return uzonal.rename('uzonal')

    @property
    def umeridional(self) -> xr.DataArray:
        """Meridional wind reconstructed at cell centres [m/s]."""
        umeridional = self._cell_wind().isel(nDirections=1)
        umeridional.attrs.update({
            'standard_name': 'northward_wind',
            'long_name': 'reconstructed meridional wind',
            'units': 'm s-1',
        })
        return umeridional.rename('umeridional')

    # =========================================================================
    # Public properties - Vorticity
    # =========================================================================

    @property
    def zeta(self) -> xr.DataArray:
        """Relative vorticity at cell centres [s⁻¹]."""
        self._validate_chunks('wind')
        ds = self._ds
        zeta = xr.apply_ufunc(
            _zeta_kernel,
            ds['u'],
            kwargs={'mesh': self.mesh},
            input_core_dims=[['nEdges', 'nVertLevels']],
            output_core_dims=[['nCells', 'nVertLevels']],
            vectorize=True,
            dask='parallelized',
            output_dtypes=[np.float64],
            dask_gufunc_kwargs={'output_sizes': {'nCells': self.mesh.n_cells}},
        )
        zeta = assign_compatible_coords(zeta, ds)
        zeta.attrs.update({
            'standard_name': 'atmosphere_relative_vorticity',
            'long_name': 'relative vorticity at cell centres',
            'units': 's-1',
        })
        return zeta.rename('zeta')

    @property
    def eta(self) -> xr.DataArray:
        """Absolute vertical vorticity zeta + f at cell centres [s⁻¹]."""
        f = xr.DataArray(self.mesh.f_cell, dims=['nCells'])
        eta = self.zeta + f
        eta.attrs.update({
            'standard_name': 'atmosphere_absolute_vorticity',
            'long_name': 'absolute vorticity at cell centres',
            'units': 's-1',
        })
        return eta.rename('eta')

    @property
    def pv(self) -> xr.DataArray:
        """Ertel potential vorticity [PVU]."""
        self._validate_chunks('pv')
        ds = self._ds
        pv = xr.apply_ufunc(
            _pv_kernel,
            ds['u'],
            ds['theta'],
            self.rho,
            kwargs={'mesh': self.mesh},
            input_core_dims=[
                ['nEdges', 'nVertLevels'],
                ['nCells', 'nVertLevels'],
                ['nCells', 'nVertLevels'],
            ],
            output_core_dims=[['nCells', 'nVertLevels']],
            vectorize=True,
            dask='parallelized',
            output_dtypes=[np.float64],
        )
        pv = assign_compatible_coords(pv, ds)
        pv.attrs.update({
            'standard_name': 'ertel_potential_vorticity',
            'long_name': 'Ertel potential vorticity',
            'units': 'PVU',
        })
        return pv.rename('pv')

    @property
    def spv(self) -> xr.DataArray:
        """Hemisphere-signed Ertel potential vorticity [PVU]."""
        pv = self.pv
        f = xr.DataArray(self.mesh.f_cell, dims=['nCells'])
        spv = xr.apply_ufunc(
            signed_pv,
            pv,
            f,
            input_core_dims=[['nCells', 'nVertLevels'], ['nCells']],
            output_core_dims=[['nCells', 'nVertLevels']],
            dask='parallelized',
            output_dtypes=[np.float64],
        )
        spv = assign_compatible_coords(spv, pv)
        spv.attrs.update({
            'long_name': 'hemisphere-signed Ertel potential vorticity',
            'units': 'PVU',
        })
        return spv.rename('spv')

    @property
    def rho(self) -> xr.DataArray:
        """Dry air density [kg/m³], from ``rho`` or ``rho_zz * zz``."""
        ds = self._ds
        if 'rho' in ds:
            return ds['rho']
        if 'rho_zz' in ds and 'zz' in ds:
            rho = ds['rho_zz'] * ds['zz']
            rho.attrs.update({
                'long_name': 'dry air density',
                'units': 'kg m-3',
            })
            return rho.rename('rho')
        raise KeyError("Dataset needs 'rho' or both 'rho_zz' and 'zz' for density.")
