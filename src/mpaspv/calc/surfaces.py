"""
Surface interpolation mixin for MPAS data.

This module provides the SurfaceMixin class which adds the dynamic
tropopause bracket and interpolation of any cell field onto the DT and
onto isobaric levels to the MPAS accessor.
"""

from __future__ import annotations

import numpy as np
import xarray as xr
from collections.abc import Sequence

from .constants import DT_THRESHOLD
from ..config import DEFAULT_ISOBARIC_LEVELS
from ..interp import interpolate_isobaric
from ..numerics import interpolate_bracket
from ..tropopause import locate_dt
from .._utils import assign_compatible_coords

__all__ = [
    'SurfaceMixin',
]


class SurfaceMixin:
    """
    Mixin class providing surface diagnostics for MPAS data.

    Missing points (no DT in the column, level outside the column's
    pressure range) are NaN unless a ``fill_value`` is given.

    Available Properties
    --------------------
    - ``pressure`` : Full pressure [Pa]
    - ``dt_level`` : Lower model level bracketing the DT [1]
    - ``dt_weight`` : Weight of the upper bracketing level [1]

    Available Methods
    -----------------
    - ``dt_bracket(threshold)``
    - ``on_dt(field, threshold, fill_value)``
    - ``on_isobaric(field, levels, fill_value)``
    """

    def _field(self, field: str | xr.DataArray) -> xr.DataArray:
        """Resolve a variable name from the Dataset or the accessor."""
        if isinstance(field, xr.DataArray):
            return field
        if field in self._ds:
            return self._ds[field]
        if hasattr(self, field):
            return getattr(self, field)
        raise KeyError(f"Variable '{field}' not found in dataset or accessor.")

    @property
    def pressure(self) -> xr.DataArray:
        """Full pressure [Pa], from ``pressure`` or ``pressure_p + pressure_base``."""
        ds = self._ds
        if 'pressure' in ds:
            return ds['pressure']
        if 'pressure_p' in ds and 'pressure_base' in ds:
            p = ds['pressure_p'] + ds['pressure_base']
            p.attrs.update({
                'standard_name': 'air_pressure',
                'long_name': 'pressure',
                'units': 'Pa',
            })
            return p.rename('pressure')
        raise KeyError(
            "Dataset needs 'pressure' or both 'pressure_p' and 'pressure_base'."
        )

    # =========================================================================
    # Dynamic tropopause
    # =========================================================================

    def dt_bracket(self, threshold: float = DT_THRESHOLD) -> xr.Dataset:
        """
        Dynamic tropopause bracket from the top-down signed-PV scan.

        Parameters
        ----------
        threshold : float, optional
            DT threshold [PVU], default 2.

        Returns
        -------
        xr.Dataset
            ``dt_level`` (-1 where missing) and ``dt_weight`` (NaN where
            missing) on ``nCells`` (and ``Time``).
        """
        spv = self.spv
        level, weight = xr.apply_ufunc(
            locate_dt,
            spv,
            kwargs={'threshold': threshold},
            input_core_dims=[['nVertLevels']],
            output_core_dims=[[], []],
            dask='parallelized',
            output_dtypes=[np.int64, np.float64],
        )
        level.attrs.update({
            'long_name': 'lower model level bracketing the dynamic tropopause',
            'units': '1',
            'missing_value': -1,
        })
        weight.attrs.update({
            'long_name': 'weight of the upper bracketing level at the dynamic tropopause',
            'units': '1',
            'dt_threshold': threshold,
        })
        return xr.Dataset({'dt_level': level, 'dt_weight': weight})

    @property
    def dt_level(self) -> xr.DataArray:
        """Lower model level bracketing the 2-PVU dynamic tropopause."""
        return self.dt_bracket()['dt_level']

    @property
    def dt_weight(self) -> xr.DataArray:
        """Weight of the upper bracketing level at the 2-PVU dynamic tropopause."""
        return self.dt_bracket()['dt_weight']

    def on_dt(
        self,
        field: str | xr.DataArray,
        threshold: float = DT_THRESHOLD,
        fill_value: float = np.nan,
    ) -> xr.DataArray:
        """
        Interpolate a cell field onto the dynamic tropopause.

        Parameters
        ----------
        field : str or xr.DataArray
            Variable name (Dataset variable or accessor property such as
            ``'uzonal'``) or a DataArray with ``nVertLevels``.
        threshold : float, optional
            DT threshold [PVU].
        fill_value : float, optional
            Value where the column has no DT.

        Returns
        -------
        xr.DataArray

        Examples
        --------
        >>> ds.mpaspv.on_dt('theta')     # theta on the 2-PVU surface
        """
        da = self._field(field)
        bracket = self.dt_bracket(threshold)
        out = xr.apply_ufunc(
            interpolate_bracket,
            da,
            bracket['dt_level'],
            bracket['dt_weight'],
            kwargs={'fill_value': fill_value},
            input_core_dims=[['nVertLevels'], [], []],
            output_core_dims=[[]],
            dask='parallelized',
            output_dtypes=[np.float64],
        )
        out = assign_compatible_coords(out, da)
        out.attrs.update({
            'long_name': f"{da.attrs.get('long_name', da.name)} on the dynamic tropopause",
            'units': da.attrs.get('units', ''),
            'dt_threshold': threshold,
        })
        return out.rename(f'{da.name}_dt')

    # =========================================================================
    # Isobaric levels
    # =========================================================================

    def on_isobaric(
        self,
        field: str | xr.DataArray,
        levels: Sequence[float] | None = None,
        fill_value: float = np.nan,
    ) -> xr.DataArray:
        """
        Interpolate a cell field onto isobaric levels, linear in log-pressure.

        Parameters
        ----------
        field : str or xr.DataArray
        levels : sequence of float, optional
            Target pressures [Pa]. Defaults to 850, 700, 500, 300, 200 hPa.
        fill_value : float, optional
            Value where a level lies outside the column.

        Returns
        -------
        xr.DataArray
            New dimension ``isobaric_level`` replaces ``nVertLevels``.
        """
        levels = tuple(float(p) for p in (DEFAULT_ISOBARIC_LEVELS if levels is None else levels))
        da = self._field(field)
        out = xr.apply_ufunc(
            interpolate_isobaric,
            da,
            self.pressure,
            kwargs={'levels': levels, 'fill_value': fill_value},
            input_core_dims=[['nVertLevels'], ['nVertLevels']],
            output_core_dims=[['isobaric_level']],
            dask='parallelized',
            output_dtypes=[np.float64],
            dask_gufunc_kwargs={'output_sizes': {'isobaric_level': len(levels)}},
        )
        out = out.assign_coords(isobaric_level=('isobaric_level', np.asarray(levels)))
        out['isobaric_level'].attrs.update({'long_name': 'isobaric level', 'units': 'Pa'})
        out = assign_compatible_coords(out, da)
        out.attrs.update({
            'long_name': f"{da.attrs.get('long_name', da.name)} on isobaric levels",
            'units': da.attrs.get('units', ''),
        })
        return out.rename(f'{da.name}_isobaric')
