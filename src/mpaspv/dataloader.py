"""
MPAS dataset loading utilities.

This module provides the MPASDataLoader class for loading MPAS history
output lazily with dask, merged with the grid variables the ``ds.mpaspv``
accessor needs to build the mesh.
"""

from __future__ import annotations

import logging
import numpy as np
import pandas as pd
import xarray as xr
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

__all__ = [
    'MPASDataLoader',
]


class MPASDataLoader:
    """
    MPAS history loader with grid merging.

    Parameters
    ----------
    files : str, Path or sequence of them
        History files, or a glob pattern relative to the current directory.
    grid_file : str or Path, optional
        Grid/init file holding the mesh variables. When omitted they are
        expected in the history files.
    variables : list[str], optional
        Data variables to keep (grid variables are always kept).
    times : int, slice or sequence of int, optional
        Time indices to select after concatenation.
    chunks : dict[str, int], optional
        Dask chunk sizes. Defaults to DEFAULT_CHUNKS.
    """

    # One time per chunk; horizontal and vertical dims whole for the operators
    DEFAULT_CHUNKS: dict[str, int] = {
        'Time': 1,
        'nCells': -1,
        'nEdges': -1,
        'nVertices': -1,
        'nVertLevels': -1,
    }

    GRID_VARIABLES: tuple[str, ...] = (
        'latCell', 'lonCell', 'xCell', 'yCell', 'zCell',
        'latEdge', 'lonEdge', 'xEdge', 'yEdge', 'zEdge',
        'xVertex', 'yVertex', 'zVertex',
        'nEdgesOnCell', 'edgesOnCell', 'cellsOnEdge', 'cellsOnVertex',
        'edgesOnVertex', 'verticesOnEdge',
        'dcEdge', 'dvEdge', 'areaCell', 'areaTriangle', 'kiteAreasOnVertex',
        'angleEdge', 'edgeNormalVectors', 'fCell', 'zgrid', 'coeffs_reconstruct',
    )

    def __init__(
        self,
        files: str | Path | Sequence[str | Path],
        grid_file: str | Path | None = None,
        variables: list[str] | None = None,
        times: int | slice | Sequence[int] | None = None,
        chunks: dict[str, int] | None = None,
    ) -> None:
        self.files = self._resolve_files(files)
        self.grid_file = Path(grid_file) if grid_file is not None else None
        self.variables = variables
        self.chunks = chunks if chunks is not None else self.DEFAULT_CHUNKS

        self.ds = self._load_dataset(times)

    def __repr__(self) -> str:
        """Return string representation of the MPASDataLoader."""
        return (
            f"MPASDataLoader(files={len(self.files)}, "
            f"times={self.ds.sizes.get('Time', 0)})"
        )

    @staticmethod
    def _resolve_files(files: str | Path | Sequence[str | Path]) -> list[Path]:
        """Expand a glob pattern or normalize a list of paths."""
        if isinstance(files, (str, Path)):
            pattern = Path(files)
            if pattern.exists():
                paths = [pattern]
            else:
                paths = sorted(pattern.parent.glob(pattern.name))
        else:
            paths = [Path(f) for f in files]

        missing = [p for p in paths if not p.exists()]
        if missing:
            raise FileNotFoundError(f"History files not found: {missing}")
        if not paths:
            raise FileNotFoundError(f"No history files match {files!r}")
        return paths

    # =========================================================================
    # Dataset Loading Pipeline
    # =========================================================================

    def _load_dataset(self, times: int | slice | Sequence[int] | None) -> xr.Dataset:
        """
        Open history files, merge grid variables and assign time.
        """
        ds = self._open_history_files()
        ds = self._select_times(ds, times)
        ds = self._merge_grid(ds)
        ds = self._assign_time_coordinate(ds)
        return ds

    def _open_history_files(self) -> xr.Dataset:
        """Open and concatenate history files along Time."""
        ds = xr.open_mfdataset(
            [str(p) for p in self.files],
            chunks=self.chunks,
            combine='nested',
            concat_dim='Time',
            parallel=True,
            coords='minimal',
            data_vars='minimal',
            compat='override',
        )
        if self.variables is not None:
            keep = [v for v in self.variables if v in ds]
            absent = sorted(set(self.variables) - set(keep))
            if absent:
                logger.warning(f"Variables not found in history files: {absent}")
            keep += [v for v in self.GRID_VARIABLES if v in ds] + [
                v for v in ('xtime',) if v in ds
            ]
            ds = ds[keep]
        return ds

    def _select_times(
        self,
        ds: xr.Dataset,
        times: int | slice | Sequence[int] | None,
    ) -> xr.Dataset:
        """Select time indices; an int keeps the Time dimension."""
        if times is None:
            return ds
        if isinstance(times, int):
            times = [times]
        return ds.isel(Time=times)

    def _merge_grid(self, ds: xr.Dataset) -> xr.Dataset:
        """Attach grid variables, dropping Time from them."""
        if self.grid_file is not None:
            if not self.grid_file.exists():
                raise FileNotFoundError(f"Grid file not found: {self.grid_file}")
            with xr.open_dataset(self.grid_file) as grid:
                names = [v for v in self.GRID_VARIABLES if v in grid]
                grid_vars = grid[names].load()
                attrs = dict(grid.attrs)
        else:
            names = [v for v in self.GRID_VARIABLES if v in ds]
            grid_vars = ds[names]
            attrs = ds.attrs

        if 'Time' in grid_vars.dims:
            grid_vars = grid_vars.isel(Time=0, drop=True)

        ds = ds.drop_vars([v for v in names if v in ds])
        ds = xr.merge([ds, grid_vars.load()], compat='override', join='override')
        ds.attrs['on_a_sphere'] = attrs.get('on_a_sphere', 'NO')
        if 'sphere_radius' in attrs:
            ds.attrs['sphere_radius'] = attrs['sphere_radius']
        return ds

    def _assign_time_coordinate(self, ds: xr.Dataset) -> xr.Dataset:
        """Decode MPAS ``xtime`` strings into a datetime coordinate."""
        if 'xtime' not in ds:
            logger.info("No xtime in history files; Time left as an index dimension.")
            return ds

        raw = np.atleast_1d(ds['xtime'].load().values)
        if raw.dtype.kind == 'S' and raw.ndim > 1:
            stamps = [b''.join(row).decode().strip() for row in raw]
        else:
            stamps = [
                (s.decode() if isinstance(s, bytes) else str(s)).strip() for s in raw
            ]
        time = pd.to_datetime(stamps, format='%Y-%m-%d_%H:%M:%S')

        ds = ds.drop_vars('xtime').assign_coords(Time=('Time', time))
        ds.Time.attrs.update({
            'long_name': 'model valid time',
            'axis': 'T',
        })
        return ds
