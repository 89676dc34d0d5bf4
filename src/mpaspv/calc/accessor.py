"""
xarray accessor for MPAS datasets.

This module provides:
- MPASAccessor: Extends xarray.Dataset with mesh operators, Ertel PV and
  surface diagnostics for MPAS output

Usage:
    ds.mpaspv.mesh               # Mesh built from the grid variables
    ds.mpaspv.eta                # Absolute vorticity [s-1]
    ds.mpaspv.pv                 # Ertel PV [PVU]
    ds.mpaspv.dt_bracket()       # Dynamic tropopause bracket
    ds.mpaspv.on_dt('theta')     # Theta on the 2-PVU surface
    ds.mpaspv.on_isobaric('pv')  # PV on isobaric levels
"""

from __future__ import annotations

import warnings
import xarray as xr
from collections.abc import Sequence
from typing import TypedDict

from .dynamics import DynamicsMixin
from .surfaces import SurfaceMixin
from ..mesh import Mesh

__all__ = [
    'MPASAccessor',
]


class ChunkRule(TypedDict):
    """Chunk constraint rule for one diagnostic."""
    dims: tuple[str, ...]
    inputs: tuple[str, ...]
    reason: str


@xr.register_dataset_accessor('mpaspv')
class MPASAccessor(DynamicsMixin, SurfaceMixin):
    """
    xarray accessor for MPAS datasets.

    Provides:
    - Mesh built lazily from MPAS grid variables
    - Dynamics diagnostics via DynamicsMixin
    - DT and isobaric interpolation via SurfaceMixin
    - Chunk validation for diagnostics

    Examples
    --------
    >>> ds.mpaspv.mesh       # Mesh object
    >>> ds.mpaspv.pv         # Ertel potential vorticity
    >>> ds.mpaspv.on_dt('pressure')
    """

    # Diagnostic chunk rules. `dims` must be single-chunk on the listed
    # input variables to avoid dask core-dimension failures.
    CHUNK_RULES: dict[str, ChunkRule] = {
        'wind': {
            'dims': ('nEdges', 'nVertLevels'),
            'inputs': ('u',),
            'reason': 'edge-to-cell reconstruction needs the whole mesh',
        },
        'pv': {
            'dims': ('nCells', 'nEdges', 'nVertLevels'),
            'inputs': ('u', 'theta', 'rho', 'rho_zz', 'zz'),
            'reason': 'horizontal operators and vertical derivative use core dimensions',
        },
    }

    def __init__(self, xarray_obj: xr.Dataset) -> None:
        self._ds = xarray_obj
        self._mesh: Mesh | None = None

    @property
    def mesh(self) -> Mesh:
        """Lazily built Mesh from the Dataset's grid variables."""
        if self._mesh is None:
            self._mesh = Mesh.from_dataset(self._ds)
        return self._mesh

    def validate_chunks(
        self,
        diagnostics: str | Sequence[str],
        mode: str = 'raise',
    ) -> bool:
        """
        Validate chunk layout for one or more diagnostics.

        Parameters
        ----------
        diagnostics : str or sequence[str]
            Diagnostic name(s), e.g. ``'pv'`` or ``['wind', 'pv']``.
        mode : {'raise', 'warn', 'ignore'}, optional
            - ``'raise'``: raise ValueError on violations (default)
            - ``'warn'``: emit warnings and continue
            - ``'ignore'``: skip violations

        Returns
        -------
        bool
            True when validation completes (including warn/ignore modes).
        """
        names = [diagnostics] if isinstance(diagnostics, str) else list(diagnostics)

        for name in names:
            self._validate_chunks(name, mode=mode)

        return True

    def _validate_chunks(
        self,
        diagnostic: str,
        mode: str = 'raise',
    ) -> None:
        """
        Internal chunk validator used by diagnostics with core-dim constraints.
        """
        if mode not in {'raise', 'warn', 'ignore'}:
            raise ValueError(
                f"Invalid mode='{mode}'. Expected one of: 'raise', 'warn', 'ignore'."
            )

        rule = self.CHUNK_RULES.get(diagnostic)
        if rule is None:
            valid = ', '.join(sorted(self.CHUNK_RULES))
            raise ValueError(
                f"Unknown diagnostic '{diagnostic}'. Available: {valid}"
            )

        violations: list[tuple[str, str, tuple[int, ...]]] = []

        for var_name in rule['inputs']:
            if var_name not in self._ds:
                continue

            da = self._ds[var_name]
            if da.chunks is None:
                continue

            chunksizes = dict(da.chunksizes)
            for dim in rule['dims']:
                chunks = tuple(chunksizes.get(dim, ()))
                if len(chunks) > 1:
                    violations.append((var_name, dim, chunks))

        if not violations or mode == 'ignore':
            return

        suggested = {dim: -1 for _, dim, _ in violations}
        detail = ', '.join(
            f"{name}.{dim}={chunks}" for name, dim, chunks in violations
        )
        message = (
            f"Chunk validation failed for diagnostic '{diagnostic}' ({rule['reason']}). "
            f"Violations: {detail}. "
            f"Suggested chunks: {suggested}."
        )

        if mode == 'warn':
            warnings.warn(message, stacklevel=3)
            return

        raise ValueError(message)
