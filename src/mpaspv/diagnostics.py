"""
Per-step driver of the PV diagnostics.

``PVDiagnostics`` owns the persistent state of one mesh partition (the
beginning-of-step snapshot, the tendency accumulators and the PV scalar) and
runs the diagnostics in a fixed order each step:

1. ``begin_step``: reset accumulators on schedule, snapshot u/theta/rho/p
2. the host advances the model
3. ``end_step``: PV at t+dt and t, budget terms, accumulation, DT from the
   beginning-of-step PV, interpolation to the DT and isobaric levels,
   snapshot release

Examples
--------
>>> diag = PVDiagnostics(mesh, PVConfig(pv_tend=True))
>>> diag.begin_step(fields)
>>> # ... host advances fields in place ...
>>> ds = diag.end_step(fields, tendencies, dt=60.)
>>> ds['pv_tend_diabatic']
"""

from __future__ import annotations

import logging
import numpy as np
import xarray as xr
from typing import Mapping

from .budget import AccumulatorSet, BudgetTerms, TendencyBudget, TendencyInputs
from .calc.formulas import signed_pv
from .calc.pv import KinematicState, kinematic_state
from .config import PVConfig
from .interp import Bracket, IsobaricAccumulators, interpolate, isobaric_brackets
from .mesh import Mesh
from .operators import reconstruct_cell_vector, to_local
from .state import DEFAULT_TRACKED, SnapshotError, TimeLevelState
from .tropopause import locate_dt

logger = logging.getLogger(__name__)

__all__ = [
    'PVDiagnostics',
]

CELL_DIMS = ('nCells', 'nVertLevels')
ISOBARIC_DIMS = ('nCells', 'nIsoLevels')


def _variable(values, dims, long_name: str, units: str, **attrs) -> xr.DataArray:
    da = xr.DataArray(np.array(values), dims=dims)
    da.attrs.update({'long_name': long_name, 'units': units, **attrs})
    return da


class PVDiagnostics:
    """
    PV diagnostics of one mesh partition.

    Parameters
    ----------
    mesh : Mesh
    config : PVConfig, optional
        Defaults to ``PVConfig()`` (PV and DT only).
    """

    def __init__(self, mesh: Mesh, config: PVConfig | None = None) -> None:
        self.mesh = mesh
        self.config = config if config is not None else PVConfig()
        categories = self.config.capabilities

        self.budget = TendencyBudget(mesh, categories)
        self.accumulators = AccumulatorSet(
            (mesh.n_cells, mesh.n_levels),
            categories,
            interval=self.config.accumulation_interval,
        )
        self.isobaric_accumulators: IsobaricAccumulators | None = None
        if self.config.pv_isobaric:
            self.isobaric_accumulators = IsobaricAccumulators(
                mesh.n_cells,
                self.config.isobaric_levels,
                categories,
                interval=self.config.accumulation_interval,
            )

        self.state: TimeLevelState | None = None
        self.pv_scalar: np.ndarray | None = None
        logger.info(
            f"PV diagnostics on {mesh!r} with {len(categories)} tendency categories"
        )

    def __repr__(self) -> str:
        return f"PVDiagnostics({self.mesh!r}, {self.config!r})"

    # =========================================================================
    # Step
    # =========================================================================

    def begin_step(self, fields: Mapping[str, np.ndarray]) -> None:
        """
        Start a step: apply the reset schedule and snapshot the live fields.

        Parameters
        ----------
        fields : Mapping[str, np.ndarray]
            Live fields ``u`` (nEdges, nVertLevels), ``theta``, ``rho`` and
            ``pressure`` (nCells, nVertLevels).
        """
        if self.state is None:
            self.state = TimeLevelState(fields, DEFAULT_TRACKED)
        else:
            self.state.update(fields)

        self.accumulators.maybe_reset()
        if self.isobaric_accumulators is not None:
            self.isobaric_accumulators.maybe_reset()

        self.state.snapshot()

    def end_step(
        self,
        fields: Mapping[str, np.ndarray],
        tendencies: TendencyInputs | None,
        dt: float,
    ) -> xr.Dataset:
        """
        Finish a step and return its diagnostics.

        Parameters
        ----------
        fields : Mapping[str, np.ndarray]
            Live fields at t+dt.
        tendencies : TendencyInputs or None
            Step tendencies; required when ``pv_tend`` is enabled.
        dt : float
            Step length [s].

        Returns
        -------
        xr.Dataset

        Raises
        ------
        SnapshotError
            If ``begin_step`` was not called for this step.
        """
        if self.state is None or not self.state.has_snapshot:
            raise SnapshotError("end_step() called without begin_step().")

        state = self.state
        try:
            if dt <= 0.0:
                raise ValueError(f"Time step must be positive, got dt={dt}.")
            if self.config.pv_tend and tendencies is None:
                raise ValueError("Tendency inputs are required when pv_tend is enabled.")
            state.update(fields)
            mesh = self.mesh

            current = kinematic_state(
                mesh, state.current('u'), state.current('theta'), state.current('rho')
            )
            previous = kinematic_state(
                mesh, state.previous('u'), state.previous('theta'), state.previous('rho')
            )

            if self.config.pv_scalar and self.pv_scalar is None:
                self.pv_scalar = previous.pv.copy()

            out = self._pv_variables(current, previous, dt)

            terms: BudgetTerms | None = None
            if self.config.pv_tend:
                terms = self.budget.compute(tendencies, current, previous)
                self.accumulators.add(terms, dt)
                out.update(self._budget_variables(terms))

            if self.config.pv_diag:
                bracket = locate_dt(
                    signed_pv(previous.pv, mesh.f_cell), self.config.dt_threshold
                )
                out.update(self._dt_variables(bracket, state, terms))

            if self.config.pv_isobaric:
                bracket = isobaric_brackets(
                    state.current('pressure'), self.config.isobaric_levels
                )
                self.isobaric_accumulators.add(terms, dt, bracket=bracket)
                out.update(self._isobaric_variables(bracket, current, terms))
        finally:
            state.release()

        ds = xr.Dataset(out)
        if self.config.pv_isobaric:
            ds = ds.assign_coords(
                isobaric_level=_variable(
                    self.config.isobaric_levels, ('nIsoLevels',), 'isobaric level', 'Pa'
                )
            )
        ds.attrs['dt'] = float(dt)
        ds.attrs['accumulated_time'] = self.accumulators.elapsed
        return ds

    # =========================================================================
    # Output assembly
    # =========================================================================

    def _pv_variables(
        self,
        current: KinematicState,
        previous: KinematicState,
        dt: float,
    ) -> dict[str, xr.DataArray]:
        out = {
            'pv': _variable(current.pv, CELL_DIMS, 'Ertel potential vorticity', 'PVU'),
        }
        if self.config.pv_tend:
            out['pv_rate'] = _variable(
                (current.pv - previous.pv) / dt, CELL_DIMS,
                'Eulerian PV rate of change over the step', 'PVU s-1',
            )
        if self.pv_scalar is not None:
            out['pv_scalar'] = _variable(
                self.pv_scalar, CELL_DIMS, 'PV scalar tracer', 'PVU'
            )
        return out

    def _budget_variables(self, terms: BudgetTerms) -> dict[str, xr.DataArray]:
        out: dict[str, xr.DataArray] = {}
        for category, term in terms.terms.items():
            label = category.value.replace('_', ' ')
            out[f'pv_tend_{category.value}'] = _variable(
                term, CELL_DIMS, f'PV tendency from {label}', 'PVU s-1'
            )
            out[f'pv_acc_{category.value}'] = _variable(
                self.accumulators[category].value, CELL_DIMS,
                f'accumulated PV tendency from {label}', 'PVU',
            )
        for group in AccumulatorSet.GROUPS:
            total = terms.group(group)
            if total is None:
                continue
            out[f'pv_tend_{group}'] = _variable(
                total, CELL_DIMS, f'PV tendency from {group} processes', 'PVU s-1'
            )
            out[f'pv_acc_{group}'] = _variable(
                self.accumulators.group(group), CELL_DIMS,
                f'accumulated PV tendency from {group} processes', 'PVU',
            )
        if terms.microphysics_net is not None:
            out['pv_tend_microphysics_net'] = _variable(
                terms.microphysics_net, CELL_DIMS,
                'PV tendency from net microphysics heating', 'PVU s-1',
            )
        return out

    def _dt_variables(
        self,
        bracket: Bracket,
        state: TimeLevelState,
        terms: BudgetTerms | None,
    ) -> dict[str, xr.DataArray]:
        fill = self.config.fill_value
        wind = to_local(self.mesh, reconstruct_cell_vector(self.mesh, state.previous('u')))

        def on_dt(values, name, long_name, units):
            out[name] = _variable(
                interpolate(values, bracket, fill), ('nCells',),
                long_name, units, missing_value=fill,
            )

        out = {
            'dt_level': _variable(
                np.asarray(bracket.level, dtype=np.int32), ('nCells',),
                'lower model level bracketing the dynamic tropopause', '1',
                missing_value=-1,
            ),
            'dt_weight': _variable(
                bracket.weight, ('nCells',),
                'weight of the upper bracketing level at the dynamic tropopause', '1',
            ),
        }
        on_dt(state.previous('theta'), 'theta_dt', 'potential temperature on the DT', 'K')
        on_dt(state.previous('pressure'), 'pressure_dt', 'pressure on the DT', 'Pa')
        on_dt(wind[..., 0], 'uzonal_dt', 'zonal wind on the DT', 'm s-1')
        on_dt(wind[..., 1], 'umeridional_dt', 'meridional wind on the DT', 'm s-1')

        if terms is not None:
            for category, term in terms.terms.items():
                label = category.value.replace('_', ' ')
                on_dt(term, f'pv_tend_{category.value}_dt',
                      f'PV tendency from {label} on the DT', 'PVU s-1')
                on_dt(self.accumulators[category].value, f'pv_acc_{category.value}_dt',
                      f'accumulated PV tendency from {label} on the DT', 'PVU')
        return out

    def _isobaric_variables(
        self,
        bracket: Bracket,
        current: KinematicState,
        terms: BudgetTerms,
    ) -> dict[str, xr.DataArray]:
        fill = self.config.fill_value
        attrs = {'missing_value': fill}
        out = {
            'pv_isobaric': _variable(
                interpolate(current.pv, bracket, fill), ISOBARIC_DIMS,
                'Ertel potential vorticity on isobaric levels', 'PVU', **attrs,
            ),
        }
        for category, acc in self.isobaric_accumulators:
            label = category.value.replace('_', ' ')
            out[f'pv_tend_{category.value}_isobaric'] = _variable(
                interpolate(terms[category], bracket, fill), ISOBARIC_DIMS,
                f'PV tendency from {label} on isobaric levels', 'PVU s-1', **attrs,
            )
            out[f'pv_acc_{category.value}_isobaric'] = _variable(
                acc.value, ISOBARIC_DIMS,
                f'accumulated PV tendency from {label} on isobaric levels', 'PVU',
            )
        return out

    # =========================================================================
    # Restart
    # =========================================================================

    def restart_dataset(self) -> xr.Dataset:
        """
        Persistent state: accumulators with their elapsed time and the PV
        scalar. The snapshot is never included.
        """
        data_vars: dict[str, xr.DataArray] = {}
        for category, acc in self.accumulators:
            data_vars[f'pv_acc_{category.value}'] = _variable(
                acc.value, CELL_DIMS, f'accumulated PV tendency from {category.value}',
                'PVU', elapsed=acc.elapsed,
            )
        if self.isobaric_accumulators is not None:
            for category, acc in self.isobaric_accumulators:
                data_vars[f'pv_acc_{category.value}_isobaric'] = _variable(
                    acc.value, ISOBARIC_DIMS,
                    f'accumulated isobaric PV tendency from {category.value}',
                    'PVU', elapsed=acc.elapsed,
                )
        if self.pv_scalar is not None:
            data_vars['pv_scalar'] = _variable(
                self.pv_scalar, CELL_DIMS, 'PV scalar tracer', 'PVU'
            )
        return xr.Dataset(data_vars)

    def restore(self, ds: xr.Dataset) -> None:
        """
        Restore accumulators and the PV scalar from ``restart_dataset()``.

        Any held snapshot is dropped; the next ``begin_step`` takes a new one.
        """
        def load(acc_set: AccumulatorSet, suffix: str) -> None:
            for category, acc in acc_set:
                name = f'pv_acc_{category.value}{suffix}'
                if name not in ds:
                    raise KeyError(f"Restart variable '{name}' not found in dataset.")
                acc.restore(ds[name].values, ds[name].attrs.get('elapsed', 0.0))

        load(self.accumulators, '')
        if self.isobaric_accumulators is not None:
            load(self.isobaric_accumulators, '_isobaric')

        if self.config.pv_scalar:
            if 'pv_scalar' not in ds:
                raise KeyError("Restart variable 'pv_scalar' not found in dataset.")
            self.set_pv_scalar(ds['pv_scalar'].values)

        self.state = None
        logger.info(
            f"Restored PV diagnostics state (accumulated {self.accumulators.elapsed:g} s)"
        )

    def set_pv_scalar(self, values: np.ndarray) -> None:
        """Replace the PV scalar after the host has transported it."""
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.mesh.n_cells, self.mesh.n_levels):
            raise ValueError(
                f"PV scalar must have shape {(self.mesh.n_cells, self.mesh.n_levels)}, "
                f"got {values.shape}."
            )
        self.pv_scalar = values.copy()
