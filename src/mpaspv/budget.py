"""
PV tendency budget.

This module splits the step change of Ertel PV into per-process terms and
accumulates them over time:

- ``TendencyCategory``: closed set of budget categories
- ``TIME_LEVELS``: which time level feeds each PV ingredient per category
- ``TendencyInputs``: decoupled per-process momentum and theta tendencies
- ``TendencyBudget``: evaluates the enabled terms for one step
- ``Accumulator`` / ``AccumulatorSet``: running sums of tendency * dt
- ``closure_table``: domain summary of the budget residual

Each term is one of three PVU s-1 contractions:

- heating:  eta . grad(theta_dot) / rho
- friction: grad(theta) . curl(F) / rho
- density:  -PV * rho_dot / rho
"""

from __future__ import annotations

import logging
import numpy as np
import pandas as pd
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, NamedTuple, Sequence

from ._utils import check_leading_dim
from .calc.formulas import decouple_momentum_tendency, decouple_theta_tendency
from .calc.pv import KinematicState, compute_pv, relative_vorticity, theta_gradient
from .mesh import Mesh
from .operators import edge_average
from .state import SnapshotError

logger = logging.getLogger(__name__)

__all__ = [
    'TendencyCategory',
    'TimeLevels',
    'TIME_LEVELS',
    'CLOSURE_CATEGORIES',
    'MICROPHYSICS_PROCESSES',
    'heating_term',
    'friction_term',
    'density_term',
    'TendencyInputs',
    'BudgetTerms',
    'TendencyBudget',
    'Accumulator',
    'AccumulatorSet',
    'closure_table',
]


# =============================================================================
# Categories and time levels
# =============================================================================

class TendencyCategory(str, Enum):
    """Budget categories; values double as output variable suffixes."""
    DYNAMICS = 'dynamics'
    DIABATIC = 'diabatic'
    FRICTIONAL_MIXING = 'frictional_mixing'
    FRICTIONAL_PBL_GWD = 'frictional_pbl_gwd'
    FRICTIONAL_CUMULUS = 'frictional_cumulus'
    MP_CONDENSATION = 'microphysics_condensation'
    MP_EVAPORATION_RAIN = 'microphysics_evaporation_rain'
    MP_DEPOSITION_SUBLIMATION = 'microphysics_deposition_sublimation'
    MP_MELTING = 'microphysics_melting'
    MP_FREEZING = 'microphysics_freezing'

    @property
    def group(self) -> str | None:
        """Accumulation group, ``'frictional'``, ``'microphysics'`` or None."""
        prefix = self.value.split('_', 1)[0]
        return prefix if prefix in ('frictional', 'microphysics') else None


T = 't'
T_NEXT = 't+dt'


class TimeLevels(NamedTuple):
    """Time level of each PV ingredient used by a category."""
    abs_vorticity: str
    grad_theta: str
    rho: str


TIME_LEVELS: dict[TendencyCategory, TimeLevels] = {
    TendencyCategory.DYNAMICS: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.DIABATIC: TimeLevels(T, T_NEXT, T_NEXT),
    TendencyCategory.FRICTIONAL_MIXING: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.FRICTIONAL_PBL_GWD: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.FRICTIONAL_CUMULUS: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.MP_CONDENSATION: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.MP_EVAPORATION_RAIN: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.MP_DEPOSITION_SUBLIMATION: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.MP_MELTING: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
    TendencyCategory.MP_FREEZING: TimeLevels(T_NEXT, T_NEXT, T_NEXT),
}

# Terms whose sum is the Eulerian PV rate; microphysics splits the diabatic term
CLOSURE_CATEGORIES: tuple[TendencyCategory, ...] = (
    TendencyCategory.DYNAMICS,
    TendencyCategory.DIABATIC,
    TendencyCategory.FRICTIONAL_MIXING,
    TendencyCategory.FRICTIONAL_PBL_GWD,
    TendencyCategory.FRICTIONAL_CUMULUS,
)

MICROPHYSICS_PROCESSES: dict[str, TendencyCategory] = {
    'condensation': TendencyCategory.MP_CONDENSATION,
    'evaporation_rain': TendencyCategory.MP_EVAPORATION_RAIN,
    'deposition_sublimation': TendencyCategory.MP_DEPOSITION_SUBLIMATION,
    'melting': TendencyCategory.MP_MELTING,
    'freezing': TendencyCategory.MP_FREEZING,
}


# =============================================================================
# Term formulas
# =============================================================================

def heating_term(abs_vorticity, grad_theta_dot, rho):
    """PV tendency from a heating gradient, eta . grad(theta_dot) / rho [PVU s-1]."""
    return compute_pv(abs_vorticity, grad_theta_dot, rho)


def friction_term(grad_theta, curl_forcing, rho):
    """PV tendency from a momentum forcing, grad(theta) . curl(F) / rho [PVU s-1]."""
    return compute_pv(curl_forcing, grad_theta, rho)


def density_term(pv, rho_dot, rho):
    """PV tendency from a density change, -PV * rho_dot / rho [PVU s-1]."""
    return -pv * rho_dot / rho


# =============================================================================
# Inputs
# =============================================================================

@dataclass
class TendencyInputs:
    """
    Decoupled tendencies for one step.

    Cell fields have shape (nCells, nVertLevels) and edge fields
    (nEdges, nVertLevels). Only the fields needed by the enabled
    categories must be present.

    Attributes
    ----------
    theta_dyn, u_dyn, rho_dyn
        Dynamical-core tendencies of theta [K s-1], edge-normal wind
        [m s-2] and dry density [kg m-3 s-1].
    theta_diab
        Net physics theta tendency [K s-1].
    u_mix, theta_mix
        Explicit horizontal/vertical mixing momentum tendency and optional
        heat tendency.
    u_pbl_gwd
        PBL plus gravity-wave-drag momentum tendency.
    u_cu
        Cumulus momentum tendency.
    theta_mp
        Per-process microphysics theta tendencies keyed by process name
        (see ``MICROPHYSICS_PROCESSES``).
    theta_mp_net
        Net microphysics theta tendency; defaults to the sum of
        ``theta_mp``.
    """
    theta_dyn: np.ndarray | None = None
    u_dyn: np.ndarray | None = None
    rho_dyn: np.ndarray | None = None
    theta_diab: np.ndarray | None = None
    u_mix: np.ndarray | None = None
    theta_mix: np.ndarray | None = None
    u_pbl_gwd: np.ndarray | None = None
    u_cu: np.ndarray | None = None
    theta_mp: dict[str, np.ndarray] = field(default_factory=dict)
    theta_mp_net: np.ndarray | None = None

    @classmethod
    def from_coupled(
        cls,
        rho_d: np.ndarray,
        rho_edge: np.ndarray | None = None,
        qv: np.ndarray | None = None,
        *,
        mesh: Mesh | None = None,
        tend_rtheta_dyn: np.ndarray | None = None,
        tend_ru_dyn: np.ndarray | None = None,
        tend_rho_dyn: np.ndarray | None = None,
        tend_rtheta_diab: np.ndarray | None = None,
        tend_ru_mix: np.ndarray | None = None,
        tend_rtheta_mix: np.ndarray | None = None,
        tend_ru_pbl_gwd: np.ndarray | None = None,
        tend_ru_cu: np.ndarray | None = None,
        tend_rtheta_mp: Mapping[str, np.ndarray] | None = None,
        tend_rtheta_mp_net: np.ndarray | None = None,
    ) -> 'TendencyInputs':
        """
        Build inputs from host tendencies of rho_d * theta_m and rho_d * u.

        Parameters
        ----------
        rho_d : np.ndarray
            Dry density at cells [kg m-3]
        rho_edge : np.ndarray, optional
            Dry density at edges [kg m-3]. Defaults to the two-cell mean
            of *rho_d*, which needs *mesh*.
        qv : np.ndarray, optional
            Water vapour mixing ratio at cells [kg/kg]
        mesh : Mesh, optional
            Mesh used to average *rho_d* to edges when *rho_edge* is omitted.
        tend_* : np.ndarray, optional
            Coupled tendencies; the dry density tendency passes through.
        """
        if rho_edge is None and any(
            tend is not None
            for tend in (tend_ru_dyn, tend_ru_mix, tend_ru_pbl_gwd, tend_ru_cu)
        ):
            if mesh is None:
                raise ValueError("Momentum tendencies need rho_edge or a mesh to average rho_d.")
            rho_edge = edge_average(mesh, rho_d)

        def theta(tend):
            return None if tend is None else decouple_theta_tendency(tend, rho_d, qv)

        def wind(tend):
            return None if tend is None else decouple_momentum_tendency(tend, rho_edge)

        theta_mp = {
            process: theta(tend) for process, tend in (tend_rtheta_mp or {}).items()
        }
        return cls(
            theta_dyn=theta(tend_rtheta_dyn),
            u_dyn=wind(tend_ru_dyn),
            rho_dyn=tend_rho_dyn,
            theta_diab=theta(tend_rtheta_diab),
            u_mix=wind(tend_ru_mix),
            theta_mix=theta(tend_rtheta_mix),
            u_pbl_gwd=wind(tend_ru_pbl_gwd),
            u_cu=wind(tend_ru_cu),
            theta_mp=theta_mp,
            theta_mp_net=theta(tend_rtheta_mp_net),
        )


def _require(value, name: str, category: TendencyCategory) -> np.ndarray:
    if value is None:
        raise ValueError(
            f"Tendency input '{name}' is required for category '{category.value}'."
        )
    return np.asarray(value, dtype=np.float64)


# =============================================================================
# Budget evaluation
# =============================================================================

@dataclass
class BudgetTerms:
    """PV tendencies of one step [PVU s-1]."""
    terms: dict[TendencyCategory, np.ndarray]
    microphysics_net: np.ndarray | None = None
    microphysics_sum: np.ndarray | None = None

    def __getitem__(self, category: TendencyCategory | str) -> np.ndarray:
        return self.terms[TendencyCategory(category)]

    def __contains__(self, category: object) -> bool:
        try:
            return TendencyCategory(category) in self.terms
        except ValueError:
            return False

    def group(self, name: str) -> np.ndarray | None:
        """Sum of the computed members of group *name*, None if none."""
        members = [term for cat, term in self.terms.items() if cat.group == name]
        if not members:
            return None
        return np.sum(members, axis=0)

    @property
    def closure_sum(self) -> np.ndarray:
        """Sum of the computed closure categories."""
        members = [self.terms[cat] for cat in CLOSURE_CATEGORIES if cat in self.terms]
        if not members:
            raise ValueError("No closure category was computed.")
        return np.sum(members, axis=0)


class TendencyBudget:
    """
    Evaluates the enabled PV tendency categories for one step.

    Parameters
    ----------
    mesh : Mesh
    categories : iterable of TendencyCategory
        Enabled categories, usually ``PVConfig.capabilities``.
    """

    def __init__(self, mesh: Mesh, categories: Iterable[TendencyCategory]) -> None:
        self.mesh = mesh
        self.categories = frozenset(TendencyCategory(c) for c in categories)

    def __repr__(self) -> str:
        names = sorted(c.value for c in self.categories)
        return f"TendencyBudget({names})"

    @staticmethod
    def select(
        category: TendencyCategory,
        current: KinematicState,
        previous: KinematicState | None,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Pick (abs_vorticity, grad_theta, rho) as prescribed by ``TIME_LEVELS``.

        Raises
        ------
        SnapshotError
            If a ``t`` ingredient is requested without a previous state.
        """
        levels = TIME_LEVELS[category]

        def pick(attr: str):
            level = getattr(levels, attr)
            if level == T_NEXT:
                return getattr(current, attr)
            if previous is None:
                raise SnapshotError(
                    f"Category '{category.value}' needs {attr} at time level t, "
                    f"but no beginning-of-step snapshot is available."
                )
            return getattr(previous, attr)

        return pick('abs_vorticity'), pick('grad_theta'), pick('rho')

    def _cell(self, arr: np.ndarray, name: str) -> np.ndarray:
        return check_leading_dim(name, arr, self.mesh.n_cells, 'nCells')

    def _edge(self, arr: np.ndarray, name: str) -> np.ndarray:
        return check_leading_dim(name, arr, self.mesh.n_edges, 'nEdges')

    def _friction(self, category, current, previous, u_tend, name, theta_tend=None):
        eta, grad_theta, rho = self.select(category, current, previous)
        curl = relative_vorticity(self.mesh, self._edge(u_tend, name))
        term = friction_term(grad_theta, curl, rho)
        if theta_tend is not None:
            grad_heat = theta_gradient(self.mesh, self._cell(theta_tend, 'theta_mix'))
            term = term + heating_term(eta, grad_heat, rho)
        return term

    def compute(
        self,
        inputs: TendencyInputs,
        current: KinematicState,
        previous: KinematicState | None = None,
    ) -> BudgetTerms:
        """
        Evaluate every enabled category.

        Parameters
        ----------
        inputs : TendencyInputs
        current : KinematicState
            Ingredients at t+dt.
        previous : KinematicState, optional
            Ingredients at t; required by the diabatic term and the
            microphysics aggregate.

        Returns
        -------
        BudgetTerms
        """
        mesh = self.mesh
        terms: dict[TendencyCategory, np.ndarray] = {}
        C = TendencyCategory

        if C.DYNAMICS in self.categories:
            eta, grad_theta, rho = self.select(C.DYNAMICS, current, previous)
            theta_dot = self._cell(_require(inputs.theta_dyn, 'theta_dyn', C.DYNAMICS), 'theta_dyn')
            u_dot = self._edge(_require(inputs.u_dyn, 'u_dyn', C.DYNAMICS), 'u_dyn')
            rho_dot = self._cell(_require(inputs.rho_dyn, 'rho_dyn', C.DYNAMICS), 'rho_dyn')
            terms[C.DYNAMICS] = (
                heating_term(eta, theta_gradient(mesh, theta_dot), rho)
                + friction_term(grad_theta, relative_vorticity(mesh, u_dot), rho)
                + density_term(compute_pv(eta, grad_theta, rho), rho_dot, rho)
            )

        if C.DIABATIC in self.categories:
            eta, _, rho = self.select(C.DIABATIC, current, previous)
            theta_dot = self._cell(_require(inputs.theta_diab, 'theta_diab', C.DIABATIC), 'theta_diab')
            terms[C.DIABATIC] = heating_term(eta, theta_gradient(mesh, theta_dot), rho)

        if C.FRICTIONAL_MIXING in self.categories:
            terms[C.FRICTIONAL_MIXING] = self._friction(
                C.FRICTIONAL_MIXING, current, previous,
                _require(inputs.u_mix, 'u_mix', C.FRICTIONAL_MIXING), 'u_mix',
                theta_tend=inputs.theta_mix,
            )

        if C.FRICTIONAL_PBL_GWD in self.categories:
            terms[C.FRICTIONAL_PBL_GWD] = self._friction(
                C.FRICTIONAL_PBL_GWD, current, previous,
                _require(inputs.u_pbl_gwd, 'u_pbl_gwd', C.FRICTIONAL_PBL_GWD), 'u_pbl_gwd',
            )

        if C.FRICTIONAL_CUMULUS in self.categories:
            terms[C.FRICTIONAL_CUMULUS] = self._friction(
                C.FRICTIONAL_CUMULUS, current, previous,
                _require(inputs.u_cu, 'u_cu', C.FRICTIONAL_CUMULUS), 'u_cu',
            )

        microphysics_net = microphysics_sum = None
        mp_enabled = [
            (process, cat) for process, cat in MICROPHYSICS_PROCESSES.items()
            if cat in self.categories
        ]
        if mp_enabled:
            for process, cat in mp_enabled:
                eta, _, rho = self.select(cat, current, previous)
                theta_dot = _require(inputs.theta_mp.get(process), f'theta_mp[{process!r}]', cat)
                terms[cat] = heating_term(
                    eta, theta_gradient(mesh, self._cell(theta_dot, process)), rho
                )
            microphysics_sum = np.sum([terms[cat] for _, cat in mp_enabled], axis=0)

            net = inputs.theta_mp_net
            if net is None:
                net = np.sum([inputs.theta_mp[process] for process, _ in mp_enabled], axis=0)
            # Aggregate follows the diabatic time levels
            eta, _, rho = self.select(C.DIABATIC, current, previous)
            microphysics_net = heating_term(
                eta, theta_gradient(mesh, self._cell(net, 'theta_mp_net')), rho
            )

        return BudgetTerms(
            terms=terms,
            microphysics_net=microphysics_net,
            microphysics_sum=microphysics_sum,
        )


# =============================================================================
# Accumulation
# =============================================================================

class Accumulator:
    """
    Running sum of tendency * dt since the last reset.

    Parameters
    ----------
    shape : tuple of int
        Field shape, e.g. (nCells, nVertLevels).
    name : str
    """

    def __init__(self, shape: Sequence[int], name: str = '') -> None:
        self.name = name
        self._value = np.zeros(tuple(shape), dtype=np.float64)
        self.elapsed = 0.0

    def __repr__(self) -> str:
        return f"Accumulator('{self.name}', shape={self._value.shape}, elapsed={self.elapsed})"

    @property
    def shape(self) -> tuple[int, ...]:
        return self._value.shape

    @property
    def value(self) -> np.ndarray:
        """Read-only view of the accumulated field."""
        view = self._value.view()
        view.setflags(write=False)
        return view

    def add(self, tendency: np.ndarray, dt: float, where: np.ndarray | None = None) -> None:
        """
        Add ``tendency * dt``; only where *where* is True if given.
        """
        tendency = np.asarray(tendency, dtype=np.float64)
        if tendency.shape != self._value.shape:
            raise ValueError(
                f"Accumulator '{self.name}' has shape {self._value.shape}, "
                f"got tendency of shape {tendency.shape}."
            )
        if dt <= 0.0:
            raise ValueError(f"Time step must be positive, got dt={dt}.")
        if where is None:
            self._value += tendency * dt
        else:
            np.add(self._value, tendency * dt, out=self._value, where=where)
        self.elapsed += dt

    def reset(self) -> None:
        self._value[...] = 0.0
        self.elapsed = 0.0

    def restore(self, value: np.ndarray, elapsed: float) -> None:
        """Load a value persisted by a previous run."""
        value = np.asarray(value, dtype=np.float64)
        if value.shape != self._value.shape:
            raise ValueError(
                f"Restart value for '{self.name}' has shape {value.shape}, "
                f"expected {self._value.shape}."
            )
        self._value[...] = value
        self.elapsed = float(elapsed)


class AccumulatorSet:
    """
    Accumulators for a set of categories sharing one reset schedule.

    Group sums (``'frictional'``, ``'microphysics'``) are derived from the
    members, so they obey the same add-only discipline.

    Parameters
    ----------
    shape : tuple of int
    categories : iterable of TendencyCategory
    interval : float, optional
        Accumulation interval [s]; ``maybe_reset`` zeroes all accumulators
        once this much time has been accumulated. None never resets.
    """

    GROUPS: tuple[str, ...] = ('frictional', 'microphysics')

    def __init__(
        self,
        shape: Sequence[int],
        categories: Iterable[TendencyCategory],
        interval: float | None = None,
    ) -> None:
        self.shape = tuple(shape)
        self.interval = interval
        self.accumulators: dict[TendencyCategory, Accumulator] = {
            TendencyCategory(cat): Accumulator(self.shape, name=TendencyCategory(cat).value)
            for cat in categories
        }

    def __repr__(self) -> str:
        return (
            f"AccumulatorSet({[c.value for c in self.accumulators]}, "
            f"elapsed={self.elapsed}, interval={self.interval})"
        )

    def __getitem__(self, category: TendencyCategory | str) -> Accumulator:
        return self.accumulators[TendencyCategory(category)]

    def __iter__(self):
        return iter(self.accumulators.items())

    @property
    def elapsed(self) -> float:
        if not self.accumulators:
            return 0.0
        return max(acc.elapsed for acc in self.accumulators.values())

    def group(self, name: str) -> np.ndarray | None:
        """Summed value of the members of group *name*, None if none."""
        members = [acc.value for cat, acc in self.accumulators.items() if cat.group == name]
        if not members:
            return None
        return np.sum(members, axis=0)

    def add(self, terms: BudgetTerms, dt: float) -> None:
        """Add every tracked category present in *terms*."""
        for category, acc in self.accumulators.items():
            if category not in terms:
                raise ValueError(
                    f"No tendency computed for accumulated category '{category.value}'."
                )
            acc.add(terms[category], dt)

    def maybe_reset(self) -> bool:
        """Reset all accumulators when the interval has elapsed."""
        if self.interval is None or self.elapsed < self.interval:
            return False
        logger.info(
            f"Resetting {len(self.accumulators)} PV tendency accumulators "
            f"after {self.elapsed:g} s"
        )
        self.reset()
        return True

    def reset(self) -> None:
        for acc in self.accumulators.values():
            acc.reset()


# =============================================================================
# Closure summary
# =============================================================================

def closure_table(
    terms: BudgetTerms,
    observed: np.ndarray,
    weights: np.ndarray | None = None,
) -> pd.DataFrame:
    """
    Domain summary of the budget terms against the observed PV rate.

    Parameters
    ----------
    terms : BudgetTerms
    observed : np.ndarray
        (PV(t+dt) - PV(t)) / dt [PVU s-1].
    weights : np.ndarray, optional
        Cell weights (e.g. ``mesh.area_cell``) applied along the first axis.

    Returns
    -------
    pd.DataFrame
        Indexed by term name with columns ``mean`` and ``rms``; rows
        ``closure_sum``, ``observed`` and ``residual`` follow the terms.
    """
    observed = np.asarray(observed, dtype=np.float64)
    if weights is None:
        w = np.ones(observed.shape)
    else:
        w = np.asarray(weights, dtype=np.float64)
        w = np.broadcast_to(w.reshape(w.shape + (1,) * (observed.ndim - w.ndim)), observed.shape)
    w = w / w.sum()

    rows: dict[str, np.ndarray] = {cat.value: term for cat, term in terms.terms.items()}
    if terms.microphysics_net is not None:
        rows['microphysics_net'] = terms.microphysics_net
        rows['microphysics_sum'] = terms.microphysics_sum
    closure = terms.closure_sum
    rows['closure_sum'] = closure
    rows['observed'] = observed
    rows['residual'] = observed - closure

    records = [
        {
            'term': name,
            'mean': float(np.sum(w * values)),
            'rms': float(np.sqrt(np.sum(w * values**2))),
        }
        for name, values in rows.items()
    ]
    return pd.DataFrame.from_records(records).set_index('term')
