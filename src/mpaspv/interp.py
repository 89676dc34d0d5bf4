"""
Interpolation onto the dynamic tropopause and isobaric surfaces.

A surface is described per column by a ``Bracket``: the lower of the two
model levels enclosing it and the weight of the upper one. Columns without
a bracket carry level ``-1`` and receive the fill value.
"""

from __future__ import annotations

import logging
import numpy as np
from typing import Iterable, NamedTuple, Sequence

from .budget import AccumulatorSet, BudgetTerms, TendencyCategory
from .calc.constants import MISSING_VALUE
from .numerics import first_true_index, interpolate_bracket

logger = logging.getLogger(__name__)

__all__ = [
    'Bracket',
    'interpolate',
    'isobaric_bracket',
    'isobaric_brackets',
    'interpolate_isobaric',
    'IsobaricAccumulators',
]


class Bracket(NamedTuple):
    """Lower bracketing level (-1 if missing) and upper-level weight."""
    level: np.ndarray
    weight: np.ndarray

    @property
    def valid(self) -> np.ndarray:
        return np.asarray(self.level) >= 0


def interpolate(field, bracket: Bracket, fill_value: float = MISSING_VALUE) -> np.ndarray:
    """
    Sample a field on the surface described by *bracket*.

    Parameters
    ----------
    field : array_like, shape (..., nVertLevels)
    bracket : Bracket
        Arrays of shape (...) for one surface, or (..., nSurfaces) for
        several surfaces at once.
    fill_value : float

    Returns
    -------
    np.ndarray
        Shape of ``bracket.level``.
    """
    field = np.asarray(field, dtype=np.float64)
    level = np.asarray(bracket.level)
    weight = np.asarray(bracket.weight, dtype=np.float64)

    if level.ndim == field.ndim - 1:
        return interpolate_bracket(field, level, weight, fill_value)
    if level.ndim == field.ndim:
        return np.stack([
            interpolate_bracket(field, level[..., i], weight[..., i], fill_value)
            for i in range(level.shape[-1])
        ], axis=-1)
    raise ValueError(
        f"Bracket of shape {level.shape} does not match field of shape {field.shape}."
    )


def isobaric_bracket(pressure, p_target: float) -> Bracket:
    """
    Bracket of one pressure level, linear in log-pressure.

    Parameters
    ----------
    pressure : array_like, shape (..., nVertLevels)
        Pressure decreasing with level index [Pa]
    p_target : float
        Target pressure [Pa]

    Returns
    -------
    Bracket
        Missing where *p_target* lies outside the column.
    """
    p = np.asarray(pressure, dtype=np.float64)
    if p_target <= 0.0:
        raise ValueError(f"Target pressure must be positive, got {p_target}.")

    straddles = (p[..., :-1] >= p_target) & (p[..., 1:] <= p_target)
    level = first_true_index(straddles)
    found = level >= 0

    k = np.where(found, level, 0)[..., np.newaxis]
    log_lower = np.log(np.take_along_axis(p, k, axis=-1)[..., 0])
    log_upper = np.log(np.take_along_axis(p, k + 1, axis=-1)[..., 0])
    span = log_upper - log_lower
    with np.errstate(divide='ignore', invalid='ignore'):
        weight = np.where(span != 0.0, (np.log(p_target) - log_lower) / span, 0.0)
    return Bracket(level, np.where(found, weight, np.nan))


def isobaric_brackets(pressure, levels: Sequence[float]) -> Bracket:
    """Brackets of several pressure levels stacked on a trailing axis."""
    brackets = [isobaric_bracket(pressure, p_target) for p_target in levels]
    bracket = Bracket(
        np.stack([b.level for b in brackets], axis=-1),
        np.stack([b.weight for b in brackets], axis=-1),
    )
    n_missing = int(np.count_nonzero(~bracket.valid))
    if n_missing:
        logger.debug(
            f"{n_missing} column/level points outside the pressure range of "
            f"{len(levels)} isobaric levels"
        )
    return bracket


def interpolate_isobaric(
    field,
    pressure,
    levels: Sequence[float],
    fill_value: float = MISSING_VALUE,
) -> np.ndarray:
    """
    Sample a field on isobaric levels.

    Returns
    -------
    np.ndarray, shape (..., len(levels))
    """
    return interpolate(field, isobaric_brackets(pressure, levels), fill_value)


class IsobaricAccumulators(AccumulatorSet):
    """
    Accumulated PV tendencies on isobaric levels.

    Each step the tendencies are interpolated with that step's pressure;
    points where a level is out of range add nothing.

    Parameters
    ----------
    n_cells : int
    levels : sequence of float
        Isobaric levels [Pa].
    categories : iterable of TendencyCategory
    interval : float, optional
        Shared reset interval [s].
    """

    def __init__(
        self,
        n_cells: int,
        levels: Sequence[float],
        categories: Iterable[TendencyCategory],
        interval: float | None = None,
    ) -> None:
        self.levels = tuple(float(p) for p in levels)
        super().__init__((n_cells, len(self.levels)), categories, interval)

    def add(self, terms: BudgetTerms, dt: float, bracket: Bracket | None = None) -> None:
        """
        Interpolate and add every tracked category.

        Parameters
        ----------
        terms : BudgetTerms
        dt : float
        bracket : Bracket
            Isobaric brackets from ``isobaric_brackets`` for this step.
        """
        if bracket is None:
            raise ValueError("Isobaric accumulation needs the step's isobaric brackets.")
        valid = bracket.valid
        for category, acc in self.accumulators.items():
            if category not in terms:
                raise ValueError(
                    f"No tendency computed for accumulated category '{category.value}'."
                )
            acc.add(interpolate(terms[category], bracket, fill_value=0.0), dt, where=valid)
