"""
Dynamic tropopause (DT) detection.

The DT is the highest level, scanning down from the model top, where
hemisphere-signed PV rises through the threshold (2 PVU by default) going
upward. Level index ``k`` grows upward; the pair (k, k+1) brackets the DT
when signed PV is below the threshold at ``k`` and at or above it at
``k + 1``. Pairs crossing the other way (stratospheric air beneath
tropospheric air, as in folds and noisy upper levels) are rejected and the
scan continues downward.

``ColumnScanner`` walks one column as an explicit state machine;
``locate_dt`` applies the same rule to all columns at once.
"""

from __future__ import annotations

import logging
import numpy as np
from enum import Enum

from .calc.constants import DT_THRESHOLD
from .interp import Bracket
from .numerics import last_true_index

logger = logging.getLogger(__name__)

__all__ = [
    'ScanState',
    'ColumnScanner',
    'is_dt_bracket',
    'locate_dt',
]


class ScanState(Enum):
    SEARCHING = 'searching'
    CANDIDATE = 'candidate'
    REJECTED = 'rejected'
    ACCEPTED = 'accepted'
    MISSING = 'missing'


def is_dt_bracket(lower, upper, threshold: float = DT_THRESHOLD):
    """
    Accept rule for the level pair (k, k+1).

    Parameters
    ----------
    lower, upper : array_like
        Signed PV at levels k and k+1 [PVU]
    threshold : float
        DT threshold [PVU]

    Returns
    -------
    array_like of bool
        True where ``lower < threshold <= upper``. NaN never qualifies.
    """
    return (np.asarray(lower) < threshold) & (np.asarray(upper) >= threshold)


def _bracket_weight(lower, upper, threshold):
    """Weight of level k+1 at the threshold crossing."""
    return (threshold - lower) / (upper - lower)


class ColumnScanner:
    """
    Top-down scan of one signed-PV column.

    Every adjacent pair is examined from the top. A pair straddling the
    threshold becomes a CANDIDATE and is then ACCEPTED by
    ``is_dt_bracket`` or REJECTED; a rejection returns the scan to
    SEARCHING. Reaching the bottom without acceptance ends in MISSING.

    Parameters
    ----------
    threshold : float
        DT threshold [PVU].

    Attributes
    ----------
    state : ScanState
    transitions : list of (int, ScanState)
        Level index and state entered, in scan order.
    """

    def __init__(self, threshold: float = DT_THRESHOLD) -> None:
        self.threshold = threshold
        self.state = ScanState.SEARCHING
        self.transitions: list[tuple[int, ScanState]] = []

    def _enter(self, k: int, state: ScanState) -> None:
        self.state = state
        self.transitions.append((k, state))

    def step(self, k: int, lower: float, upper: float) -> ScanState:
        """Examine the pair (k, k+1)."""
        if self.state in (ScanState.ACCEPTED, ScanState.MISSING):
            raise ValueError(f"Scan already finished in state {self.state.name}.")

        thr = self.threshold
        if (lower < thr) != (upper < thr) and not np.isnan(lower) and not np.isnan(upper):
            self._enter(k, ScanState.CANDIDATE)
            if is_dt_bracket(lower, upper, thr):
                self._enter(k, ScanState.ACCEPTED)
            else:
                self._enter(k, ScanState.REJECTED)
                self._enter(k, ScanState.SEARCHING)
        return self.state

    def scan(self, column) -> Bracket:
        """
        Scan a column of signed PV ordered bottom to top.

        Returns
        -------
        Bracket
            Level ``-1`` and weight NaN when no pair is accepted.
        """
        column = np.asarray(column, dtype=np.float64)
        self.state = ScanState.SEARCHING
        self.transitions = []

        for k in range(column.size - 2, -1, -1):
            lower, upper = column[k], column[k + 1]
            if self.step(k, lower, upper) is ScanState.ACCEPTED:
                return Bracket(k, _bracket_weight(lower, upper, self.threshold))

        self._enter(-1, ScanState.MISSING)
        return Bracket(-1, np.nan)


def locate_dt(signed_pv, threshold: float = DT_THRESHOLD) -> Bracket:
    """
    DT bracket of every column.

    Parameters
    ----------
    signed_pv : array_like, shape (..., nVertLevels)
        sign(f) * PV with the vertical axis last, bottom to top [PVU]
    threshold : float
        DT threshold [PVU]

    Returns
    -------
    Bracket
        ``level`` (int, -1 where missing) and ``weight`` (NaN where
        missing), each of shape (...).
    """
    spv = np.asarray(signed_pv, dtype=np.float64)
    if spv.shape[-1] < 2:
        raise ValueError(
            f"DT search needs at least 2 levels, got {spv.shape[-1]}."
        )

    accept = is_dt_bracket(spv[..., :-1], spv[..., 1:], threshold)
    level = last_true_index(accept)
    found = level >= 0

    k = np.where(found, level, 0)[..., np.newaxis]
    lower = np.take_along_axis(spv, k, axis=-1)[..., 0]
    upper = np.take_along_axis(spv, k + 1, axis=-1)[..., 0]
    with np.errstate(divide='ignore', invalid='ignore'):
        weight = np.where(found, _bracket_weight(lower, upper, threshold), np.nan)

    n_missing = int(np.count_nonzero(~found))
    if n_missing:
        logger.debug(f"DT not found in {n_missing} of {found.size} columns")

    return Bracket(level, weight)
