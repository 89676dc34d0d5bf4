"""
Beginning-of-step snapshots of prognostic fields.

``TimeLevelState`` holds a reference to the live model fields and, between
``snapshot()`` and ``release()``, a private copy of the tracked ones taken at
the start of the step. Budget terms read the copy as time level ``t`` and the
live fields as ``t+dt``.
"""

from __future__ import annotations

import logging
import numpy as np
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)

__all__ = [
    'SnapshotError',
    'TimeLevelState',
    'DEFAULT_TRACKED',
]

DEFAULT_TRACKED: tuple[str, ...] = ('u', 'theta', 'rho', 'pressure')


class SnapshotError(RuntimeError):
    """Raised when the beginning-of-step snapshot is misused or missing."""


class TimeLevelState:
    """
    Double buffer of tracked fields for one step.

    Parameters
    ----------
    live : Mapping[str, np.ndarray]
        Live fields, updated in place or replaced by the host between
        ``snapshot()`` and the end of the step.
    tracked : iterable of str, optional
        Names copied by ``snapshot()``. Defaults to ``DEFAULT_TRACKED``.

    Examples
    --------
    >>> state = TimeLevelState(fields)
    >>> state.snapshot()
    >>> # ... model advances fields in place ...
    >>> dtheta = state.current('theta') - state.previous('theta')
    >>> state.release()
    """

    def __init__(
        self,
        live: Mapping[str, np.ndarray],
        tracked: Iterable[str] | None = None,
    ) -> None:
        self.tracked = tuple(DEFAULT_TRACKED if tracked is None else tracked)
        self._live: dict[str, np.ndarray] = dict(live)
        self._snapshot: dict[str, np.ndarray] | None = None

    def __repr__(self) -> str:
        status = 'held' if self.has_snapshot else 'released'
        return f"TimeLevelState(tracked={list(self.tracked)}, snapshot={status})"

    @property
    def has_snapshot(self) -> bool:
        return self._snapshot is not None

    def update(self, fields: Mapping[str, np.ndarray]) -> None:
        """Replace live field references (the host may hand out new arrays)."""
        self._live.update(fields)

    def snapshot(self) -> None:
        """
        Copy the tracked live fields as the beginning-of-step level.

        Raises
        ------
        SnapshotError
            If a snapshot is already held.
        KeyError
            If a tracked field is not among the live fields.
        """
        if self._snapshot is not None:
            raise SnapshotError(
                "A snapshot is already held; release() it before taking another."
            )
        missing = [name for name in self.tracked if name not in self._live]
        if missing:
            raise KeyError(f"Tracked fields missing from live state: {missing}")

        self._snapshot = {
            name: np.array(self._live[name], copy=True) for name in self.tracked
        }
        logger.debug(f"Snapshot taken of {list(self.tracked)}")

    def current(self, name: str) -> np.ndarray:
        """Live (t+dt) field."""
        if name not in self._live:
            raise KeyError(f"Field '{name}' not found in live state.")
        return self._live[name]

    def previous(self, name: str) -> np.ndarray:
        """
        Snapshot (t) field.

        Raises
        ------
        SnapshotError
            If no snapshot is held.
        KeyError
            If *name* is not tracked.
        """
        if self._snapshot is None:
            raise SnapshotError(
                f"No snapshot held; the beginning-of-step value of '{name}' "
                f"is unavailable."
            )
        if name not in self._snapshot:
            raise KeyError(f"Field '{name}' is not tracked by the snapshot.")
        return self._snapshot[name]

    def release(self) -> None:
        """Drop the snapshot at the end of the step."""
        if self._snapshot is None:
            raise SnapshotError("release() called without a held snapshot.")
        self._snapshot = None
        logger.debug("Snapshot released")
