"""
Configuration of the PV diagnostics.

This module provides the ``PVConfig`` dataclass holding the feature flags
and parameters of the diagnostics, its validation, and a reader for
MPAS-style namelist mappings (``config_pv_diag`` ...).
"""

from __future__ import annotations

import logging
import numpy as np
from dataclasses import dataclass, fields
from typing import Any, Mapping

from .budget import CLOSURE_CATEGORIES, MICROPHYSICS_PROCESSES, TendencyCategory
from .calc.constants import DT_THRESHOLD, MISSING_VALUE

logger = logging.getLogger(__name__)

__all__ = [
    'ConfigurationError',
    'PVConfig',
    'SUPPORTED_MICROPHYSICS',
]

# Microphysics schemes that expose per-process theta tendencies
SUPPORTED_MICROPHYSICS: frozenset[str] = frozenset({'mp_thompson'})

DEFAULT_ISOBARIC_LEVELS: tuple[float, ...] = (85000., 70000., 50000., 30000., 20000.)

# MPAS namelist names that differ from the field names
_NAMELIST_ALIASES: dict[str, str] = {
    'microp_scheme': 'microphysics_scheme',
    'pv_microphysics': 'pv_microphys',
    'pv_isobaric_levels': 'isobaric_levels',
    'pv_dt_threshold': 'dt_threshold',
    'pv_accumulation_interval': 'accumulation_interval',
}


class ConfigurationError(ValueError):
    """Invalid combination of PV diagnostic options."""


@dataclass(frozen=True)
class PVConfig:
    """
    PV diagnostic options.

    Attributes
    ----------
    pv_diag : bool
        Compute PV, the DT and fields on the DT.
    pv_tend : bool
        Compute and accumulate the tendency budget.
    pv_scalar : bool
        Carry a PV scalar initialized from PV.
    pv_microphys : bool
        Add the per-process microphysics breakdown (needs ``pv_tend``).
    pv_isobaric : bool
        Interpolate PV and tendencies to isobaric levels (needs ``pv_tend``).
    microphysics_scheme : str
        Host microphysics scheme name, ``'off'`` when none.
    isobaric_levels : tuple of float
        Target pressures [Pa].
    dt_threshold : float
        DT threshold [PVU].
    accumulation_interval : float or None
        Accumulator reset interval [s]; None never resets.
    fill_value : float
        Value of missing interpolated points.
    """
    pv_diag: bool = True
    pv_tend: bool = False
    pv_scalar: bool = False
    pv_microphys: bool = False
    pv_isobaric: bool = False
    microphysics_scheme: str = 'off'
    isobaric_levels: tuple[float, ...] = DEFAULT_ISOBARIC_LEVELS
    dt_threshold: float = DT_THRESHOLD
    accumulation_interval: float | None = None
    fill_value: float = MISSING_VALUE

    def __post_init__(self) -> None:
        object.__setattr__(
            self, 'isobaric_levels', tuple(float(p) for p in self.isobaric_levels)
        )
        self.validate()

    def validate(self) -> None:
        """
        Raise ``ConfigurationError`` for unusable option combinations.
        """
        if self.pv_microphys and not self.pv_tend:
            raise ConfigurationError("pv_microphys requires pv_tend.")
        if self.pv_isobaric and not self.pv_tend:
            raise ConfigurationError("pv_isobaric requires pv_tend.")
        if self.pv_microphys and self.microphysics_scheme not in SUPPORTED_MICROPHYSICS:
            raise ConfigurationError(
                f"pv_microphys needs a scheme with per-process tendencies "
                f"({sorted(SUPPORTED_MICROPHYSICS)}), got '{self.microphysics_scheme}'."
            )
        if self.pv_isobaric and not self.isobaric_levels:
            raise ConfigurationError("pv_isobaric requires at least one isobaric level.")
        if any(not np.isfinite(p) or p <= 0.0 for p in self.isobaric_levels):
            raise ConfigurationError(
                f"Isobaric levels must be positive, got {self.isobaric_levels}."
            )
        if not self.dt_threshold > 0.0:
            raise ConfigurationError(
                f"DT threshold must be positive, got {self.dt_threshold}."
            )
        if self.accumulation_interval is not None and not self.accumulation_interval > 0.0:
            raise ConfigurationError(
                f"Accumulation interval must be positive, got {self.accumulation_interval}."
            )

    @property
    def capabilities(self) -> frozenset[TendencyCategory]:
        """Tendency categories enabled by this configuration."""
        if not self.pv_tend:
            return frozenset()
        enabled = set(CLOSURE_CATEGORIES)
        if self.pv_microphys:
            enabled.update(MICROPHYSICS_PROCESSES.values())
        return frozenset(enabled)

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> 'PVConfig':
        """
        Build a configuration from namelist-style options.

        Keys may carry the MPAS ``config_`` prefix. Unknown keys are logged
        and ignored.

        Examples
        --------
        >>> PVConfig.from_mapping({'config_pv_diag': True,
        ...                        'config_pv_tend': True,
        ...                        'config_microp_scheme': 'mp_thompson'})
        """
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in options.items():
            name = key[len('config_'):] if key.startswith('config_') else key
            name = _NAMELIST_ALIASES.get(name, name)
            if name not in known:
                logger.warning(f"Ignoring unknown PV diagnostic option '{key}'")
                continue
            kwargs[name] = value

        config = cls(**kwargs)
        logger.info(f"PV diagnostics configured: {config}")
        return config
