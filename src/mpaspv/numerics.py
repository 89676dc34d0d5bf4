"""
Column numerics shared by the PV diagnostics.

This module provides the vertical operators used on every mesh column: the
centred vertical derivative on non-uniform layers and the bracket search and
linear interpolation kernels used for the tropopause and isobaric surfaces.
All functions take the vertical axis last and loop over nothing but numpy
broadcasting, so they work unchanged inside ``xr.apply_ufunc``.
"""

from __future__ import annotations

import numpy as np

__all__ = [
    'layer_midpoints',
    'vertical_derivative',
    'first_true_index',
    'last_true_index',
    'interpolate_bracket',
]


def layer_midpoints(zgrid: np.ndarray) -> np.ndarray:
    """
    Height of layer midpoints from interface heights.

    Parameters
    ----------
    zgrid : np.ndarray, shape (..., nlev + 1)
        Interface heights [m].

    Returns
    -------
    np.ndarray, shape (..., nlev)
    """
    return 0.5 * (zgrid[..., 1:] + zgrid[..., :-1])


def vertical_derivative(field: np.ndarray, z_mid: np.ndarray) -> np.ndarray:
    """
    Derivative along the last axis on non-uniform layer midpoints.

    Interior levels use the centred difference over the two neighbouring
    levels; the bottom and top levels use one-sided differences. The
    operator is linear in *field*, which the budget relies on.

    Parameters
    ----------
    field : np.ndarray, shape (..., nlev)
        Field at layer midpoints.
    z_mid : np.ndarray, shape (..., nlev)
        Midpoint heights [m], broadcastable to *field*.

    Returns
    -------
    np.ndarray
        d(field)/dz with the shape of *field*.
    """
    nlev = field.shape[-1]
    if nlev < 2:
        raise ValueError(
            f"Vertical derivative needs at least 2 levels, got {nlev}."
        )

    z_mid = np.broadcast_to(z_mid, field.shape)
    out = np.empty(field.shape, dtype=np.result_type(field, np.float64))

    out[..., 1:-1] = (
        (field[..., 2:] - field[..., :-2]) / (z_mid[..., 2:] - z_mid[..., :-2])
    )
    out[..., 0] = (field[..., 1] - field[..., 0]) / (z_mid[..., 1] - z_mid[..., 0])
    out[..., -1] = (
        (field[..., -1] - field[..., -2]) / (z_mid[..., -1] - z_mid[..., -2])
    )
    return out


def first_true_index(mask: np.ndarray) -> np.ndarray:
    """Index of the first True along the last axis, -1 where none."""
    has = mask.any(axis=-1)
    return np.where(has, np.argmax(mask, axis=-1), -1)


def last_true_index(mask: np.ndarray) -> np.ndarray:
    """Index of the last True along the last axis, -1 where none."""
    n = mask.shape[-1]
    has = mask.any(axis=-1)
    return np.where(has, n - 1 - np.argmax(mask[..., ::-1], axis=-1), -1)


def interpolate_bracket(
    field: np.ndarray,
    level: np.ndarray,
    weight: np.ndarray,
    fill_value: float,
) -> np.ndarray:
    """
    Linear interpolation between levels ``level`` and ``level + 1``.

    Parameters
    ----------
    field : np.ndarray, shape (..., nlev)
        Field on model levels.
    level : np.ndarray, shape (...)
        Lower bracketing level, -1 where the bracket is missing.
    weight : np.ndarray, shape (...)
        Weight of the upper level in [0, 1].
    fill_value : float
        Value returned where the bracket is missing.

    Returns
    -------
    np.ndarray, shape (...)
    """
    nlev = field.shape[-1]
    valid = level >= 0
    k = np.clip(level, 0, nlev - 2)[..., np.newaxis]
    w = np.where(valid, weight, 0.0)

    below = np.take_along_axis(field, k, axis=-1)[..., 0]
    above = np.take_along_axis(field, k + 1, axis=-1)[..., 0]
    out = (1.0 - w) * below + w * above
    return np.where(valid, out, fill_value)
