"""
Utility functions for array and xarray handling.

This module provides helper functions shared by the diagnostics: shape checks
for mesh fields and coordinate propagation for accessor outputs.
"""

from __future__ import annotations

import numpy as np
import xarray as xr


def check_leading_dim(name: str, arr: np.ndarray, size: int, kind: str) -> np.ndarray:
    """
    Return *arr* as an array after checking its leading dimension.

    Parameters
    ----------
    name : str
        Field name used in the error message.
    arr : array_like
        Field with the mesh location on the first axis.
    size : int
        Expected number of cells, edges or vertices.
    kind : str
        Location name, e.g. ``'nCells'``.
    """
    arr = np.asarray(arr)
    if arr.ndim == 0 or arr.shape[0] != size:
        raise ValueError(
            f"Field '{name}' must have {size} entries along {kind}, "
            f"got shape {arr.shape}."
        )
    return arr


def check_same_shape(**fields: np.ndarray) -> tuple[int, ...]:
    """Check that all keyword fields share one shape and return it."""
    shapes = {name: np.shape(value) for name, value in fields.items()}
    distinct = set(shapes.values())
    if len(distinct) > 1:
        detail = ', '.join(f"{name}={shape}" for name, shape in shapes.items())
        raise ValueError(f"Shape mismatch: {detail}.")
    return distinct.pop()


def assign_compatible_coords(
    out: xr.DataArray,
    src: xr.Dataset | xr.DataArray,
) -> xr.DataArray:
    """
    Carry over coords from *src* whose dims are a subset of *out*'s dims.

    Scalar coords (e.g. ``Time`` after a selection) and per-cell coords such
    as ``latCell`` survive; coords on removed dimensions are skipped.
    """
    out_dims = set(out.dims)
    for name, coord in src.coords.items():
        if name not in out.coords and set(coord.dims) <= out_dims:
            out = out.assign_coords({name: coord})
    return out
