"""
Ertel potential vorticity on the unstructured mesh.

PV = (eta . grad theta) / rho with the absolute vorticity vector
eta = (-dv/dz, du/dz, zeta + f) in the local (east, north, up) frame.
``compute_pv`` is the single contraction used for PV itself and for every
budget term built from it (heating, friction).

References
----------
Hoskins, B. J., M. E. McIntyre, and A. W. Robertson, 1985: On the use and
    significance of isentropic potential vorticity maps. Quart. J. Roy.
    Meteor. Soc., 111, 877-946, https://doi.org/10.1002/qj.49711147002.
"""

from __future__ import annotations

import numpy as np
from typing import NamedTuple

from .constants import PVU
from .._utils import check_leading_dim, check_same_shape
from ..mesh import Mesh
from ..numerics import vertical_derivative
from ..operators import cell_curl, cell_gradient, reconstruct_cell_vector, to_local

__all__ = [
    'KinematicState',
    'compute_pv',
    'relative_vorticity',
    'absolute_vorticity',
    'theta_gradient',
    'kinematic_state',
]


class KinematicState(NamedTuple):
    """PV ingredients at one time level, all at cell centres."""
    abs_vorticity: np.ndarray   # (nCells, nVertLevels, 3) [s-1]
    grad_theta: np.ndarray      # (nCells, nVertLevels, 3) [K m-1]
    rho: np.ndarray             # (nCells, nVertLevels) [kg m-3]
    pv: np.ndarray              # (nCells, nVertLevels) [PVU]


def compute_pv(abs_vorticity, grad_theta, rho):
    """
    Contract a vorticity-like and a gradient-like vector field into PVU.

    Parameters
    ----------
    abs_vorticity : array_like, shape (..., 3)
        Absolute vorticity vector, or the curl of a momentum forcing [s-1]
    grad_theta : array_like, shape (..., 3)
        Gradient of theta, or of a theta tendency [K m-1 (s-1)]
    rho : array_like, shape (...)
        Density [kg m-3]

    Returns
    -------
    array_like
        (abs_vorticity . grad_theta) / rho expressed in PVU [(s-1)].
    """
    return np.sum(abs_vorticity * grad_theta, axis=-1) / rho / PVU


def relative_vorticity(mesh: Mesh, u: np.ndarray) -> np.ndarray:
    """
    Relative vorticity vector (-dv/dz, du/dz, zeta) from edge-normal wind.

    Also used on momentum tendencies, where it yields the curl of the
    forcing.

    Parameters
    ----------
    mesh : Mesh
    u : np.ndarray, shape (nEdges, nVertLevels)

    Returns
    -------
    np.ndarray, shape (nCells, nVertLevels, 3)
    """
    u = check_leading_dim('u', u, mesh.n_edges, 'nEdges')
    wind = to_local(mesh, reconstruct_cell_vector(mesh, u))
    du_dz = vertical_derivative(wind[..., 0], mesh.z_mid)
    dv_dz = vertical_derivative(wind[..., 1], mesh.z_mid)
    zeta = cell_curl(mesh, u)
    return np.stack([-dv_dz, du_dz, zeta], axis=-1)


def absolute_vorticity(mesh: Mesh, u: np.ndarray) -> np.ndarray:
    """Absolute vorticity vector (-dv/dz, du/dz, zeta + f) [s-1]."""
    eta = relative_vorticity(mesh, u)
    eta[..., 2] += mesh.f_cell[:, np.newaxis]
    return eta


def theta_gradient(mesh: Mesh, theta: np.ndarray) -> np.ndarray:
    """
    Three-dimensional gradient of a cell field on model levels.

    Parameters
    ----------
    mesh : Mesh
    theta : np.ndarray, shape (nCells, nVertLevels)

    Returns
    -------
    np.ndarray, shape (nCells, nVertLevels, 3)
        (d/dx, d/dy, d/dz) in the local frame.
    """
    theta = check_leading_dim('theta', theta, mesh.n_cells, 'nCells')
    horizontal = cell_gradient(mesh, theta)
    dth_dz = vertical_derivative(theta, mesh.z_mid)
    return np.concatenate([horizontal, dth_dz[..., np.newaxis]], axis=-1)


def kinematic_state(
    mesh: Mesh,
    u: np.ndarray,
    theta: np.ndarray,
    rho: np.ndarray,
) -> KinematicState:
    """
    Absolute vorticity, theta gradient and PV at one time level.

    Parameters
    ----------
    mesh : Mesh
    u : np.ndarray, shape (nEdges, nVertLevels)
        Edge-normal wind [m s-1]
    theta : np.ndarray, shape (nCells, nVertLevels)
        Potential temperature [K]
    rho : np.ndarray, shape (nCells, nVertLevels)
        Dry air density [kg m-3]

    Returns
    -------
    KinematicState
    """
    theta = np.asarray(theta, dtype=np.float64)
    rho = np.asarray(rho, dtype=np.float64)
    check_same_shape(theta=theta, rho=rho)
    if theta.shape != (mesh.n_cells, mesh.n_levels):
        raise ValueError(
            f"Cell fields must have shape {(mesh.n_cells, mesh.n_levels)}, "
            f"got {theta.shape}."
        )
    u = np.asarray(u, dtype=np.float64)
    if u.shape != (mesh.n_edges, mesh.n_levels):
        raise ValueError(
            f"Edge wind must have shape {(mesh.n_edges, mesh.n_levels)}, got {u.shape}."
        )

    eta = absolute_vorticity(mesh, u)
    grad_theta = theta_gradient(mesh, theta)
    return KinematicState(
        abs_vorticity=eta,
        grad_theta=grad_theta,
        rho=rho,
        pv=compute_pv(eta, grad_theta, rho),
    )
