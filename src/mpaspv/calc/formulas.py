"""
Pure formulas used by the PV diagnostics.

This module contains numpy-based functions for the thermodynamic conversions
and tendency decoupling the budget needs. These are independent of the mesh
and of xarray and can be used with scalars, numpy arrays, or within
``xr.apply_ufunc``.

All formulas use SI units unless otherwise specified.

References
----------
Skamarock, W. C., and Coauthors, 2012: A Multiscale Nonhydrostatic
    Atmospheric Model Using Centroidal Voronoi Tesselations and C-Grid
    Staggering. Mon. Wea. Rev., 140, 3090–3105,
    https://doi.org/10.1175/MWR-D-11-00215.1.
"""

import numpy as np
from .constants import P0, kappa, omega, rvord

__all__ = [
    # Thermodynamic variables
    'exner',
    'potential_temperature',
    'theta_from_theta_m',
    # Tendency decoupling
    'moisture_coupling',
    'decouple_theta_tendency',
    'decouple_momentum_tendency',
    # Rotation
    'coriolis_parameter',
    'hemisphere_sign',
    'signed_pv',
]


# ============================================================================
# Thermodynamic Variables
# ============================================================================

def exner(p):
    """
    Compute the Exner function from pressure.

    Parameters
    ----------
    p : array_like
        Pressure [Pa]

    Returns
    -------
    array_like
        Exner function (p/p0)^kappa [dimensionless]
    """
    return (p / P0) ** kappa


def potential_temperature(t, p):
    """
    Compute potential temperature from temperature and pressure.

    Parameters
    ----------
    t : array_like
        Temperature [K]
    p : array_like
        Pressure [Pa]

    Returns
    -------
    array_like
        Potential temperature [K]
    """
    return t / exner(p)


def theta_from_theta_m(theta_m, qv):
    """
    Recover potential temperature from moist potential temperature.

    theta_m = theta * (1 + R_v/R_d * qv) is the prognostic thermodynamic
    variable of the host model.

    Parameters
    ----------
    theta_m : array_like
        Moist potential temperature [K]
    qv : array_like
        Water vapor mixing ratio [kg/kg]

    Returns
    -------
    array_like
        Potential temperature [K]
    """
    return theta_m / moisture_coupling(qv)


# ============================================================================
# Tendency Decoupling
# ============================================================================

def moisture_coupling(qv):
    """Moisture factor 1 + R_v/R_d * qv linking theta and theta_m."""
    return 1.0 + rvord * qv


def decouple_theta_tendency(tend_rtheta_m, rho_d, qv=None):
    """
    Convert a coupled theta tendency to a tendency of bare theta.

    The host integrator carries tendencies of rho_d * theta_m. The PV budget
    needs d(theta)/dt, so both the dry-density weighting and the moisture
    factor are removed.

    Parameters
    ----------
    tend_rtheta_m : array_like
        Tendency of rho_d * theta_m [kg m^-3 K s^-1]
    rho_d : array_like
        Dry air density [kg m^-3]
    qv : array_like, optional
        Water vapor mixing ratio [kg/kg]. When omitted the tendency is taken
        as already free of moisture coupling.

    Returns
    -------
    array_like
        Potential temperature tendency [K s^-1]
    """
    coupling = rho_d if qv is None else rho_d * moisture_coupling(qv)
    return tend_rtheta_m / coupling


def decouple_momentum_tendency(tend_ru, rho_edge):
    """
    Convert a coupled edge-normal momentum tendency to an acceleration.

    Parameters
    ----------
    tend_ru : array_like
        Tendency of rho_d * u at edges [kg m^-2 s^-2]
    rho_edge : array_like
        Dry air density averaged to edges [kg m^-3]

    Returns
    -------
    array_like
        Edge-normal acceleration [m s^-2]
    """
    return tend_ru / rho_edge


# ============================================================================
# Rotation
# ============================================================================

def coriolis_parameter(lat):
    """
    Coriolis parameter from latitude.

    Parameters
    ----------
    lat : array_like
        Latitude [rad]

    Returns
    -------
    array_like
        Coriolis parameter [s^-1]
    """
    return 2.0 * omega * np.sin(lat)


def hemisphere_sign(f):
    """Sign of the Coriolis parameter, +1 where f is zero."""
    return np.where(np.asarray(f) < 0.0, -1.0, 1.0)


def signed_pv(pv, f):
    """
    Hemisphere-signed PV so that stratospheric values are positive.

    Parameters
    ----------
    pv : array_like
        Ertel PV with the vertical axis last [PVU]
    f : array_like
        Coriolis parameter per column [s^-1]

    Returns
    -------
    array_like
        sign(f) * PV [PVU]
    """
    return hemisphere_sign(f)[..., np.newaxis] * pv
