"""
Constants for PV diagnostics.

This module contains physical constants and the fixed thresholds used by the
potential vorticity budget and dynamic tropopause calculations.
"""

# ============================================================================
# Fundamental Physical Constants
# ============================================================================

# Gas constants
R_d = 287.0           # Specific gas constant for dry air [J kg^-1 K^-1]
R_v = 461.6           # Specific gas constant for water vapor [J kg^-1 K^-1]
rvord = R_v / R_d     # Moisture coupling factor in theta_m [dimensionless]

# Specific heats (at constant pressure)
Cp_d = 1004.5         # Specific heat of dry air [J kg^-1 K^-1]

# Ratio of specific heats
kappa = R_d / Cp_d    # ≈ 0.286 [dimensionless]

# Reference pressure for potential temperature
P0 = 1.0e5            # [Pa]

# ============================================================================
# Earth Constants
# ============================================================================

g = 9.80616           # Gravitational acceleration [m s^-2]
omega = 7.29212e-5    # Earth's angular velocity [rad s^-1]
a_earth = 6.371229e6  # Earth's mean radius [m]

# ============================================================================
# Potential Vorticity
# ============================================================================

PVU = 1.0e-6          # One potential vorticity unit [K m^2 kg^-1 s^-1]
DT_THRESHOLD = 2.0    # Dynamic tropopause iso-surface [PVU]

# Fill value for columns or levels without a valid interpolation bracket
MISSING_VALUE = -99999.0
