"""
Calculation modules for MPAS PV diagnostics.

This package provides the PV computation and the dataset-level dynamics and
surface calculations. The dataset interface is the xarray accessor
(ds.mpaspv), which is automatically registered when importing mpaspv.

Submodules
----------
constants : Physical constants used in calculations
formulas : Pure computational functions (can be used independently)
pv : Ertel PV and its ingredients on the mesh
"""

from . import constants
from . import formulas

__all__ = [
    'constants',
    'formulas',
]
