"""
mpaspv - Ertel PV budget diagnostics for MPAS meshes

A package for computing Ertel potential vorticity on unstructured Voronoi
meshes, splitting its evolution into a closed per-process tendency budget,
and locating and sampling the dynamic tropopause.

Example
-------
>>> import mpaspv
>>> mesh = mpaspv.planar_hex_mesh(8, 8, dc=10e3)
>>> diag = mpaspv.PVDiagnostics(mesh, mpaspv.PVConfig(pv_tend=True))
>>> loader = mpaspv.MPASDataLoader('history.*.nc', grid_file='init.nc')
>>> ds = loader.ds
>>> ds.mpaspv.pv          # Ertel PV [PVU]
"""

# Register xarray accessor (side-effect import)
from .calc import accessor  # noqa: F401

from .budget import TendencyCategory, TendencyInputs
from .config import ConfigurationError, PVConfig
from .dataloader import MPASDataLoader
from .diagnostics import PVDiagnostics
from .mesh import Mesh, planar_hex_mesh
from .state import SnapshotError

__version__ = '0.1.0'

__all__ = [
    'Mesh',
    'planar_hex_mesh',
    'PVConfig',
    'ConfigurationError',
    'PVDiagnostics',
    'TendencyCategory',
    'TendencyInputs',
    'SnapshotError',
    'MPASDataLoader',
]
