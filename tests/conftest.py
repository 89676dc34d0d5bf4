import numpy as np
import pytest

from mpaspv.budget import TendencyInputs
from mpaspv.mesh import planar_hex_mesh

NX, NY, DC = 8, 8, 1.0e4
LX, LY = NX * DC, NY * DC * np.sqrt(3.0) / 2.0
F0 = 1.0e-4
Z_INTERFACES = np.linspace(0.0, 2.0e4, 21)


def wave(xyz, phase=0.0):
    """Smooth doubly periodic pattern at the given positions."""
    x, y = xyz[:, 0], xyz[:, 1]
    return np.sin(2 * np.pi * x / LX + phase) * np.cos(2 * np.pi * y / LY)


def interior_cells(mesh):
    """Cells whose neighbours and vertices do not cross the periodic seam."""
    j, i = np.divmod(np.arange(mesh.n_cells), NX)
    return (i >= 1) & (i <= NX - 2) & (j >= 1) & (j <= NY - 2)


@pytest.fixture(scope="module")
def hex_mesh():
    return planar_hex_mesh(NX, NY, dc=DC, z_interfaces=Z_INTERFACES, f0=F0)


def make_state(mesh):
    z = mesh.z_mid                                   # (nCells, nLev)
    z_edge = mesh.z_mid[mesh.cells_on_edge[:, 0]]    # (nEdges, nLev)
    w_cell = wave(mesh.cell_xyz)[:, np.newaxis]
    w_edge = wave(mesh.edge_xyz, phase=0.7)[:, np.newaxis]
    n_x = mesh.edge_normal[:, 0:1]

    u = (10.0 + 2.0e-3 * z_edge) * n_x + 3.0 * w_edge * (1.0 + z_edge / 1.0e4)
    theta = 300.0 + 4.0e-3 * z + 1.5 * w_cell * (z / 2.0e4)
    rho = 1.2 * np.exp(-z / 8000.0)
    pressure = 1.0e5 * np.exp(-z / 7000.0)
    return {'u': u, 'theta': theta, 'rho': rho, 'pressure': pressure}


MICROPHYSICS_FRACTIONS = {
    'condensation': 0.5,
    'evaporation_rain': -0.1,
    'deposition_sublimation': 0.2,
    'melting': -0.05,
    'freezing': 0.05,
}


def make_tendencies(mesh, dynamics=True):
    z = mesh.z_mid
    z_edge = mesh.z_mid[mesh.cells_on_edge[:, 0]]
    w_cell = wave(mesh.cell_xyz)[:, np.newaxis]
    w_cell2 = wave(mesh.cell_xyz, phase=1.3)[:, np.newaxis]
    w_edge = wave(mesh.edge_xyz)[:, np.newaxis]
    w_edge2 = wave(mesh.edge_xyz, phase=2.1)[:, np.newaxis]
    n_x = mesh.edge_normal[:, 0:1]

    heating = 2.0e-5 * (1.0 + 0.5 * w_cell2) * np.exp(-((z - 5000.0) / 3000.0) ** 2)
    scale = 1.0 if dynamics else 0.0
    return TendencyInputs(
        theta_dyn=scale * 1.0e-5 * w_cell * np.sin(np.pi * z / 2.0e4),
        u_dyn=scale * 1.0e-4 * (1.0 + z_edge / 1.0e4) * w_edge,
        rho_dyn=scale * -1.0e-7 * 1.2 * np.exp(-z / 8000.0) * w_cell2,
        theta_diab=heating,
        u_mix=5.0e-5 * w_edge2 * (z_edge / 2.0e4),
        u_pbl_gwd=-1.0e-4 * np.exp(-z_edge / 3000.0) * n_x,
        u_cu=3.0e-5 * w_edge * np.sin(np.pi * z_edge / 2.0e4),
        theta_mp={
            process: fraction * heating
            for process, fraction in MICROPHYSICS_FRACTIONS.items()
        },
    )


def advance(fields, tendencies, dt):
    """Apply one step of the tendencies to the fields in place."""
    t = tendencies
    fields['theta'] += dt * (t.theta_dyn + t.theta_diab)
    fields['u'] += dt * (t.u_dyn + t.u_mix + t.u_pbl_gwd + t.u_cu)
    fields['rho'] += dt * t.rho_dyn
    return fields


@pytest.fixture
def stratified_state(hex_mesh):
    return make_state(hex_mesh)


@pytest.fixture
def step_tendencies(hex_mesh):
    return make_tendencies(hex_mesh)
