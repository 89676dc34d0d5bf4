import logging

import numpy as np
import pandas as pd
import pytest
import xarray as xr

from mpaspv import MPASDataLoader
from mpaspv.calc.pv import kinematic_state
from conftest import advance, make_state, make_tendencies

STAMPS = ('2024-06-01_00:00:00', '2024-06-01_01:00:00', '2024-06-01_02:00:00')


def history(mesh, fields, stamp, with_grid=True):
    ds = mesh.to_dataset() if with_grid else xr.Dataset()
    for name in ('theta', 'rho', 'pressure'):
        ds[name] = (('Time', 'nCells', 'nVertLevels'), fields[name][np.newaxis])
    ds['u'] = (('Time', 'nEdges', 'nVertLevels'), fields['u'][np.newaxis])
    ds['xtime'] = (('Time', 'StrLen'), np.array([list(stamp.ljust(64))], dtype='S1'))
    return ds


@pytest.fixture
def run(tmp_path, hex_mesh):
    """Three hourly history files and a separate grid file."""
    fields = make_state(hex_mesh)
    tendencies = make_tendencies(hex_mesh)
    states = []
    for i, stamp in enumerate(STAMPS):
        states.append({name: value.copy() for name, value in fields.items()})
        history(hex_mesh, fields, stamp).to_netcdf(
            tmp_path / f'history.{i}.nc', engine='scipy'
        )
        history(hex_mesh, fields, stamp, with_grid=False).to_netcdf(
            tmp_path / f'diag.{i}.nc', engine='scipy'
        )
        advance(fields, tendencies, 60.0)
    hex_mesh.to_dataset().to_netcdf(tmp_path / 'grid.nc', engine='scipy')
    return tmp_path, states


def test_load_glob(run, hex_mesh):
    path, states = run
    loader = MPASDataLoader(str(path / 'history.*.nc'))
    ds = loader.ds

    assert ds.sizes['Time'] == 3
    assert 'Time' not in ds['zgrid'].dims
    assert ds.attrs['on_a_sphere'] == 'NO'
    np.testing.assert_array_equal(ds['Time'].values, pd.to_datetime(STAMPS, format='%Y-%m-%d_%H:%M:%S'))
    assert ds['theta'].chunks is not None
    assert 'files=3' in repr(loader)

    pv = ds.mpaspv.pv
    expected = kinematic_state(hex_mesh, states[2]['u'], states[2]['theta'], states[2]['rho']).pv
    np.testing.assert_allclose(pv.isel(Time=2).values, expected, rtol=1e-8)


def test_load_with_grid_file(run, hex_mesh):
    path, _ = run
    files = sorted(path.glob('diag.*.nc'))
    ds = MPASDataLoader(files, grid_file=path / 'grid.nc', times=1).ds

    assert ds.sizes['Time'] == 1
    assert ds['Time'].values[0] == np.datetime64('2024-06-01T01:00:00')
    np.testing.assert_array_equal(ds['cellsOnEdge'].values, hex_mesh.cells_on_edge + 1)
    assert ds.mpaspv.mesh.n_cells == hex_mesh.n_cells


def test_variable_selection(run, caplog):
    path, _ = run
    with caplog.at_level(logging.WARNING, logger='mpaspv.dataloader'):
        ds = MPASDataLoader(str(path / 'history.*.nc'), variables=['theta', 'qv']).ds

    assert 'theta' in ds and 'u' not in ds
    assert 'dcEdge' in ds
    assert 'qv' in caplog.text


def test_missing_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        MPASDataLoader(str(tmp_path / 'history.*.nc'))
    with pytest.raises(FileNotFoundError):
        MPASDataLoader([tmp_path / 'absent.nc'])


def test_grid_file_is_closed(run, monkeypatch):
    path, _ = run
    closed = []
    close = xr.Dataset.close

    def recording_close(self):
        closed.append(set(self.variables))
        close(self)

    monkeypatch.setattr(xr.Dataset, 'close', recording_close)
    ds = MPASDataLoader(sorted(path.glob('diag.*.nc')), grid_file=path / 'grid.nc').ds

    assert any('cellsOnEdge' in names and 'theta' not in names for names in closed)
    assert ds['dcEdge'].values.shape == (ds.sizes['nEdges'],)
