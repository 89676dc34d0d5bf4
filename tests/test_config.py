import logging

import pytest

from mpaspv.budget import CLOSURE_CATEGORIES, TendencyCategory
from mpaspv.config import ConfigurationError, PVConfig


def test_defaults():
    config = PVConfig()
    assert config.pv_diag
    assert not config.pv_tend
    assert config.capabilities == frozenset()
    assert config.dt_threshold == 2.0


def test_capabilities():
    config = PVConfig(pv_tend=True)
    assert config.capabilities == frozenset(CLOSURE_CATEGORIES)

    config = PVConfig(pv_tend=True, pv_microphys=True, microphysics_scheme='mp_thompson')
    assert TendencyCategory.MP_MELTING in config.capabilities
    assert len(config.capabilities) == len(TendencyCategory)


@pytest.mark.parametrize("options", [
    dict(pv_microphys=True, microphysics_scheme='mp_thompson'),
    dict(pv_isobaric=True),
    dict(pv_tend=True, pv_microphys=True, microphysics_scheme='mp_wsm6'),
    dict(pv_tend=True, pv_isobaric=True, isobaric_levels=()),
    dict(isobaric_levels=(50000.0, -1.0)),
    dict(dt_threshold=0.0),
    dict(accumulation_interval=-3600.0),
])
def test_invalid_combinations(options):
    with pytest.raises(ConfigurationError):
        PVConfig(**options)


def test_configuration_error_is_a_value_error():
    with pytest.raises(ValueError):
        PVConfig(pv_isobaric=True)


def test_levels_are_stored_as_float_tuple():
    config = PVConfig(pv_tend=True, pv_isobaric=True, isobaric_levels=[85000, 50000])
    assert config.isobaric_levels == (85000.0, 50000.0)
    hash(config)


def test_from_mapping(caplog):
    options = {
        'config_pv_diag': True,
        'config_pv_tend': True,
        'config_pv_microphysics': True,
        'config_microp_scheme': 'mp_thompson',
        'config_pv_isobaric': True,
        'config_pv_isobaric_levels': [50000.0, 25000.0],
        'config_pv_accumulation_interval': 3600.0,
        'config_radt_lw_interval': '00:30:00',
    }
    with caplog.at_level(logging.INFO, logger='mpaspv.config'):
        config = PVConfig.from_mapping(options)

    assert config.pv_microphys
    assert config.microphysics_scheme == 'mp_thompson'
    assert config.isobaric_levels == (50000.0, 25000.0)
    assert config.accumulation_interval == 3600.0
    assert "config_radt_lw_interval" in caplog.text
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_from_mapping_validates():
    with pytest.raises(ConfigurationError):
        PVConfig.from_mapping({'pv_microphys': True})
