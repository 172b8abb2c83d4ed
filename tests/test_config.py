import json

import pytest

from conftest import OffsetGeodesy
from config import config_loader
from config.config_loader import (
    DEFAULT_SETTINGS,
    AggregationSettings,
    load_aggregation_settings,
    load_config,
)
from core.context import RunContext
from core.exceptions import InvalidParameter


def write_config(tmp_path, section):
    path = tmp_path / 'aggregation_config.json'
    path.write_text(json.dumps({'aggregation': section}), encoding='utf-8')
    return path


def test_bundled_config_loads_defaults():
    settings = load_aggregation_settings(load_config())
    assert settings == AggregationSettings()
    assert settings.epsilon == DEFAULT_SETTINGS['epsilon'] == 0.3


def test_values_override_defaults(tmp_path):
    path = write_config(tmp_path, {'epsilon': 2.5, 'scale': [2, 3], 'group_by': 'zone'})
    settings = load_aggregation_settings(load_config(path))
    assert settings.epsilon == 2.5
    assert settings.scale == (2, 3)
    assert settings.group_by == 'zone'
    assert settings.batch_size == DEFAULT_SETTINGS['batch_size']


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / 'missing.json')


def test_missing_section(tmp_path):
    path = tmp_path / 'bad.json'
    path.write_text('{"layers": []}', encoding='utf-8')
    with pytest.raises(KeyError):
        load_config(path)


def test_unknown_key_rejected(tmp_path):
    path = write_config(tmp_path, {'epsilon': 1.0, 'epsilonn': 2.0})
    with pytest.raises(InvalidParameter):
        load_aggregation_settings(load_config(path))


@pytest.mark.parametrize('section', [
    {'epsilon': 0},
    {'epsilon': -0.5},
    {'batch_size': 0},
    {'batch_size': 2.5},
    {'worker_count': 0},
    {'scale': [1, 0]},
    {'hull_tolerance': -1},
    {'group_by': 5},
])
def test_out_of_range_values_rejected(tmp_path, section):
    path = write_config(tmp_path, section)
    with pytest.raises(InvalidParameter):
        load_aggregation_settings(load_config(path))


def test_zero_epsilon_allowed_programmatically():
    assert AggregationSettings(epsilon=0.0).validate().epsilon == 0.0


def test_with_overrides_validates():
    settings = AggregationSettings()
    assert settings.with_overrides(worker_count=8).worker_count == 8
    with pytest.raises(InvalidParameter):
        settings.with_overrides(batch_size=-1)


def test_invalid_parameter_is_value_error():
    with pytest.raises(ValueError):
        AggregationSettings(epsilon=float('inf')).validate()


def test_run_context_reads_config_when_settings_omitted(tmp_path, monkeypatch):
    write_config(tmp_path, {'epsilon': 2.0, 'batch_size': 50})
    monkeypatch.setattr(config_loader, 'CONFIG_DIR', tmp_path)

    context = RunContext.create(geodesy=OffsetGeodesy())

    assert context.settings.epsilon == 2.0
    assert context.settings.batch_size == 50
    assert context.settings.worker_count == DEFAULT_SETTINGS['worker_count']


def test_run_context_rejects_invalid_config(tmp_path, monkeypatch):
    write_config(tmp_path, {'epsilon': -1.0})
    monkeypatch.setattr(config_loader, 'CONFIG_DIR', tmp_path)
    with pytest.raises(InvalidParameter):
        RunContext.create(geodesy=OffsetGeodesy())
