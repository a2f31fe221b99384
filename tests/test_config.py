"""
Tests for configuration loading
"""
import pytest
import yaml

from cloud_discovery import config as config_module
from cloud_discovery.config import (
    get_default_config, init_config, load_config, save_config, validate_config
)
from cloud_discovery.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def no_config_search(monkeypatch, tmp_path):
    """Keep tests away from real config files"""
    monkeypatch.setattr(config_module, 'config_search_paths', lambda: [tmp_path / 'absent.yaml'])


def test_defaults_are_valid():
    config = get_default_config()

    validate_config(config)
    assert config['discovery']['max_concurrency'] == 10
    assert config['discovery']['timeout'] == 600.0
    assert config['discovery']['cache_ttl'] == 3600.0
    assert config['output_format'] == 'json'


def test_load_without_file_uses_defaults():
    assert load_config(environ={}) == get_default_config()


def test_file_values_merge_over_defaults(tmp_path):
    """Test a partial file only overrides what it names"""
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump({
        'output_format': 'table',
        'discovery': {'max_concurrency': 4},
        'providers': {'aws': {'profile': 'prod'}},
    }))

    config = load_config(path, environ={})

    assert config['output_format'] == 'table'
    assert config['discovery']['max_concurrency'] == 4
    assert config['discovery']['timeout'] == 600.0
    assert config['providers']['aws']['profile'] == 'prod'
    assert config['providers']['aws']['regions'] == ['us-east-1', 'us-west-2']


def test_search_path_is_used(monkeypatch, tmp_path):
    path = tmp_path / '.cloud-discovery.yaml'
    path.write_text('output_format: yaml\n')
    monkeypatch.setattr(config_module, 'config_search_paths', lambda: [tmp_path / 'nope.yaml', path])

    assert load_config(environ={})['output_format'] == 'yaml'


def test_environment_overrides():
    """Test CLOUD_DISCOVERY_* variables win over file and defaults"""
    config = load_config(environ={
        'CLOUD_DISCOVERY_MAX_CONCURRENCY': '3',
        'CLOUD_DISCOVERY_USE_CACHE': 'yes',
        'CLOUD_DISCOVERY_AWS_REGIONS': 'eu-west-1, eu-central-1',
        'CLOUD_DISCOVERY_LOG_LEVEL': 'DEBUG',
    })

    assert config['discovery']['max_concurrency'] == 3
    assert config['discovery']['use_cache'] is True
    assert config['providers']['aws']['regions'] == ['eu-west-1', 'eu-central-1']
    assert config['logging']['level'] == 'DEBUG'


def test_bad_environment_value():
    with pytest.raises(ConfigurationError):
        load_config(environ={'CLOUD_DISCOVERY_TIMEOUT': 'soon'})


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / 'missing.yaml', environ={})


def test_invalid_values_are_reported(tmp_path):
    """Test validation collects every problem"""
    path = tmp_path / 'config.yaml'
    path.write_text(yaml.safe_dump({
        'output_format': 'xml',
        'discovery': {'max_concurrency': 0, 'timeout': -1},
    }))

    with pytest.raises(ConfigurationError) as excinfo:
        load_config(path, environ={})

    problems = excinfo.value.details['problems']
    assert len(problems) == 3
    assert 'output_format' in str(excinfo.value)


def test_non_mapping_file_rejected(tmp_path):
    path = tmp_path / 'config.yaml'
    path.write_text('- just\n- a list\n')

    with pytest.raises(ConfigurationError):
        load_config(path, environ={})


def test_init_and_save(tmp_path):
    """Test init writes defaults and refuses to overwrite"""
    path = init_config(tmp_path / 'nested' / '.cloud-discovery.yaml')

    assert load_config(path, environ={}) == get_default_config()
    with pytest.raises(ConfigurationError):
        init_config(path)

    config = get_default_config()
    config['output_format'] = 'excel'
    save_config(config, path)
    assert load_config(path, environ={})['output_format'] == 'excel'
    assert init_config(path, force=True) == path
