"""
Unit tests for Config loading and validation.
"""
import tempfile
from pathlib import Path

import pytest

from devbridge.config import Config


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp)


def test_defaults(tmp_dir):
    config = Config(environ={}, env_file=tmp_dir / "missing.env")

    assert config.marker_dir == Path(tempfile.gettempdir())
    assert config.fake_config_path == Path(tempfile.gettempdir()) / "bridge_http_fakes.json"
    assert config.api_url is None
    assert config.external_url is None
    assert config.ready_timeout == 120
    assert config.probe_attempts == 30
    assert config.probe_interval == 0.5
    assert config.stop_grace == 3
    assert config.fail_on_probe_timeout is False


def test_environment_values(tmp_dir):
    config = Config(environ={
        'BRIDGE_MARKER_DIR': str(tmp_dir),
        'BRIDGE_API_URL': 'http://127.0.0.1:8000',
        'BRIDGE_READY_TIMEOUT': '5.5',
        'BRIDGE_PROBE_ATTEMPTS': '4',
        'BRIDGE_FAIL_ON_PROBE_TIMEOUT': 'yes',
    }, env_file=tmp_dir / "missing.env")

    assert config.marker_dir == tmp_dir
    assert config.api_url == 'http://127.0.0.1:8000'
    assert config.ready_timeout == 5.5
    assert config.probe_attempts == 4
    assert config.fail_on_probe_timeout is True


def test_empty_values_fall_back_to_defaults(tmp_dir):
    config = Config(environ={'BRIDGE_READY_TIMEOUT': '', 'BRIDGE_API_URL': ''},
                    env_file=tmp_dir / "missing.env")

    assert config.ready_timeout == 120
    assert config.api_url is None


def test_env_file_values_are_overridden_by_environment(tmp_dir):
    env_file = tmp_dir / ".env"
    env_file.write_text("BRIDGE_API_URL=http://from-file:8000\nBRIDGE_EXTERNAL_URL=https://staging.test\n")

    config = Config(environ={'BRIDGE_API_URL': 'http://from-env:8000'}, env_file=env_file)

    assert config.api_url == 'http://from-env:8000'
    assert config.external_url == 'https://staging.test'


@pytest.mark.parametrize("environ", [
    {'BRIDGE_READY_TIMEOUT': '0'},
    {'BRIDGE_PROBE_ATTEMPTS': '0'},
    {'BRIDGE_PROBE_INTERVAL': '-1'},
    {'BRIDGE_STOP_GRACE': '-2'},
])
def test_validate_rejects(environ, tmp_dir):
    ok, message = Config(environ=environ, env_file=tmp_dir / "missing.env").validate()

    assert not ok
    assert message.startswith("BRIDGE_")


def test_validate_accepts_defaults(tmp_dir):
    assert Config(environ={}, env_file=tmp_dir / "missing.env").validate() == (True, "Configuration valid")


@pytest.mark.parametrize("name,value", [
    ('BRIDGE_READY_TIMEOUT', 'abc'),
    ('BRIDGE_PROBE_ATTEMPTS', '2.5'),
    ('BRIDGE_PROBE_INTERVAL', 'fast'),
    ('BRIDGE_STOP_GRACE', '3s'),
])
def test_malformed_number_reported_by_validate(name, value, tmp_dir):
    config = Config(environ={name: value}, env_file=tmp_dir / "missing.env")

    ok, message = config.validate()

    assert not ok
    assert message.startswith(name)
    assert repr(value) in message


def test_malformed_number_keeps_default(tmp_dir):
    config = Config(environ={'BRIDGE_READY_TIMEOUT': 'abc'}, env_file=tmp_dir / "missing.env")
    assert config.ready_timeout == 120
