"""Pytest configuration and global fixtures.

This module provides fixtures and configuration that are available to all tests.
Fixtures defined here are automatically discovered by pytest and can be used
by any test function by including them as parameters.

Common Fixtures:
    - mock_mqtt_client: Mocked MQTT client for testing without broker
    - config_parser: Parsed configuration document with valid settings
    - settings: Validated Settings built from config_parser
    - temp_config_file: Temporary config file for testing
    - sample_sinks: Sample ``pactl --format json list sinks`` output
    - sample_outputs / sample_workspaces: Sample swaymsg query output
    - mock_subprocess_run: Mocked subprocess.run

Example:
    def test_something(mock_mqtt_client):
        # mock_mqtt_client is automatically injected
        result = some_function(mock_mqtt_client)
        assert result is not None
"""

import configparser
from unittest.mock import MagicMock, Mock

import pytest


@pytest.fixture
def mock_mqtt_client():
    """Provide a mocked MQTT client for testing.

    This fixture creates a fully mocked paho-mqtt client that can be used
    in tests without requiring an actual MQTT broker connection. It starts
    out disconnected.

    Returns:
        MagicMock: Mocked MQTT client with common methods stubbed

    Example:
        def test_publish(mock_mqtt_client):
            broker = MessageBroker(mock_mqtt_client)
            broker.publish_state("desktop/test/sway/state", {})
            mock_mqtt_client.publish.assert_called_once()
    """
    client = MagicMock()
    # Configure return values for common methods
    client.connect.return_value = 0
    client.publish.return_value = MagicMock(rc=0)
    client.subscribe.return_value = (0, 1)
    client.loop_start.return_value = None
    client.loop_stop.return_value = None
    client.disconnect.return_value = None
    client.is_connected.return_value = False
    return client


@pytest.fixture
def config_parser():
    """Provide a parsed configuration document with valid settings.

    Returns:
        configparser.ConfigParser: Config with all sections populated
    """
    config = configparser.ConfigParser()
    config["device"] = {"name": "Test Device"}
    config["mqtt"] = {
        "broker": "test.broker.local",
        "port": "1883",
        "username": "testuser",
        "password": "testpass",
        "max_connection_retries": "5",
        "min_reconnect_delay": "1",
        "max_reconnect_delay": "30",
        "connection_timeout": "10",
    }
    config["homeassistant"] = {"autodiscover": "true", "discovery_prefix": "homeassistant"}
    config["pulseaudio"] = {"enabled": "true", "volume_step": "5"}
    config["sway"] = {"enabled": "true", "name_prefix": ""}
    return config


@pytest.fixture
def settings(config_parser):
    """Provide validated Settings built from config_parser."""
    from desktop_bridge.core.config import parse_config

    return parse_config(config_parser)


@pytest.fixture
def temp_config_file(tmp_path, config_parser):
    """Create a temporary config.ini file for testing.

    Args:
        tmp_path: pytest fixture providing temporary directory

    Returns:
        Path: Path to temporary config file

    Example:
        def test_load_config(temp_config_file):
            settings = load_config(temp_config_file)
            assert settings is not None
    """
    config_file = tmp_path / "config.ini"
    with open(config_file, "w") as f:
        config_parser.write(f)

    return config_file


@pytest.fixture
def mock_subprocess_run(monkeypatch):
    """Mock subprocess.run for testing command execution.

    Returns:
        Mock: Mock object that can be configured per test

    Example:
        def test_command_success(mock_subprocess_run):
            mock_subprocess_run.return_value.returncode = 0
            mock_subprocess_run.return_value.stdout = b"{}"
            result = run_json(["pactl", "--format", "json", "info"])
            assert result == {}
    """
    mock = Mock()
    mock.return_value.returncode = 0
    mock.return_value.stdout = b""
    mock.return_value.stderr = b""
    monkeypatch.setattr("subprocess.run", mock)
    return mock


def make_sink(index, name, percent=50, mute=False):
    """Build one sink entry as printed by ``pactl --format json list sinks``."""
    value = round(65536 * percent / 100)
    channel = {"value": value, "value_percent": f"{percent}%", "db": "-18.06 dB"}
    return {
        "index": index,
        "state": "RUNNING",
        "name": name,
        "description": name.replace("_", " ").title(),
        "mute": mute,
        "channel_map": "front-left,front-right",
        "volume": {"front-left": dict(channel), "front-right": dict(channel)},
    }


@pytest.fixture
def sink_factory():
    """Provide make_sink for tests that need their own sink lists."""
    return make_sink


@pytest.fixture
def sample_sinks():
    """Provide sample sink list output with three sinks."""
    return [
        make_sink(0, "alsa_output.speakers", 40),
        make_sink(1, "alsa_output.headphones", 65),
        make_sink(2, "bluez_output.earbuds", 30, mute=True),
    ]


@pytest.fixture
def sample_outputs():
    """Provide sample ``swaymsg -r -t get_outputs`` output."""
    return [
        {
            "name": "eDP-1",
            "make": "AU Optronics",
            "model": "0x573D",
            "active": True,
            "dpms": True,
            "power": True,
            "current_workspace": "1",
        },
        {
            "name": "HDMI-A-1",
            "make": "Dell Inc.",
            "model": "DELL U2720Q",
            "active": False,
            "dpms": False,
            "power": False,
            "current_workspace": None,
        },
    ]


@pytest.fixture
def sample_workspaces():
    """Provide sample ``swaymsg -r -t get_workspaces`` output."""
    return [
        {"num": 2, "name": "2", "output": "eDP-1", "focused": False, "visible": False, "urgent": False},
        {"num": 1, "name": "1", "output": "eDP-1", "focused": True, "visible": True, "urgent": False},
    ]


# Pytest hooks for custom behavior


def pytest_configure(config):
    """Configure pytest with custom settings.

    This hook runs before test collection begins and can be used to
    register custom markers, configure plugins, etc.
    """
    # Keep first-run config creation from prompting
    import os

    os.environ["DBRIDGE_NON_INTERACTIVE"] = "1"
    os.environ["DBRIDGE_MQTT_BROKER"] = "localhost"
    os.environ["DBRIDGE_MQTT_PORT"] = "1883"
    os.environ["DBRIDGE_MQTT_USER"] = "test_user"
    os.environ["DBRIDGE_MQTT_PASS"] = "test_pass"
    os.environ["DBRIDGE_DEVICE_NAME"] = "test_device"


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add automatic markers.

    Args:
        config: pytest config object
        items: list of collected test items
    """
    for item in items:
        # Auto-mark all tests in tests/unit as unit tests
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)

        # Auto-mark integration tests
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
