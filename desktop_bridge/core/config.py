"""Configuration management for Desktop Bridge.

This module loads settings from ``data/config.ini``, validates them, and
hands the rest of the application a fully-populated, immutable Settings
object. Bridges never read the INI file themselves.

Configuration Structure:
    [device]
        name: Human-readable device name (e.g., "Workstation")

    [mqtt]
        broker: MQTT broker hostname or IP address
        port: MQTT broker port (typically 1883)
        username: MQTT authentication username
        password: MQTT authentication password
        keepalive: Keepalive interval in seconds (default: 60)
        max_connection_retries: Maximum connection attempts before failure
        min_reconnect_delay: Initial reconnection delay in seconds
        max_reconnect_delay: Maximum reconnection delay in seconds
        connection_timeout: Timeout for initial connection in seconds

    [homeassistant]
        autodiscover: Publish discovery descriptors (default: true)
        discovery_prefix: Discovery topic prefix (default: homeassistant)

    [pulseaudio] / [sway]
        enabled: Run this bridge (default: true)
        state_topic: Topic for state snapshots
        command_topic: Topic the bridge accepts commands on
        availability_topic: Retained online/offline topic
        payload_available: Online payload (default: online)
        payload_not_available: Offline payload (default: offline)
        volume_step: Default volume step in percent ([pulseaudio] only)
        name_prefix: Prefix for entity names ([sway] only)

Usage:
    from desktop_bridge.core.config import load_config

    settings = load_config()
    print(settings.mqtt.broker, settings.sway.command_topic)
"""

# Standard library imports
import configparser
import logging
import os
import socket
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Local imports
from desktop_bridge.core.availability import AvailabilityRecord
from desktop_bridge.core.errors import ConfigError
from desktop_bridge.utils.formatting import sanitize_topic

logger = logging.getLogger(__name__)


# ----------------------------
# Paths
# ----------------------------

BASE_DIR = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = BASE_DIR / "data" / "config.ini"
VERSION_PATH = BASE_DIR / "VERSION"

ENV_PREFIX = "DBRIDGE_"
MQTT_WILDCARDS = ("+", "#")


# ----------------------------
# Load version
# ----------------------------

try:
    with VERSION_PATH.open("r", encoding="utf-8") as f:
        VERSION = f.read().strip()
except FileNotFoundError:
    VERSION = "0.0.0"
    logger.warning(f"VERSION file not found at {VERSION_PATH}, using fallback: {VERSION}")


# ----------------------------
# Settings objects
# ----------------------------


@dataclass(frozen=True)
class MqttSettings:
    broker: str
    port: int = 1883
    username: str = ""
    password: str = ""
    keepalive: int = 60
    max_retries: int = 10
    min_reconnect_delay: int = 1
    max_reconnect_delay: int = 60
    connection_timeout: int = 30


@dataclass(frozen=True)
class HomeAssistantSettings:
    autodiscover: bool = True
    discovery_prefix: str = "homeassistant"


@dataclass(frozen=True)
class BridgeSettings:
    """Topics and identity shared by every bridge."""

    name: str
    enabled: bool
    state_topic: str
    command_topic: str
    availability: AvailabilityRecord


@dataclass(frozen=True)
class PulseAudioSettings(BridgeSettings):
    volume_step: int = 5


@dataclass(frozen=True)
class SwaySettings(BridgeSettings):
    name_prefix: str = ""


@dataclass(frozen=True)
class Settings:
    """Complete, validated application settings."""

    device_name: str
    mqtt: MqttSettings
    homeassistant: HomeAssistantSettings
    pulseaudio: PulseAudioSettings
    sway: SwaySettings
    version: str = VERSION
    device_id: str = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "device_id", sanitize_topic(self.device_name))

    @property
    def device_info(self) -> Dict[str, Any]:
        """Home Assistant device block shared by all entities."""
        return {
            "identifiers": [self.device_id],
            "name": self.device_name,
            "model": "Desktop Bridge",
            "sw_version": self.version,
        }

    def enabled_bridges(self) -> List[BridgeSettings]:
        return [b for b in (self.pulseaudio, self.sway) if b.enabled]


# ----------------------------
# Helper Functions
# ----------------------------


def is_interactive_environment() -> bool:
    """
    Determine if running in interactive environment.

    Returns True if stdin is a TTY and DBRIDGE_NON_INTERACTIVE is not set.
    """
    if os.getenv(f"{ENV_PREFIX}NON_INTERACTIVE"):
        return False
    return sys.stdin.isatty()


# ----------------------------
# Validation Functions
# ----------------------------


def validate_required_mqtt(
    broker: str, port: str, user: str, password: str
) -> Tuple[bool, str]:
    """
    Validate required MQTT settings.

    Returns (is_valid, error_message).
    """
    if not broker or not broker.strip():
        return False, "MQTT broker cannot be empty"

    if not user or not user.strip():
        return False, "MQTT username cannot be empty"

    if not password:
        logger.warning("MQTT password is empty - ensure your broker allows this")

    try:
        port_int = int(port)
        if not (1 <= port_int <= 65535):
            return False, f"MQTT port must be between 1-65535, got {port}"
    except ValueError:
        return False, f"MQTT port must be a number, got '{port}'"

    return True, ""


def validate_bridge_topics(bridges: List[BridgeSettings]) -> None:
    """
    Check the topics of the enabled bridges for conflicts.

    A command delivered on another bridge's topic would be decoded against
    the wrong command set, so no topic may be shared between bridges.

    Raises:
        ConfigError: On wildcards in a topic or topics shared between bridges.
    """
    seen: Dict[str, str] = {}
    for bridge in bridges:
        topics = {
            "state_topic": bridge.state_topic,
            "command_topic": bridge.command_topic,
            "availability_topic": bridge.availability.topic,
        }
        for key, topic in topics.items():
            if not topic:
                raise ConfigError(f"[{bridge.name}] {key} cannot be empty")
            if any(w in topic for w in MQTT_WILDCARDS):
                raise ConfigError(
                    f"[{bridge.name}] {key} '{topic}' must not contain MQTT wildcards"
                )
            if topic in seen and seen[topic] != f"{bridge.name}.{key}":
                raise ConfigError(
                    f"[{bridge.name}] {key} '{topic}' is already used by {seen[topic]}"
                )
            seen[topic] = f"{bridge.name}.{key}"


# ----------------------------
# First-run configuration
# ----------------------------


def create_config_interactive(config_path: Path) -> None:
    """
    Create the configuration file on first run.

    Prompts for the MQTT settings when running in a terminal, otherwise
    reads them from the environment:

        DBRIDGE_DEVICE_NAME: Device name (default: hostname)
        DBRIDGE_MQTT_BROKER: MQTT broker hostname (default: localhost)
        DBRIDGE_MQTT_PORT: MQTT broker port (default: 1883)
        DBRIDGE_MQTT_USER: MQTT username
        DBRIDGE_MQTT_PASS: MQTT password

    Raises:
        ConfigError: If the entered settings are invalid or the file cannot
            be written.
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    if is_interactive_environment():
        print("\n" + "=" * 70)
        print("Desktop Bridge - First Run Configuration")
        print("=" * 70)
        hostname = socket.gethostname()
        device_name = input(f"Device name [{hostname}]: ").strip() or hostname
        mqtt_broker = input("  MQTT broker hostname/IP: ").strip()
        mqtt_port = input("  MQTT port [1883]: ").strip() or "1883"
        mqtt_user = input("  MQTT username: ").strip()
        mqtt_pass = input("  MQTT password: ").strip()
    else:
        device_name = os.getenv(f"{ENV_PREFIX}DEVICE_NAME", socket.gethostname())
        mqtt_broker = os.getenv(f"{ENV_PREFIX}MQTT_BROKER", "localhost")
        mqtt_port = os.getenv(f"{ENV_PREFIX}MQTT_PORT", "1883")
        mqtt_user = os.getenv(f"{ENV_PREFIX}MQTT_USER", "username")
        mqtt_pass = os.getenv(f"{ENV_PREFIX}MQTT_PASS", "password")
        logger.warning("Non-interactive mode: Using environment variables or defaults")

    valid, error = validate_required_mqtt(mqtt_broker, mqtt_port, mqtt_user, mqtt_pass)
    if not valid:
        raise ConfigError(error)

    config_content = f"""; ================== DESKTOP BRIDGE CONFIG ==================
; Generated on first run
; ===========================================================

[device]
name = {device_name}

[mqtt]
broker = {mqtt_broker}
port = {mqtt_port}
username = {mqtt_user}
password = {mqtt_pass}
keepalive = 60
max_connection_retries = 10
min_reconnect_delay = 1
max_reconnect_delay = 60
connection_timeout = 30

[homeassistant]
autodiscover = true
discovery_prefix = homeassistant

[pulseaudio]
enabled = true
volume_step = 5

[sway]
enabled = true
name_prefix =
"""

    try:
        config_path.write_text(config_content, encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to write config file {config_path}: {e}") from e
    logger.info(f"Configuration created at {config_path}")


# ----------------------------
# Loading
# ----------------------------


def _get_int(parser: configparser.ConfigParser, section: str, key: str, fallback: int) -> int:
    try:
        return parser.getint(section, key, fallback=fallback)
    except ValueError as e:
        raise ConfigError(f"[{section}] {key} must be an integer") from e


def _get_bool(parser: configparser.ConfigParser, section: str, key: str, fallback: bool) -> bool:
    try:
        return parser.getboolean(section, key, fallback=fallback)
    except ValueError as e:
        raise ConfigError(f"[{section}] {key} must be true or false") from e


def _bridge_kwargs(
    parser: configparser.ConfigParser, section: str, base_topic: str
) -> Dict[str, Any]:
    """Topic settings for one bridge section, defaulting under base_topic."""
    prefix = f"{base_topic}/{section}"

    def get(key: str, default: str) -> str:
        return parser.get(section, key, fallback=default).strip()

    return {
        "name": section,
        "enabled": _get_bool(parser, section, "enabled", True),
        "state_topic": get("state_topic", f"{prefix}/state"),
        "command_topic": get("command_topic", f"{prefix}/command"),
        "availability": AvailabilityRecord(
            topic=get("availability_topic", f"{prefix}/availability"),
            payload_available=get("payload_available", "online"),
            payload_not_available=get("payload_not_available", "offline"),
        ),
    }


def parse_config(parser: configparser.ConfigParser) -> Settings:
    """
    Build validated Settings from a parsed INI document.

    Raises:
        ConfigError: On missing sections, invalid values or topic conflicts.
    """
    if not parser.has_section("mqtt"):
        raise ConfigError("Config file missing [mqtt] section")

    device_name = parser.get("device", "name", fallback=socket.gethostname()).strip()
    if not sanitize_topic(device_name):
        raise ConfigError("[device] name must contain at least one letter or digit")
    device_id = sanitize_topic(device_name)
    base_topic = f"desktop/{device_id}"

    broker = parser.get("mqtt", "broker", fallback="")
    port = parser.get("mqtt", "port", fallback="1883")
    user = parser.get("mqtt", "username", fallback="")
    password = parser.get("mqtt", "password", fallback="")
    valid, error = validate_required_mqtt(broker, port, user, password)
    if not valid:
        raise ConfigError(error)

    mqtt_settings = MqttSettings(
        broker=broker.strip(),
        port=int(port),
        username=user.strip(),
        password=password,
        keepalive=_get_int(parser, "mqtt", "keepalive", 60),
        max_retries=_get_int(parser, "mqtt", "max_connection_retries", 10),
        min_reconnect_delay=_get_int(parser, "mqtt", "min_reconnect_delay", 1),
        max_reconnect_delay=_get_int(parser, "mqtt", "max_reconnect_delay", 60),
        connection_timeout=_get_int(parser, "mqtt", "connection_timeout", 30),
    )

    homeassistant = HomeAssistantSettings(
        autodiscover=_get_bool(parser, "homeassistant", "autodiscover", True),
        discovery_prefix=parser.get(
            "homeassistant", "discovery_prefix", fallback="homeassistant"
        ).strip(),
    )

    volume_step = _get_int(parser, "pulseaudio", "volume_step", 5)
    if not (1 <= volume_step <= 100):
        raise ConfigError(f"[pulseaudio] volume_step must be between 1-100, got {volume_step}")

    pulseaudio = PulseAudioSettings(
        volume_step=volume_step,
        **_bridge_kwargs(parser, "pulseaudio", base_topic),
    )
    sway = SwaySettings(
        name_prefix=parser.get("sway", "name_prefix", fallback="").strip(),
        **_bridge_kwargs(parser, "sway", base_topic),
    )

    settings = Settings(
        device_name=device_name,
        mqtt=mqtt_settings,
        homeassistant=homeassistant,
        pulseaudio=pulseaudio,
        sway=sway,
    )
    if not settings.enabled_bridges():
        raise ConfigError("At least one of [pulseaudio] or [sway] must be enabled")
    validate_bridge_topics(settings.enabled_bridges())
    return settings


def load_config(config_path: Optional[Path] = None) -> Settings:
    """
    Load configuration file, creating it on first run.

    Args:
        config_path: Path to config.ini (default: data/config.ini)

    Returns:
        Validated Settings

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    config_path = Path(config_path) if config_path else CONFIG_PATH
    if not config_path.exists():
        create_config_interactive(config_path)

    parser = configparser.ConfigParser()
    try:
        files_read = parser.read(config_path, encoding="utf-8")
    except configparser.Error as e:
        raise ConfigError(f"Configuration file is corrupt: {e}") from e
    if not files_read:
        raise ConfigError(f"Config file exists but couldn't be read: {config_path}")

    settings = parse_config(parser)
    logger.info(f"Configuration loaded from {config_path}")
    return settings
