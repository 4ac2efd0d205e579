"""Core infrastructure modules for Desktop Bridge.

This package provides the foundational abstractions shared by every
bridge, decoupling the subsystem logic from infrastructure concerns.

Modules:
    config: Configuration loading and validation
    errors: Exception hierarchy
    messaging: MQTT messaging abstraction layer
    connection: MQTT client creation and connection management
    availability: Last will and online/offline lifecycle
    discovery: Home Assistant MQTT discovery management
    framing: Event stream framing
"""

from .availability import AvailabilityManager, AvailabilityRecord
from .config import Settings, load_config
from .discovery import DiscoveryManager, EntityDescriptor
from .errors import (
    BridgeError,
    CommandDecodeError,
    ConfigError,
    ExternalCommandError,
    InventoryError,
    TransportError,
)
from .framing import EventFramer, ParsedEvent
from .messaging import MessageBroker

__all__ = [
    "AvailabilityManager",
    "AvailabilityRecord",
    "Settings",
    "load_config",
    "DiscoveryManager",
    "EntityDescriptor",
    "BridgeError",
    "CommandDecodeError",
    "ConfigError",
    "ExternalCommandError",
    "InventoryError",
    "TransportError",
    "EventFramer",
    "ParsedEvent",
    "MessageBroker",
]
