"""MQTT messaging abstraction layer for Desktop Bridge.

This module provides a thin abstraction over MQTT operations, decoupling
the bridges from the underlying paho-mqtt client.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

import paho.mqtt.client as mqtt


logger = logging.getLogger(__name__)


def dump_payload(data: Dict[str, Any]) -> str:
    """Serialize a payload deterministically.

    Keys are sorted so that the same document always produces the same
    bytes, which keeps retained discovery payloads byte-identical across
    restarts.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


class MessageBroker:
    """Abstraction layer for MQTT messaging operations.

    Wraps the paho-mqtt client and provides a clean interface for
    publishing state snapshots and Home Assistant discovery messages.
    Each bridge owns one MessageBroker around its own client, shared
    between its state loop and its command loop (paho's publish is
    thread-safe).

    Attributes:
        client: The underlying paho-mqtt client instance.
        discovery_prefix: Home Assistant MQTT discovery prefix.

    Example:
        >>> broker = MessageBroker(client, "homeassistant")
        >>> broker.publish_state("desktop/my_pc/sway/state", {"current_workspace": "1"})
    """

    def __init__(self, client: mqtt.Client, discovery_prefix: str = "homeassistant"):
        self.client = client
        self.discovery_prefix = discovery_prefix
        logger.debug(f"MessageBroker initialized with discovery_prefix='{discovery_prefix}'")

    def publish_state(
        self,
        topic: str,
        state: Dict[str, Any],
        qos: int = 1,
        retain: bool = False,
    ) -> mqtt.MQTTMessageInfo:
        """Publish a state snapshot as JSON.

        State topics are not retained: they describe current truth for
        active hub sessions, and a fresh snapshot follows every event.

        Args:
            topic: State topic of the bridge.
            state: Snapshot dictionary.
            qos: Quality of Service level (0, 1, or 2).
            retain: Whether to retain the message on the broker.
        """
        info = self.client.publish(topic, payload=dump_payload(state), qos=qos, retain=retain)
        logger.debug(f"Published state to {topic}")
        return info

    def discovery_topic(self, domain: str, unique_id: str) -> str:
        """Discovery topic: ``{discovery_prefix}/{domain}/{unique_id}/config``."""
        return f"{self.discovery_prefix}/{domain}/{unique_id}/config"

    def publish_discovery(
        self,
        domain: str,
        unique_id: str,
        config: Dict[str, Any],
        qos: int = 1,
        retain: bool = True,
    ) -> mqtt.MQTTMessageInfo:
        """Publish Home Assistant MQTT discovery configuration.

        Args:
            domain: Home Assistant domain (e.g., "switch", "select").
            unique_id: Unique entity identifier.
            config: Discovery configuration dictionary.
            qos: Quality of Service level.
            retain: Whether to retain the message (True for discovery, so the
                hub sees it even if it was offline during startup).

        Example:
            >>> broker.publish_discovery("switch", "my_pc_sway_edp-1_power", {
            ...     "name": "eDP-1 power",
            ...     "command_topic": "desktop/my_pc/sway/command",
            ... })
        """
        topic = self.discovery_topic(domain, unique_id)
        info = self.client.publish(topic, payload=dump_payload(config), qos=qos, retain=retain)
        logger.debug(f"Published discovery config to {topic}")
        return info

    def subscribe(self, topic: str, callback: Optional[Callable] = None, qos: int = 1) -> None:
        """Subscribe to an MQTT topic.

        Args:
            topic: MQTT topic to subscribe to.
            callback: Optional callback function for this specific topic.
            qos: Subscription QoS.
        """
        self.client.subscribe(topic, qos=qos)
        if callback:
            self.client.message_callback_add(topic, callback)
        logger.info(f"Subscribed to topic: {topic}")
