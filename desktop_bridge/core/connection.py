"""MQTT connection management for Desktop Bridge.

Each bridge owns one paho-mqtt client, since the last will is a
per-connection property and every bridge has its own availability topic.

Connection Management:
    - Initial connection with exponential backoff
    - Automatic reconnection handled by paho's network loop
    - Connection state tracking for thread coordination
"""

import logging
import socket
import threading
import time
from typing import Optional

import paho.mqtt.client as mqtt

from desktop_bridge.core.config import MqttSettings

logger = logging.getLogger(__name__)


class ConnectionState:
    """Track MQTT connection state for monitoring and thread coordination."""

    def __init__(self, name: str = "mqtt"):
        self.name = name
        self.connected = threading.Event()
        self.connection_count = 0
        self.last_disconnect_time: Optional[float] = None
        self.lock = threading.Lock()

    def on_connected(self) -> None:
        """Mark as connected."""
        with self.lock:
            self.connected.set()
            self.connection_count += 1
            logger.info(
                f"[{self.name}] Connection established "
                f"(total connections: {self.connection_count})"
            )

    def on_disconnected(self) -> None:
        """Mark as disconnected."""
        with self.lock:
            self.connected.clear()
            self.last_disconnect_time = time.time()
            logger.warning(f"[{self.name}] Connection lost")

    def wait_for_connection(self, timeout: Optional[float] = None) -> bool:
        """Block until connected or timeout. Returns True if connected."""
        return self.connected.wait(timeout)

    def is_connected(self) -> bool:
        return self.connected.is_set()

    @property
    def is_reconnect(self) -> bool:
        """True once more than one connection has been established."""
        return self.connection_count > 1


def create_client(client_id: str, settings: MqttSettings) -> mqtt.Client:
    """Create a paho-mqtt client configured from settings.

    MQTT 5 is used so that a clean shutdown can still ask the broker to
    deliver the last will. The will itself is not set here; it is armed by
    the bridge's AvailabilityManager before connecting.
    """
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, protocol=mqtt.MQTTv5
    )
    if settings.username:
        client.username_pw_set(settings.username, settings.password)
    client.reconnect_delay_set(
        min_delay=settings.min_reconnect_delay, max_delay=settings.max_reconnect_delay
    )
    return client


def connect_with_retry(
    client: mqtt.Client,
    broker: str,
    port: int,
    keepalive: int = 60,
    max_retries: Optional[int] = 10,
    initial_delay: float = 1,
    max_delay: float = 60,
) -> bool:
    """
    Connect to MQTT broker with exponential backoff retry logic.

    Args:
        client: MQTT client instance
        broker: MQTT broker hostname/IP
        port: MQTT broker port
        keepalive: Keepalive interval in seconds
        max_retries: Maximum retry attempts (None = infinite)
        initial_delay: Initial retry delay in seconds
        max_delay: Maximum retry delay in seconds

    Returns:
        bool: True if connection initiated successfully
    """
    retry_count = 0
    delay = initial_delay

    while max_retries is None or retry_count < max_retries:
        try:
            logger.info(f"Attempting to connect to MQTT broker at {broker}:{port}...")
            client.connect(broker, port, keepalive=keepalive)
            logger.info("MQTT connection initiated successfully")
            return True

        except (ConnectionRefusedError, OSError, socket.error) as e:
            retry_count += 1
            if max_retries is not None and retry_count >= max_retries:
                logger.error(f"Failed to connect after {retry_count} attempts: {e}")
                return False

            logger.warning(f"Connection attempt {retry_count} failed: {e}")
            logger.info(f"Retrying in {delay} seconds...")
            time.sleep(delay)

            # Exponential backoff with max cap
            delay = min(delay * 2, max_delay)

    return False
