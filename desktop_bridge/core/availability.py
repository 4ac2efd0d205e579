"""Bridge availability lifecycle.

The hub learns whether a bridge is reachable from a retained availability
topic. The offline payload is registered with the broker as the client's
last will *before* the connection is opened, so an unclean disconnect at
any point (even before the bridge finished starting) leaves the hub with
the offline payload. The online payload is only published once the state
loop and the command loop are both running.
"""

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict

import paho.mqtt.client as mqtt
from paho.mqtt.packettypes import PacketTypes
from paho.mqtt.reasoncodes import ReasonCode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvailabilityRecord:
    """Availability topic with its online and offline payloads."""

    topic: str
    payload_available: str = "online"
    payload_not_available: str = "offline"

    def to_discovery(self) -> Dict[str, Any]:
        """Availability block as embedded in discovery payloads."""
        return {
            "topic": self.topic,
            "payload_available": self.payload_available,
            "payload_not_available": self.payload_not_available,
        }


# MQTT 5 DISCONNECT reason code 4
DISCONNECT_WITH_WILL = "Disconnect with will message"


class AvailabilityState(enum.Enum):
    OFFLINE = "offline"
    ONLINE = "online"


class AvailabilityManager:
    """Owns the offline/online lifecycle of one bridge's MQTT client.

    There is no ``declare_offline()``: offline is only ever reached through
    the broker delivering the armed last will.

    Attributes:
        client: paho-mqtt client the will is registered on.
        record: Availability topic and payloads for this bridge.
        state: Current AvailabilityState as last declared by this manager.

    Example:
        >>> manager = AvailabilityManager(client, record)
        >>> manager.arm()              # before client.connect()
        >>> client.connect(host, port)
        >>> manager.declare_online()   # once both loops are running
    """

    def __init__(self, client: mqtt.Client, record: AvailabilityRecord):
        self.client = client
        self.record = record
        self.state = AvailabilityState.OFFLINE
        self._armed = False
        self._lock = threading.Lock()

    @property
    def armed(self) -> bool:
        return self._armed

    def arm(self) -> None:
        """Register the retained offline payload as the client's last will.

        Raises:
            RuntimeError: If the client is already connected; a will set after
                CONNECT is never sent to the broker.
        """
        if self.client.is_connected():
            raise RuntimeError(
                "Last will must be armed before the MQTT connection is opened"
            )
        self.client.will_set(
            self.record.topic,
            payload=self.record.payload_not_available,
            qos=1,
            retain=True,
        )
        self._armed = True
        logger.info(f"Last will armed on {self.record.topic}")

    def declare_online(self) -> None:
        """Publish the retained online payload.

        Raises:
            RuntimeError: If called before ``arm()``.
        """
        if not self._armed:
            raise RuntimeError("declare_online() called before arm()")
        with self._lock:
            self.client.publish(
                self.record.topic,
                payload=self.record.payload_available,
                qos=1,
                retain=True,
            )
            self.state = AvailabilityState.ONLINE
        logger.info(f"Declared online on {self.record.topic}")

    def on_reconnect(self) -> None:
        """Re-declare online after an automatic reconnection.

        The broker delivered the will when the previous connection dropped,
        so a bridge that was online must announce itself again.
        """
        if self.state is AvailabilityState.ONLINE:
            logger.info("Reconnected, re-declaring availability")
            self.declare_online()

    def disconnect_with_will(self) -> None:
        """Close the connection and have the broker deliver the armed will.

        Used on clean shutdown, so the hub sees the bridge go offline even
        though the connection did not drop.
        """
        self.client.disconnect(
            reasoncode=ReasonCode(PacketTypes.DISCONNECT, DISCONNECT_WITH_WILL)
        )
        self.state = AvailabilityState.OFFLINE
        logger.info(f"Disconnected, broker will publish offline on {self.record.topic}")
