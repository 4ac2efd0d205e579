"""Bridge composition: one subsystem connected to the MQTT broker.

A Bridge is written once against the SubsystemCollector interface and is
parameterized by a collector factory. It owns one paho-mqtt client (the
last will is per connection) and runs two loops on it:

    - the state loop (StateMonitor), following the subsystem's event stream
      and publishing snapshots
    - the command loop (CommandDispatcher), executing inbound commands in
      delivery order

Startup order:
    1. Arm the offline last will
    2. Connect (with retry) and wait for the first CONNACK
    3. Publish discovery (when autodiscover is enabled)
    4. Subscribe to the command topic
    5. Start the state and command loops
    6. Wait for the state loop to open its event subscription
    7. Declare online
"""

# Standard library imports
import logging
import threading
from typing import Any, Callable, Optional

# Third-party imports
import paho.mqtt.client as mqtt

# Local imports
from desktop_bridge.collectors.base import SubsystemCollector
from desktop_bridge.commands import CommandDispatcher
from desktop_bridge.core.availability import AvailabilityManager
from desktop_bridge.core.config import BridgeSettings, Settings
from desktop_bridge.core.connection import (
    ConnectionState,
    connect_with_retry,
    create_client,
)
from desktop_bridge.core.discovery import DiscoveryManager
from desktop_bridge.core.errors import ExternalCommandError, InventoryError, TransportError
from desktop_bridge.core.messaging import MessageBroker
from desktop_bridge.monitors.state import StateMonitor

logger = logging.getLogger(__name__)

# Called with the role of the task ("state", "command", "discovery"); every
# task gets its own collector, so no external handle is shared across threads.
CollectorFactory = Callable[[str], SubsystemCollector]

JOIN_TIMEOUT = 2
SUPERVISE_INTERVAL = 1


class Bridge:
    """Connects one desktop subsystem to Home Assistant over MQTT.

    Attributes:
        name: Bridge name ("pulseaudio", "sway").
        settings: Application settings.
        bridge_settings: Topics and availability of this bridge.
        client: The bridge's own paho-mqtt client.
        conn_state: Connection tracking for this client.
        availability: Offline/online lifecycle of this bridge.
        broker: MessageBroker around the client.
        monitor: State loop.
        dispatcher: Command loop.
    """

    def __init__(
        self,
        settings: Settings,
        bridge_settings: BridgeSettings,
        collector_factory: CollectorFactory,
        client: Optional[mqtt.Client] = None,
    ):
        self.name = bridge_settings.name
        self.settings = settings
        self.bridge_settings = bridge_settings
        self.collector_factory = collector_factory

        self.client = client or create_client(
            f"{settings.device_id}-{self.name}", settings.mqtt
        )
        self.conn_state = ConnectionState(self.name)
        self.availability = AvailabilityManager(self.client, bridge_settings.availability)
        self.broker = MessageBroker(self.client, settings.homeassistant.discovery_prefix)

        command_collector = collector_factory("command")
        self.dispatcher = CommandDispatcher(
            self.name,
            self.broker,
            bridge_settings.command_topic,
            command_collector.registry,
            command_collector.apply_command,
        )
        self.monitor = StateMonitor(
            collector_factory("state"), self.broker, bridge_settings.state_topic
        )

        self.stop_event = threading.Event()
        self.subscribed = threading.Event()
        self.state_error: Optional[BaseException] = None
        self._subscribed = False
        self._state_thread: Optional[threading.Thread] = None
        self._command_thread: Optional[threading.Thread] = None

        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        # Anything not routed by message_callback_add is rejected by the dispatcher
        self.client.on_message = self.dispatcher.on_message

    # ----------------------------
    # MQTT callbacks
    # ----------------------------

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags, reason_code, properties) -> None:
        if reason_code.is_failure:
            logger.error(f"[{self.name}] MQTT connection refused: {reason_code}")
            self.conn_state.on_disconnected()
            return

        logger.info(f"[{self.name}] MQTT connected")
        self.conn_state.on_connected()
        if self.conn_state.is_reconnect:
            if self._subscribed:
                self.dispatcher.subscribe()
            self.availability.on_reconnect()

    def _on_disconnect(self, client: mqtt.Client, userdata: Any, flags, reason_code, properties) -> None:
        self.conn_state.on_disconnected()
        if self.stop_event.is_set():
            logger.info(f"[{self.name}] MQTT client disconnected")
        else:
            logger.warning(
                f"[{self.name}] MQTT disconnected unexpectedly ({reason_code}), "
                "automatic reconnection will be attempted"
            )

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def connect(self) -> None:
        """Arm the last will, connect and wait for the broker to accept us.

        Raises:
            TransportError: If the broker cannot be reached.
        """
        mqtt_settings = self.settings.mqtt
        self.availability.arm()

        if not connect_with_retry(
            self.client,
            mqtt_settings.broker,
            mqtt_settings.port,
            keepalive=mqtt_settings.keepalive,
            max_retries=mqtt_settings.max_retries,
            initial_delay=mqtt_settings.min_reconnect_delay,
            max_delay=mqtt_settings.max_reconnect_delay,
        ):
            raise TransportError(
                f"[{self.name}] Failed to connect to MQTT broker "
                f"{mqtt_settings.broker}:{mqtt_settings.port}"
            )

        self.client.loop_start()
        if not self.conn_state.wait_for_connection(timeout=mqtt_settings.connection_timeout):
            self.client.loop_stop()
            raise TransportError(f"[{self.name}] Timed out waiting for MQTT connection")

    def publish_discovery(self) -> None:
        """Publish retained discovery descriptors for the current inventory."""
        discovery = DiscoveryManager(
            self.broker,
            self.settings.device_id,
            self.settings.device_info,
            self.name,
            self.bridge_settings.command_topic,
            self.bridge_settings.state_topic,
            self.bridge_settings.availability,
        )
        collector = self.collector_factory("discovery")
        try:
            entities = collector.list_entities(discovery)
        except (ExternalCommandError, InventoryError) as e:
            logger.error(f"[{self.name}] Could not list entities for discovery: {e}")
            return
        discovery.discover(entities)

    def _run_state_loop(self) -> None:
        try:
            self.monitor.start(self.stop_event, self.subscribed)
        except Exception as e:
            self.state_error = e
            if not self.stop_event.is_set():
                logger.error(f"[{self.name}] State loop died: {e}", exc_info=True)

    def start(self) -> None:
        """Bring the bridge up; returns once it has declared itself online.

        Raises:
            TransportError: If the broker cannot be reached or the event
                subscription cannot be opened. Online is not declared.
        """
        logger.info(f"[{self.name}] Starting bridge...")
        self.connect()

        if self.settings.homeassistant.autodiscover:
            self.publish_discovery()

        self.dispatcher.subscribe()
        self._subscribed = True

        self._state_thread = threading.Thread(
            target=self._run_state_loop, name=f"{self.name}-state", daemon=True
        )
        self._command_thread = threading.Thread(
            target=self.dispatcher.run,
            args=(self.stop_event,),
            name=f"{self.name}-command",
            daemon=True,
        )
        self._state_thread.start()
        self._command_thread.start()
        self.wait_for_subscription()

        self.availability.declare_online()
        logger.info(f"[{self.name}] Bridge running")

    def wait_for_subscription(self) -> None:
        """Block until the state loop has opened its event subscription.

        Raises:
            TransportError: If the state loop ends before subscribing.
        """
        while not self.subscribed.wait(SUPERVISE_INTERVAL):
            if not self._state_thread.is_alive():
                raise TransportError(
                    f"[{self.name}] Event subscription failed: "
                    f"{self.state_error or 'state loop ended'}"
                )

    def run(self, shutdown_event: threading.Event) -> None:
        """Start the bridge and supervise it until shutdown_event is set.

        Raises:
            TransportError: If the broker is unreachable or the state loop's
                event stream ends.
        """
        try:
            self.start()
            while not shutdown_event.is_set():
                if self._state_thread is not None and not self._state_thread.is_alive():
                    raise TransportError(
                        f"[{self.name}] State loop ended: {self.state_error or 'event stream closed'}"
                    )
                shutdown_event.wait(SUPERVISE_INTERVAL)
        finally:
            self.stop()

    def stop(self) -> None:
        """Stop both loops and disconnect, letting the broker publish offline."""
        self.stop_event.set()
        if self._command_thread is not None:
            self._command_thread.join(timeout=JOIN_TIMEOUT)
        if self.availability.armed and self.conn_state.is_connected():
            self.availability.disconnect_with_will()
        self.client.loop_stop()
        logger.info(f"[{self.name}] Bridge stopped")
