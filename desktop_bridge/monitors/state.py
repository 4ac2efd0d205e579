"""
Subsystem state monitoring module.

This module provides the StateMonitor class which follows a collector's
live event stream and publishes a fresh state snapshot to MQTT for every
relevant event.

Example:
    >>> from desktop_bridge.collectors.sway import SwayCollector
    >>> from desktop_bridge.monitors.state import StateMonitor
    >>>
    >>> monitor = StateMonitor(SwayCollector(), broker, "desktop/my_pc/sway/state")
    >>> stop_event = threading.Event()
    >>> monitor.start(stop_event)
"""

# Standard library imports
import logging
import threading
from typing import Optional

# Local imports
from desktop_bridge.collectors.base import SubsystemCollector
from desktop_bridge.core.errors import ExternalCommandError, InventoryError
from desktop_bridge.core.messaging import MessageBroker

# Configure logger
logger = logging.getLogger(__name__)


class StateMonitor:
    """
    Publishes state snapshots of one subsystem to MQTT.

    One snapshot is published when the loop starts, then one per relevant
    event, in event order. A snapshot whose queries fail is skipped and
    logged; the loop keeps following the event stream.

    Attributes:
        collector: Collector owned by the state loop (never shared with the
            command loop)
        broker: MessageBroker instance for MQTT publishing
        state_topic: Topic the snapshots are published to
        published: Number of snapshots published
        skipped: Number of snapshots skipped because a query failed
    """

    def __init__(
        self,
        collector: SubsystemCollector,
        broker: MessageBroker,
        state_topic: str,
    ):
        self.collector = collector
        self.broker = broker
        self.state_topic = state_topic
        self.published = 0
        self.skipped = 0

    def publish_snapshot(self) -> bool:
        """
        Query a full snapshot and publish it.

        Returns:
            True if a snapshot was published, False if it was skipped.
        """
        try:
            snapshot = self.collector.query_snapshot()
        except (ExternalCommandError, InventoryError) as e:
            self.skipped += 1
            logger.error(f"[{self.collector.name}] Skipping state publish: {e}")
            return False

        self.broker.publish_state(self.state_topic, snapshot)
        self.published += 1
        return True

    def start(
        self, stop_event: threading.Event, subscribed: Optional[threading.Event] = None
    ) -> None:
        """
        Run the state loop until stop_event is set.

        The event subscription is opened before the initial snapshot is
        queried, so changes made in between are not lost.

        Args:
            stop_event: Threading event to signal shutdown
            subscribed: Set once the event subscription is open

        Raises:
            TransportError: When the event stream cannot be opened or ends.
        """
        logger.info(f"[{self.collector.name}] State monitor started")
        events = self.collector.subscribe_events()
        if subscribed is not None:
            subscribed.set()
        try:
            self.publish_snapshot()
            for event in events:
                if stop_event.is_set():
                    break
                if not self.collector.is_relevant(event):
                    logger.debug(f"[{self.collector.name}] Ignoring event {event}")
                    continue
                logger.debug(f"[{self.collector.name}] Event {event}, refreshing state")
                self.publish_snapshot()
        finally:
            close = getattr(events, "close", None)
            if close:
                close()
            logger.info(f"[{self.collector.name}] State monitor stopped")
