"""Capability interface shared by the subsystem collectors.

A Bridge is written once against this interface; each desktop subsystem
supplies a collector implementing it. Collectors are plain handles to the
external subsystem: every task that needs one creates its own instance,
so no collector is ever shared between threads.
"""

import abc
import logging
from typing import Any, Dict, Iterator, List

from desktop_bridge.commands import CommandRegistry, InboundCommand
from desktop_bridge.core.discovery import DiscoveryManager, EntityDescriptor
from desktop_bridge.core.framing import ParsedEvent

logger = logging.getLogger(__name__)


class SubsystemCollector(abc.ABC):
    """Query, control and observe one external desktop subsystem.

    Attributes:
        name: Subsystem name, also used in unique ids and log messages.
        registry: Commands this subsystem understands.
    """

    name: str = "subsystem"
    registry: CommandRegistry = CommandRegistry()

    @abc.abstractmethod
    def query_snapshot(self) -> Dict[str, Any]:
        """Query the full current state from scratch.

        Every field is re-queried on each call; nothing is cached between
        snapshots.

        Raises:
            ExternalCommandError: If any sub-query fails. No partial snapshot
                is ever returned.
        """

    @abc.abstractmethod
    def list_entities(self, discovery: DiscoveryManager) -> List[EntityDescriptor]:
        """Describe the entities for the current external inventory."""

    @abc.abstractmethod
    def apply_command(self, command: InboundCommand) -> None:
        """Perform the single external action a command maps to.

        Raises:
            ExternalCommandError: If the subsystem rejects the action.
            InventoryError: If the command references missing inventory.
        """

    @abc.abstractmethod
    def subscribe_events(self) -> Iterator[ParsedEvent]:
        """Open a live subscription and yield its events.

        The subscription is open by the time this returns, so no change
        after the return is missed.

        Raises:
            TransportError: When the subscription cannot be opened or ends.
        """

    @abc.abstractmethod
    def is_relevant(self, event: ParsedEvent) -> bool:
        """Whether an event should trigger a new snapshot."""
