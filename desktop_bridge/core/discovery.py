"""Home Assistant MQTT discovery management for Desktop Bridge.

This module describes the entities a bridge exposes (EntityDescriptor) and
publishes their discovery configurations. Descriptors are immutable: when
the external inventory changes they are rebuilt wholesale, never patched.
"""

# Standard library imports
import enum
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Local imports
from .availability import AvailabilityRecord
from .messaging import MessageBroker
from desktop_bridge.utils.formatting import sanitize_topic

logger = logging.getLogger(__name__)

STATE_ON = "ON"
STATE_OFF = "OFF"


class EntityKind(enum.Enum):
    SWITCH = "switch"
    SELECT = "select"


@dataclass(frozen=True)
class EntityDescriptor:
    """One controllable/observable unit exposed to Home Assistant.

    Attributes:
        unique_id: Stable identifier, derived from device, subsystem and the
            external object's name (never from indices that change).
        name: Friendly name.
        kind: Home Assistant domain of the entity.
        device: Device block grouping the entities in Home Assistant.
        availability: Availability topic and payloads of the owning bridge.
        command_topic: Topic Home Assistant publishes commands to.
        state_topic: Topic carrying the bridge's state snapshot.
        value_template: Jinja template extracting the entity value from a snapshot.
        json_attributes_template: Template selecting the entity's attributes.
        payload_on / payload_off: Commands sent by a switch.
        options: Selectable values of a select.
        command_template: Template rendering a select option into a command.
    """

    unique_id: str
    name: str
    kind: EntityKind
    device: Dict[str, Any]
    availability: AvailabilityRecord
    command_topic: str
    state_topic: str
    value_template: str
    json_attributes_template: Optional[str] = None
    icon: Optional[str] = None
    payload_on: Optional[str] = None
    payload_off: Optional[str] = None
    options: Tuple[str, ...] = ()
    command_template: Optional[str] = None

    def __post_init__(self):
        if self.kind is EntityKind.SWITCH and (
            self.payload_on is None or self.payload_off is None
        ):
            raise ValueError(f"Switch '{self.unique_id}' needs payload_on and payload_off")
        if self.kind is EntityKind.SELECT and self.command_template is None:
            raise ValueError(f"Select '{self.unique_id}' needs a command_template")

    def to_payload(self) -> Dict[str, Any]:
        """Discovery configuration document for this entity."""
        config: Dict[str, Any] = {
            "name": self.name,
            "unique_id": self.unique_id,
            "object_id": self.unique_id,
            "device": self.device,
            "availability": self.availability.to_discovery(),
            "command_topic": self.command_topic,
            "state_topic": self.state_topic,
            "value_template": self.value_template,
        }
        if self.json_attributes_template:
            config["json_attributes_topic"] = self.state_topic
            config["json_attributes_template"] = self.json_attributes_template
        if self.icon:
            config["icon"] = self.icon

        if self.kind is EntityKind.SWITCH:
            config.update(
                {
                    "payload_on": self.payload_on,
                    "payload_off": self.payload_off,
                    "state_on": STATE_ON,
                    "state_off": STATE_OFF,
                    "optimistic": False,
                }
            )
        else:
            config["options"] = list(self.options)
            config["command_template"] = self.command_template
        return config


class DiscoveryManager:
    """Builds and publishes Home Assistant discovery for one bridge.

    The manager knows the bridge's topics, device block and availability,
    so adapters only describe what is specific to each entity.

    Attributes:
        broker: MessageBroker instance for publishing.
        device_id: Unique device identifier.
        device_info: Device information dictionary for Home Assistant.
        subsystem: Bridge name ("pulseaudio", "sway").
        command_topic: The bridge's command topic.
        state_topic: The bridge's state topic.
        availability: The bridge's availability record.

    Example:
        >>> discovery = DiscoveryManager(broker, "my_pc", device_info, "sway",
        ...                              "desktop/my_pc/sway/command",
        ...                              "desktop/my_pc/sway/state", availability)
        >>> switch = discovery.build_switch("eDP-1_power", "eDP-1 power", ...)
        >>> discovery.discover([switch])
    """

    def __init__(
        self,
        broker: MessageBroker,
        device_id: str,
        device_info: Dict[str, Any],
        subsystem: str,
        command_topic: str,
        state_topic: str,
        availability: AvailabilityRecord,
    ):
        self.broker = broker
        self.device_id = device_id
        self.device_info = device_info
        self.subsystem = subsystem
        self.command_topic = command_topic
        self.state_topic = state_topic
        self.availability = availability
        logger.debug(f"DiscoveryManager initialized for '{device_id}' ({subsystem})")

    def unique_id(self, object_id: str) -> str:
        """Stable identifier from device, subsystem and object name."""
        return sanitize_topic(f"{self.device_id}_{self.subsystem}_{object_id}")

    def build_switch(
        self,
        object_id: str,
        name: str,
        value_template: str,
        payload_on: str,
        payload_off: str,
        json_attributes_template: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> EntityDescriptor:
        """Describe a switch entity.

        Args:
            object_id: Name of the external object plus a suffix, e.g. "eDP-1_power".
            name: Friendly name for the switch.
            value_template: Template rendering "ON"/"OFF" from the state snapshot.
            payload_on: Command payload sent when switched on.
            payload_off: Command payload sent when switched off.
            json_attributes_template: Optional template selecting attributes.
            icon: Material Design Icon.
        """
        return EntityDescriptor(
            unique_id=self.unique_id(object_id),
            name=name,
            kind=EntityKind.SWITCH,
            device=self.device_info,
            availability=self.availability,
            command_topic=self.command_topic,
            state_topic=self.state_topic,
            value_template=value_template,
            json_attributes_template=json_attributes_template,
            icon=icon,
            payload_on=payload_on,
            payload_off=payload_off,
        )

    def build_select(
        self,
        object_id: str,
        name: str,
        options: Sequence[str],
        value_template: str,
        command_template: str,
        json_attributes_template: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> EntityDescriptor:
        """Describe a select entity.

        Args:
            object_id: Identifier of the selection, e.g. "default_sink".
            name: Friendly name for the select.
            options: Selectable values, in the order they should be shown.
            value_template: Template rendering the current option from the snapshot.
            command_template: Template rendering the chosen option into a command.
            json_attributes_template: Optional template selecting attributes.
            icon: Material Design Icon.
        """
        return EntityDescriptor(
            unique_id=self.unique_id(object_id),
            name=name,
            kind=EntityKind.SELECT,
            device=self.device_info,
            availability=self.availability,
            command_topic=self.command_topic,
            state_topic=self.state_topic,
            value_template=value_template,
            json_attributes_template=json_attributes_template,
            icon=icon,
            options=tuple(options),
            command_template=command_template,
        )

    def discover(self, entities: Sequence[EntityDescriptor]) -> List[str]:
        """Publish retained discovery configurations for all entities.

        Publishing is idempotent: unchanged inventory yields byte-identical
        payloads. Nothing on the external subsystem is touched.

        Returns:
            The discovery topics that were published.
        """
        published = []
        for entity in entities:
            self.broker.publish_discovery(
                entity.kind.value, entity.unique_id, entity.to_payload()
            )
            published.append(self.broker.discovery_topic(entity.kind.value, entity.unique_id))
            logger.debug(f"Published {entity.kind.value} discovery: {entity.name} ({entity.unique_id})")
        logger.info(f"Published discovery for {len(published)} {self.subsystem} entities")
        return published
