"""
PulseAudio/PipeWire audio collection and control.

This module wraps the ``pactl`` command-line client (JSON output mode) to
query sinks, change the default sink's volume and mute state, switch the
default sink, and follow the server's live event stream.

Example:
    >>> from desktop_bridge.collectors.pulseaudio import PulseAudioCollector
    >>> collector = PulseAudioCollector("desktop-bridge-state")
    >>> state = collector.query_snapshot()
    >>> print(state["current_sink"], state["current_volume"])
"""

# Standard library imports
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

# Local imports
from desktop_bridge.collectors.base import SubsystemCollector
from desktop_bridge.commands import CommandRegistry, InboundCommand
from desktop_bridge.core.discovery import DiscoveryManager, EntityDescriptor
from desktop_bridge.core.errors import ExternalCommandError, InventoryError
from desktop_bridge.core.framing import (
    EventCategory,
    EventFramer,
    EventTarget,
    ParsedEvent,
)
from desktop_bridge.utils.formatting import format_percentage
from desktop_bridge.utils.process import run_json, run_text, stream_process

logger = logging.getLogger(__name__)

PACTL = "pactl"
DEFAULT_SINK = "@DEFAULT_SINK@"
# pactl has `get-sink-volume @DEFAULT_SINK@`, but it ignores --format json,
# so the default volume is read from the sink list instead.
PRIMARY_CHANNEL = "front-left"


# ----------------------------
# Audio server types
# ----------------------------


@dataclass(frozen=True)
class Volume:
    """Volume of one channel as reported by pactl."""

    value: int
    value_percent: str
    db: str


@dataclass(frozen=True)
class SinkInfo:
    index: int
    name: str
    description: str
    state: str
    mute: bool
    channel_map: str
    volume: Dict[str, Volume] = field(default_factory=dict)

    @classmethod
    def from_pactl(cls, data: Dict[str, Any]) -> "SinkInfo":
        """Build a SinkInfo from one entry of ``pactl --format json list sinks``.

        Raises:
            ExternalCommandError: If a required field is missing or malformed.
        """
        try:
            volume = {
                channel: Volume(
                    value=int(v["value"]),
                    value_percent=str(v["value_percent"]).strip(),
                    db=str(v.get("db", "")).strip(),
                )
                for channel, v in (data.get("volume") or {}).items()
            }
            return cls(
                index=int(data["index"]),
                name=str(data["name"]),
                description=str(data.get("description", data["name"])),
                state=str(data.get("state", "UNKNOWN")),
                mute=bool(data.get("mute", False)),
                channel_map=str(data.get("channel_map", "")),
                volume=volume,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ExternalCommandError(f"Unexpected sink data from pactl: {e}") from e

    def primary_volume(self) -> Volume:
        """Volume of the front-left channel, or the first channel."""
        if PRIMARY_CHANNEL in self.volume:
            return self.volume[PRIMARY_CHANNEL]
        if self.volume:
            return next(iter(self.volume.values()))
        raise ExternalCommandError(f"Sink '{self.name}' reports no channels")

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


# ----------------------------
# Commands
# ----------------------------


def _check_step(value: int, name: str, allow_zero: bool = False) -> None:
    low = 0 if allow_zero else 1
    if not (low <= value <= 100):
        raise ValueError(f"{name} must be between {low} and 100, got {value}")


@dataclass(frozen=True)
class VolumeUp(InboundCommand):
    """Raise the default sink's volume; step 0 uses the configured step."""

    step: int = 0

    def __post_init__(self):
        _check_step(self.step, "step", allow_zero=True)


@dataclass(frozen=True)
class VolumeDown(InboundCommand):
    """Lower the default sink's volume; step 0 uses the configured step."""

    step: int = 0

    def __post_init__(self):
        _check_step(self.step, "step", allow_zero=True)


@dataclass(frozen=True)
class ChangeVolume(InboundCommand):
    """Change the default sink's volume by a signed percentage."""

    delta: int

    def __post_init__(self):
        _check_step(abs(self.delta), "delta")


@dataclass(frozen=True)
class ToggleMute(InboundCommand):
    pass


@dataclass(frozen=True)
class SetMute(InboundCommand):
    mute: bool


@dataclass(frozen=True)
class CycleSinks(InboundCommand):
    pass


@dataclass(frozen=True)
class SetDefaultSink(InboundCommand):
    sink_name: str

    def __post_init__(self):
        if not self.sink_name or self.sink_name.startswith("-"):
            raise ValueError(f"Invalid sink name {self.sink_name!r}")


PULSE_COMMANDS = CommandRegistry(
    VolumeUp, VolumeDown, ChangeVolume, ToggleMute, SetMute, CycleSinks, SetDefaultSink
)


# ----------------------------
# pactl handle
# ----------------------------


class Pulseaudio:
    """Handle to the audio server through ``pactl``.

    Attributes:
        client_name: Name this handle registers with the server, so the
            state task and the command task show up as separate clients.
    """

    def __init__(self, client_name: str):
        self.client_name = client_name

    def _args(self, *args: str, json_output: bool = False) -> List[str]:
        base = [PACTL, "--client-name", self.client_name]
        if json_output:
            base += ["--format", "json"]
        return base + list(args)

    def run_command(self, *args: str) -> None:
        """Run a pactl action.

        Raises:
            ExternalCommandError: If pactl reports a failure.
        """
        if not args:
            raise ValueError("pactl command cannot be empty")
        run_text(self._args(*args))

    def run_command_with_output(self, *args: str) -> Any:
        return run_json(self._args(*args, json_output=True))

    def default_sink_name(self) -> str:
        info = self.run_command_with_output("info")
        try:
            return str(info["default_sink_name"])
        except (KeyError, TypeError) as e:
            raise ExternalCommandError("pactl info did not report a default sink") from e

    def list_sinks(self) -> List[SinkInfo]:
        sinks = self.run_command_with_output("list", "sinks")
        if not isinstance(sinks, list):
            raise ExternalCommandError("pactl list sinks did not return a list")
        return [SinkInfo.from_pactl(s) for s in sinks]

    def get_default_sink(self) -> SinkInfo:
        default_name = self.default_sink_name()
        return find_sink(self.list_sinks(), default_name)

    def get_default_volume(self) -> Volume:
        return self.get_default_sink().primary_volume()

    def set_default_sink(self, sink_name: str) -> None:
        self.run_command("set-default-sink", sink_name)

    def change_volume(self, delta: int) -> None:
        sign = "+" if delta >= 0 else "-"
        amount = format_percentage(abs(delta))
        self.run_command("set-sink-volume", DEFAULT_SINK, f"{sign}{amount}")

    def volume_up(self, step: int) -> None:
        self.change_volume(abs(step))

    def volume_down(self, step: int) -> None:
        self.change_volume(-abs(step))

    def toggle_mute(self) -> None:
        self.run_command("set-sink-mute", DEFAULT_SINK, "toggle")

    def set_mute(self, mute: bool) -> None:
        self.run_command("set-sink-mute", DEFAULT_SINK, "1" if mute else "0")

    def cycle_sinks(self) -> str:
        """Make the sink after the current default the new default.

        Wraps around from the last sink to the first. Only one action is
        performed (after two queries), so an interruption leaves either the
        old or the new default in place.

        Returns:
            Name of the new default sink.

        Raises:
            InventoryError: If there are no sinks or the default is unknown.
        """
        sinks = self.list_sinks()
        if not sinks:
            raise InventoryError("Cannot cycle sinks: the audio server reports none")
        default_name = self.default_sink_name()
        for i, sink in enumerate(sinks):
            if sink.name == default_name:
                new_sink = sinks[(i + 1) % len(sinks)]
                self.set_default_sink(new_sink.name)
                return new_sink.name
        raise InventoryError(f"Cannot cycle sinks: default sink '{default_name}' not listed")

    def subscribe(self) -> Iterator[bytes]:
        """Raw stdout of ``pactl --format json subscribe``."""
        return stream_process(self._args("subscribe", json_output=True))


def find_sink(sinks: List[SinkInfo], name: str) -> SinkInfo:
    for sink in sinks:
        if sink.name == name:
            return sink
    raise InventoryError(f"Sink '{name}' not found")


def classify_pulse_event(data: Dict[str, Any]) -> ParsedEvent:
    """Map a pactl subscribe object (``{"event": ..., "on": ...}``) to a ParsedEvent."""
    return ParsedEvent(
        category=EventCategory.parse(data.get("event")),
        target=EventTarget.parse(data.get("on")),
        data=data,
    )


# ----------------------------
# Collector
# ----------------------------


class PulseAudioCollector(SubsystemCollector):
    """Audio subsystem collector built on a Pulseaudio handle.

    Attributes:
        pulse: The pactl handle owned by this collector.
        volume_step: Step used by VolumeUp/VolumeDown without an explicit step.
    """

    name = "pulseaudio"
    registry = PULSE_COMMANDS

    def __init__(self, client_name: str, volume_step: int = 5, pulse: Optional[Pulseaudio] = None):
        self.pulse = pulse or Pulseaudio(client_name)
        self.volume_step = volume_step

    def query_snapshot(self) -> Dict[str, Any]:
        """Sinks plus the default sink's name, volume and mute flag.

        The default sink is looked up in the same sink list that is
        published, so the two can never disagree.
        """
        sinks = self.pulse.list_sinks()
        default_name = self.pulse.default_sink_name()
        default_sink = find_sink(sinks, default_name)
        return {
            "sinks": [s.to_dict() for s in sinks],
            "current_sink": default_sink.name,
            "current_volume": default_sink.primary_volume().value_percent,
            "current_mute": default_sink.mute,
        }

    def list_entities(self, discovery: DiscoveryManager) -> List[EntityDescriptor]:
        sinks = self.pulse.list_sinks()
        return [
            discovery.build_select(
                "default_sink",
                "Audio output",
                options=[s.name for s in sinks],
                value_template="{{ value_json.current_sink }}",
                command_template=SetDefaultSink(sink_name="{{ value }}").to_payload(),
                json_attributes_template=(
                    "{{ {'volume': value_json.current_volume, "
                    "'mute': value_json.current_mute} | tojson }}"
                ),
                icon="mdi:speaker",
            ),
            discovery.build_switch(
                "default_sink_mute",
                "Audio mute",
                value_template="{{ 'ON' if value_json.current_mute else 'OFF' }}",
                payload_on=SetMute(mute=True).to_payload(),
                payload_off=SetMute(mute=False).to_payload(),
                icon="mdi:volume-off",
            ),
        ]

    def apply_command(self, command: InboundCommand) -> None:
        if isinstance(command, VolumeUp):
            self.pulse.volume_up(command.step or self.volume_step)
        elif isinstance(command, VolumeDown):
            self.pulse.volume_down(command.step or self.volume_step)
        elif isinstance(command, ChangeVolume):
            self.pulse.change_volume(command.delta)
        elif isinstance(command, ToggleMute):
            self.pulse.toggle_mute()
        elif isinstance(command, SetMute):
            self.pulse.set_mute(command.mute)
        elif isinstance(command, CycleSinks):
            new_sink = self.pulse.cycle_sinks()
            logger.info(f"Default sink is now {new_sink}")
        elif isinstance(command, SetDefaultSink):
            self.pulse.set_default_sink(command.sink_name)
        else:
            raise ExternalCommandError(f"Unsupported audio command: {command!r}")

    def subscribe_events(self) -> Iterator[ParsedEvent]:
        return EventFramer(self.pulse.subscribe(), classify_pulse_event)

    def is_relevant(self, event: ParsedEvent) -> bool:
        return event.target is EventTarget.SINK
