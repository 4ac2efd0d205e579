"""
Sway window manager collection and control.

This module talks to sway through ``swaymsg``: it queries outputs and
workspaces, runs sway commands (output power, output enable, workspace
focus), and follows the IPC event stream for workspace and window changes.

Example:
    >>> from desktop_bridge.collectors.sway import SwayCollector
    >>> collector = SwayCollector()
    >>> state = collector.query_snapshot()
    >>> print(state["current_workspace"], list(state["outputs"]))
"""

# Standard library imports
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

# Local imports
from desktop_bridge.collectors.base import SubsystemCollector
from desktop_bridge.commands import CommandRegistry, InboundCommand
from desktop_bridge.core.discovery import DiscoveryManager, EntityDescriptor
from desktop_bridge.core.errors import ExternalCommandError
from desktop_bridge.core.framing import (
    EventCategory,
    EventFramer,
    EventTarget,
    ParsedEvent,
)
from desktop_bridge.utils.process import run_json, stream_process

logger = logging.getLogger(__name__)

SWAYMSG = "swaymsg"
SUBSCRIBED_EVENTS = ["workspace", "window"]

# Output names are connector names such as eDP-1 or HDMI-A-1
OUTPUT_NAME_PATTERN = re.compile(r"[A-Za-z0-9._-]+")

NEW_CHANGES = frozenset(["new", "init"])
REMOVE_CHANGES = frozenset(["close", "empty"])


# ----------------------------
# Commands
# ----------------------------


@dataclass(frozen=True)
class OutputCommand(InboundCommand):
    """Base for commands addressed to one output."""

    output_name: str

    def __post_init__(self):
        if not OUTPUT_NAME_PATTERN.fullmatch(self.output_name):
            raise ValueError(f"Invalid output name {self.output_name!r}")


@dataclass(frozen=True)
class OutputPowerOn(OutputCommand):
    def sway_command(self) -> str:
        return f"output {self.output_name} power on"


@dataclass(frozen=True)
class OutputPowerOff(OutputCommand):
    def sway_command(self) -> str:
        return f"output {self.output_name} power off"


@dataclass(frozen=True)
class OutputEnable(OutputCommand):
    def sway_command(self) -> str:
        return f"output {self.output_name} enable"


@dataclass(frozen=True)
class OutputDisable(OutputCommand):
    def sway_command(self) -> str:
        return f"output {self.output_name} disable"


@dataclass(frozen=True)
class FocusWorkspace(InboundCommand):
    workspace_name: str

    def __post_init__(self):
        if not self.workspace_name or any(ord(c) < 32 for c in self.workspace_name):
            raise ValueError(f"Invalid workspace name {self.workspace_name!r}")

    def sway_command(self) -> str:
        # Quoted so that ';' and ',' inside the name are not command separators
        escaped = self.workspace_name.replace("\\", "\\\\").replace('"', '\\"')
        return f'workspace "{escaped}"'


SWAY_COMMANDS = CommandRegistry(
    OutputPowerOn, OutputPowerOff, OutputEnable, OutputDisable, FocusWorkspace
)


# ----------------------------
# swaymsg handle
# ----------------------------


class Sway:
    """Handle to sway's IPC through ``swaymsg``."""

    def __init__(self, socket_path: Optional[str] = None):
        self.socket_path = socket_path

    def _args(self, *args: str) -> List[str]:
        base = [SWAYMSG, "-r"]
        if self.socket_path:
            base += ["-s", self.socket_path]
        return base + list(args)

    def get_outputs(self) -> List[Dict[str, Any]]:
        outputs = run_json(self._args("-t", "get_outputs"))
        if not isinstance(outputs, list):
            raise ExternalCommandError("get_outputs did not return a list")
        return outputs

    def get_workspaces(self) -> List[Dict[str, Any]]:
        workspaces = run_json(self._args("-t", "get_workspaces"))
        if not isinstance(workspaces, list):
            raise ExternalCommandError("get_workspaces did not return a list")
        return workspaces

    def run_command(self, command: str) -> None:
        """Run one sway command.

        Raises:
            ExternalCommandError: If swaymsg fails or sway reports an error.
        """
        results = run_json(self._args("--", command))
        if not isinstance(results, list):
            results = [results]
        errors = [
            r.get("error", "unknown error")
            for r in results
            if not (isinstance(r, dict) and r.get("success"))
        ]
        if errors:
            raise ExternalCommandError(f"sway command '{command}' failed: {'; '.join(map(str, errors))}")

    def subscribe(self, events: List[str]) -> Iterator[bytes]:
        """Raw stdout of ``swaymsg -m -t subscribe``."""
        return stream_process(self._args("-m", "-t", "subscribe", json.dumps(events)))


def normalize_output(output: Dict[str, Any]) -> Dict[str, Any]:
    """Keep the output fields the hub templates rely on.

    Older sway versions report the power state as ``dpms``, newer ones as
    ``power``; both keys are published with the same value.
    """
    power = output.get("power", output.get("dpms", False))
    return {
        "name": output["name"],
        "make": output.get("make", ""),
        "model": output.get("model", ""),
        "active": bool(output.get("active", False)),
        "dpms": bool(power),
        "power": bool(power),
        "current_workspace": output.get("current_workspace"),
    }


def normalize_workspace(workspace: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": workspace["name"],
        "num": workspace.get("num", -1),
        "output": workspace.get("output", ""),
        "focused": bool(workspace.get("focused", False)),
        "visible": bool(workspace.get("visible", False)),
        "urgent": bool(workspace.get("urgent", False)),
    }


def classify_sway_event(data: Dict[str, Any]) -> ParsedEvent:
    """Map a sway IPC event object to a ParsedEvent.

    Workspace events carry ``current``, window events carry ``container``;
    anything else (including the subscription acknowledgement) is unknown.
    """
    if "current" in data:
        target = EventTarget.WORKSPACE
    elif "container" in data:
        target = EventTarget.WINDOW
    else:
        target = EventTarget.UNKNOWN

    change = data.get("change")
    if change in NEW_CHANGES:
        category = EventCategory.NEW
    elif change in REMOVE_CHANGES:
        category = EventCategory.REMOVE
    elif isinstance(change, str):
        category = EventCategory.CHANGE
    else:
        category = EventCategory.UNKNOWN
    return ParsedEvent(category=category, target=target, data=data)


# ----------------------------
# Collector
# ----------------------------


class SwayCollector(SubsystemCollector):
    """Window manager collector built on a Sway handle.

    Attributes:
        sway: The swaymsg handle owned by this collector.
        name_prefix: Prefix for entity names in Home Assistant.
    """

    name = "sway"
    registry = SWAY_COMMANDS

    def __init__(self, name_prefix: str = "", sway: Optional[Sway] = None):
        self.sway = sway or Sway()
        self.name_prefix = name_prefix

    def query_snapshot(self) -> Dict[str, Any]:
        """Outputs keyed by name, all workspaces, and the focused workspace."""
        try:
            outputs = {o["name"]: normalize_output(o) for o in self.sway.get_outputs()}
            workspaces = [normalize_workspace(w) for w in self.sway.get_workspaces()]
        except (KeyError, TypeError, AttributeError) as e:
            raise ExternalCommandError(f"Unexpected data from sway: {e}") from e

        focused = [w["name"] for w in workspaces if w["focused"]]
        return {
            "outputs": outputs,
            "workspaces": workspaces,
            "current_workspace": focused[-1] if focused else "",
        }

    def list_entities(self, discovery: DiscoveryManager) -> List[EntityDescriptor]:
        try:
            return self._build_entities(discovery)
        except (KeyError, TypeError, AttributeError) as e:
            raise ExternalCommandError(f"Unexpected data from sway: {e}") from e

    def _build_entities(self, discovery: DiscoveryManager) -> List[EntityDescriptor]:
        entities = []
        for output in self.sway.get_outputs():
            name = output["name"]
            if not OUTPUT_NAME_PATTERN.fullmatch(name):
                logger.warning(f"Skipping output with unsupported name {name!r}")
                continue
            attributes = f"{{{{ value_json.outputs['{name}'] | tojson }}}}"
            entities.append(
                discovery.build_switch(
                    f"{name}_power",
                    f"{self.name_prefix}{name} power",
                    value_template=(
                        f"{{{{ 'ON' if value_json.outputs['{name}'].dpms == true else 'OFF' }}}}"
                    ),
                    payload_on=OutputPowerOn(output_name=name).to_payload(),
                    payload_off=OutputPowerOff(output_name=name).to_payload(),
                    json_attributes_template=attributes,
                    icon="mdi:monitor",
                )
            )
            entities.append(
                discovery.build_switch(
                    f"{name}_enable",
                    f"{self.name_prefix}{name} enabled",
                    value_template=(
                        f"{{{{ 'ON' if value_json.outputs['{name}'].active == true else 'OFF' }}}}"
                    ),
                    payload_on=OutputEnable(output_name=name).to_payload(),
                    payload_off=OutputDisable(output_name=name).to_payload(),
                    json_attributes_template=attributes,
                    icon="mdi:monitor-shimmer",
                )
            )

        workspaces = sorted(self.sway.get_workspaces(), key=lambda w: (w.get("num", -1), w["name"]))
        entities.append(
            discovery.build_select(
                "workspace",
                f"{self.name_prefix}Workspace",
                options=[w["name"] for w in workspaces],
                value_template="{{ value_json.current_workspace }}",
                command_template=FocusWorkspace(workspace_name="{{ value }}").to_payload(),
                icon="mdi:view-dashboard",
            )
        )
        return entities

    def apply_command(self, command: InboundCommand) -> None:
        if not isinstance(command, (OutputCommand, FocusWorkspace)):
            raise ExternalCommandError(f"Unsupported sway command: {command!r}")
        cmd = command.sway_command()
        logger.debug(f"Running sway command: {cmd}")
        self.sway.run_command(cmd)

    def subscribe_events(self) -> Iterator[ParsedEvent]:
        return EventFramer(self.sway.subscribe(SUBSCRIBED_EVENTS), classify_sway_event)

    def is_relevant(self, event: ParsedEvent) -> bool:
        return event.target in (EventTarget.WORKSPACE, EventTarget.WINDOW)
