"""Subsystem collectors for Desktop Bridge.

Collectors are plain handles to one external desktop subsystem: they query
state, perform command actions and open event subscriptions, but never
touch MQTT. Bridges drive them through the SubsystemCollector interface.

Modules:
    base: The SubsystemCollector interface
    pulseaudio: Audio server through pactl
    sway: Sway window manager through swaymsg
"""

from typing import Callable

from desktop_bridge.core.config import Settings
from desktop_bridge.core.errors import ConfigError

from .base import SubsystemCollector
from .pulseaudio import PulseAudioCollector
from .sway import SwayCollector

CLIENT_NAME_PREFIX = "desktop-bridge"


def collector_factory(settings: Settings, name: str) -> Callable[[str], SubsystemCollector]:
    """Return a factory creating a fresh collector for each bridge task.

    Args:
        settings: Application settings.
        name: Bridge name ("pulseaudio" or "sway").

    Raises:
        ConfigError: If there is no collector for the bridge name.
    """
    if name == PulseAudioCollector.name:
        step = settings.pulseaudio.volume_step
        return lambda role: PulseAudioCollector(f"{CLIENT_NAME_PREFIX}-{role}", volume_step=step)
    if name == SwayCollector.name:
        prefix = settings.sway.name_prefix
        return lambda role: SwayCollector(name_prefix=prefix)
    raise ConfigError(f"No collector for bridge '{name}'")


__all__ = [
    "SubsystemCollector",
    "PulseAudioCollector",
    "SwayCollector",
    "collector_factory",
]
