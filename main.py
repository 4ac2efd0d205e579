#!/usr/bin/env python3
"""Desktop Bridge - sway and PulseAudio integration for Home Assistant.

Desktop Bridge connects two live desktop subsystems, the sway window
manager and the PulseAudio/PipeWire audio server, to an MQTT broker so that
Home Assistant can observe and control them.

The application provides:
- Live state snapshots of the audio server and the window manager
- Remote control via MQTT commands (volume, mute, default sink, output
  power, output enable, workspace focus)
- Automatic Home Assistant MQTT discovery
- Per-bridge availability tracking via the MQTT last will

Architecture:
    1. **Core Layer** (desktop_bridge/core/):
       - config: Configuration management
       - messaging: MQTT messaging abstraction
       - connection: MQTT client and connection management
       - availability: Last will and online/offline lifecycle
       - discovery: Home Assistant discovery management
       - framing: Event stream framing

    2. **Data Collection Layer** (desktop_bridge/collectors/):
       - pulseaudio: Audio server through pactl
       - sway: Window manager through swaymsg

    3. **Monitoring Layer** (desktop_bridge/monitors/):
       - state: State snapshot publishing

    4. **Feature Layer** (desktop_bridge/):
       - commands: Inbound command decoding and dispatch
       - bridge: Composition of the above per subsystem

MQTT Topics Structure (defaults, configurable per bridge):
    desktop/{device_id}/{bridge}/availability    - Online/offline status (LWT)
    desktop/{device_id}/{bridge}/state           - State snapshot (JSON)
    desktop/{device_id}/{bridge}/command         - Commands (JSON)

Thread Safety:
    - Each bridge runs in its own thread, with a state loop thread and a
      command loop thread of its own
    - Graceful shutdown via threading.Event signals
    - Clean disconnect on SIGINT/SIGTERM

Usage:
    python main.py                          # Normal operation
    python main.py --config path/to.ini     # Alternative config file
    python main.py --debug                  # Debug logging

Exit Codes:
    0: Clean shutdown
    1: Configuration error, connection failure or lost event stream
"""

# Standard library imports
import argparse
import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

# Local imports
from desktop_bridge.bridge import Bridge
from desktop_bridge.collectors import collector_factory
from desktop_bridge.core.config import BASE_DIR, VERSION, load_config
from desktop_bridge.core.errors import BridgeError, ConfigError

LOG_PATH = BASE_DIR / "data" / "bridge.log"
JOIN_TIMEOUT = 5

logger = logging.getLogger()


# ----------------------------
# Logging Configuration
# ----------------------------


def setup_logging(debug: bool = False, log_path: Path = LOG_PATH) -> None:
    """Configure the root logger with console and rotating file handlers."""
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(module)s: %(message)s",
        datefmt="%m/%d/%Y %H:%M:%S",
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Rotating file handler
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=5 * 1024 * 1024,  # 5MB per file
        backupCount=3,  # Keep 3 backups (bridge.log.1, bridge.log.2, bridge.log.3)
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="desktop-bridge",
        description="Bridge sway and PulseAudio to Home Assistant over MQTT.",
    )
    parser.add_argument(
        "--config", type=Path, default=None, help="Path to config.ini (default: data/config.ini)"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser.parse_args(argv)


# ----------------------------
# Bridge threads
# ----------------------------


def run_bridge(bridge: Bridge, shutdown_event: threading.Event, failures: List[str]) -> None:
    """Thread target: run one bridge, recording a fatal error as a failure."""
    try:
        bridge.run(shutdown_event)
    except BridgeError as e:
        logger.error(f"Bridge '{bridge.name}' failed: {e}")
        failures.append(bridge.name)
    except Exception as e:
        logger.critical(f"Fatal error in bridge '{bridge.name}': {e}", exc_info=True)
        failures.append(bridge.name)
    finally:
        # One dead bridge ends the process so the supervisor restarts it
        shutdown_event.set()


# ----------------------------
# Main
# ----------------------------


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for Desktop Bridge.

    Loads the settings, builds a Bridge for every enabled subsystem, runs
    each one in its own thread and waits for SIGINT/SIGTERM or for a bridge
    to die.

    Returns:
        Process exit code (0 on clean shutdown, 1 on failure).
    """
    args = parse_args(argv)
    setup_logging(args.debug)
    logger.info(f"Starting Desktop Bridge {VERSION}...")

    try:
        settings = load_config(args.config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    shutdown_event = threading.Event()

    def signal_handler(sig, frame):
        """Handle shutdown signals gracefully."""
        logger.info("Shutdown signal received, stopping all bridges...")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    failures: List[str] = []
    threads = []
    for bridge_settings in settings.enabled_bridges():
        bridge = Bridge(
            settings,
            bridge_settings,
            collector_factory(settings, bridge_settings.name),
        )
        thread = threading.Thread(
            target=run_bridge,
            args=(bridge, shutdown_event, failures),
            name=f"Bridge-{bridge.name}",
        )
        thread.start()
        threads.append(thread)
        logger.info(f"Bridge '{bridge.name}' started")

    logger.info("=" * 50)
    logger.info("Desktop Bridge running. Press Ctrl+C to exit...")
    logger.info(f"Device: {settings.device_id}")
    logger.info(f"MQTT Broker: {settings.mqtt.broker}:{settings.mqtt.port}")
    logger.info("=" * 50)

    while not shutdown_event.is_set():
        shutdown_event.wait(1)

    for thread in threads:
        thread.join(timeout=JOIN_TIMEOUT)

    if failures:
        logger.error(f"Exiting after failure of: {', '.join(failures)}")
        return 1
    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
