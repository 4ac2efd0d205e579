"""Monitoring loop implementations for Desktop Bridge.

Monitors coordinate a collector and a message broker: they follow the
subsystem's event stream and publish what the collector reports.

Modules:
    state: State snapshot monitoring
"""

from .state import StateMonitor

__all__ = ["StateMonitor"]
