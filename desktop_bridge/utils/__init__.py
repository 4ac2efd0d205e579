"""Utility functions and helpers for Desktop Bridge.

Modules:
    formatting: Identifier sanitizing and percentage formatting utilities
    process: Subprocess helpers for the external command-line interfaces
"""

from .formatting import format_percentage, sanitize_topic
from .process import iter_chunks, run_json, run_text, stream_process

__all__ = [
    "sanitize_topic",
    "format_percentage",
    "iter_chunks",
    "run_json",
    "run_text",
    "stream_process",
]
