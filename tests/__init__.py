"""Desktop Bridge Test Suite.

This package contains the unit tests and shared fixtures for the Desktop
Bridge application. Nothing here needs a broker, a sway session or an
audio server: paho clients are MagicMocks and ``pactl``/``swaymsg`` are
replaced with in-memory fakes.

Test Organization:
    tests/
        unit/
            desktop_bridge/     - Mirrors the package layout
                core/           - Config, messaging, availability, discovery, framing
                collectors/     - pactl and swaymsg collectors
                monitors/       - State loop
                utils/          - Subprocess and formatting helpers
        conftest.py             - Pytest configuration and global fixtures

Running Tests:
    # Run all tests
    pytest

    # Run specific test file
    pytest tests/unit/desktop_bridge/core/test_framing.py

    # Run tests matching pattern
    pytest -k dispatcher

    # Run with verbose output
    pytest -v
"""
