"""Unit tests for inbound command decoding and dispatch.

This module tests the CommandRegistry (strict decoding of JSON payloads
into command dataclasses) and the CommandDispatcher (topic checks, failure
isolation, ordered execution).

Key Testing Patterns:
    - Decode real command sets from both collectors
    - Record executed actions with a list-appending handler
    - Verify that rejected messages never reach the handler

Example Run:
    pytest tests/unit/desktop_bridge/test_commands.py -v
"""

import json
import threading
from unittest.mock import MagicMock

import pytest

from desktop_bridge.collectors.pulseaudio import (
    PULSE_COMMANDS,
    ChangeVolume,
    SetDefaultSink,
    SetMute,
    ToggleMute,
    VolumeUp,
)
from desktop_bridge.collectors.sway import SWAY_COMMANDS, FocusWorkspace, OutputEnable
from desktop_bridge.commands import MAX_PAYLOAD_LENGTH, CommandDispatcher
from desktop_bridge.core.errors import CommandDecodeError, ExternalCommandError
from desktop_bridge.core.messaging import MessageBroker

COMMAND_TOPIC = "desktop/test_device/sway/command"


def encode(data):
    return json.dumps(data).encode("utf-8")


@pytest.fixture
def executed():
    return []


@pytest.fixture
def dispatcher(mock_mqtt_client, executed):
    return CommandDispatcher(
        "sway",
        MessageBroker(mock_mqtt_client),
        COMMAND_TOPIC,
        SWAY_COMMANDS,
        executed.append,
    )


class TestCommandRegistry:
    """Test suite for strict command decoding."""

    def test_decode_output_command(self):
        command = SWAY_COMMANDS.decode(encode({"type": "OutputEnable", "output_name": "eDP-1"}))

        assert command == OutputEnable(output_name="eDP-1")

    def test_decode_defaults(self):
        """Test that optional fields take their defaults."""
        assert PULSE_COMMANDS.decode(encode({"type": "VolumeUp"})) == VolumeUp(step=0)
        assert PULSE_COMMANDS.decode(encode({"type": "ToggleMute"})) == ToggleMute()

    def test_decode_bool_field(self):
        command = PULSE_COMMANDS.decode(encode({"type": "SetMute", "mute": True}))

        assert command == SetMute(mute=True)

    def test_extra_fields_ignored(self):
        command = PULSE_COMMANDS.decode(encode({"type": "ChangeVolume", "delta": -5, "x": 1}))

        assert command == ChangeVolume(delta=-5)

    def test_to_payload_round_trip(self):
        """Test that the payloads used in discovery decode back to the command."""
        command = SetDefaultSink(sink_name="alsa_output.speakers")

        assert PULSE_COMMANDS.decode(command.to_payload().encode("utf-8")) == command

    def test_tags(self):
        assert "FocusWorkspace" in SWAY_COMMANDS
        assert "VolumeUp" not in SWAY_COMMANDS
        assert set(SWAY_COMMANDS.tags) == {
            "OutputPowerOn", "OutputPowerOff", "OutputEnable", "OutputDisable", "FocusWorkspace",
        }

    @pytest.mark.parametrize(
        "payload",
        [
            b"\xff\xfe",
            b"not json",
            b"[1, 2]",
            b'"OutputEnable"',
            b"{}",
            b'{"type": "Bogus"}',
            b'{"type": 3}',
            b'{"type": "OutputEnable"}',
            b'{"type": "OutputEnable", "output_name": 5}',
            b'{"type": "OutputEnable", "output_name": "eDP-1; exec rm -rf ~"}',
            b'{"type": "FocusWorkspace", "workspace_name": ""}',
        ],
    )
    def test_decode_rejects_sway(self, payload):
        with pytest.raises(CommandDecodeError):
            SWAY_COMMANDS.decode(payload)

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "SetMute", "mute": 1},
            {"type": "VolumeUp", "step": True},
            {"type": "VolumeUp", "step": "5"},
            {"type": "VolumeUp", "step": 101},
            {"type": "ChangeVolume", "delta": 0},
            {"type": "SetDefaultSink", "sink_name": "--help"},
        ],
    )
    def test_decode_rejects_pulse(self, data):
        with pytest.raises(CommandDecodeError):
            PULSE_COMMANDS.decode(encode(data))

    def test_decode_rejects_deep_nesting(self):
        with pytest.raises(CommandDecodeError):
            SWAY_COMMANDS.decode(b"[" * 4000)

    def test_decode_rejects_oversized(self):
        payload = encode({"type": "FocusWorkspace", "workspace_name": "x" * MAX_PAYLOAD_LENGTH})

        with pytest.raises(CommandDecodeError, match="too long"):
            SWAY_COMMANDS.decode(payload)


class TestCommandDispatcher:
    """Test suite for CommandDispatcher."""

    def test_subscribe(self, dispatcher, mock_mqtt_client):
        dispatcher.subscribe()

        mock_mqtt_client.subscribe.assert_called_once_with(COMMAND_TOPIC, qos=1)
        mock_mqtt_client.message_callback_add.assert_called_once_with(
            COMMAND_TOPIC, dispatcher.on_message
        )

    def test_malformed_then_valid(self, dispatcher, executed):
        """Test that a bogus command is rejected and the next one runs exactly once."""
        assert dispatcher.dispatch(COMMAND_TOPIC, encode({"type": "Bogus"})) is False
        assert executed == []

        assert dispatcher.dispatch(
            COMMAND_TOPIC, encode({"type": "OutputEnable", "output_name": "eDP-1"})
        ) is True

        assert executed == [OutputEnable(output_name="eDP-1")]
        assert dispatcher.rejected == 1
        assert dispatcher.processed == 1

    def test_wrong_topic_rejected(self, dispatcher, executed):
        """Test that commands on another topic are never executed."""
        payload = encode({"type": "OutputEnable", "output_name": "eDP-1"})

        assert dispatcher.dispatch("desktop/test_device/pulseaudio/command", payload) is False

        assert executed == []
        assert dispatcher.rejected == 1

    def test_handler_failure_isolated(self, mock_mqtt_client):
        """Test that a failing action is logged and the next command still runs."""
        handler = MagicMock(side_effect=[ExternalCommandError("no such output"), None])
        dispatcher = CommandDispatcher(
            "sway", MessageBroker(mock_mqtt_client), COMMAND_TOPIC, SWAY_COMMANDS, handler
        )

        first = dispatcher.dispatch(COMMAND_TOPIC, encode({"type": "OutputEnable", "output_name": "X-1"}))
        second = dispatcher.dispatch(COMMAND_TOPIC, encode({"type": "OutputEnable", "output_name": "eDP-1"}))

        assert (first, second) == (False, True)
        assert dispatcher.failed == 1
        assert dispatcher.processed == 1

    def test_run_processes_in_delivery_order(self, dispatcher, executed):
        """Test that queued messages are executed in the order received."""
        names = ["1", "2", "3", "4"]
        for name in names:
            message = MagicMock(topic=COMMAND_TOPIC)
            message.payload = encode({"type": "FocusWorkspace", "workspace_name": name})
            dispatcher.on_message(None, None, message)

        stop_event = threading.Event()
        worker = threading.Thread(target=dispatcher.run, args=(stop_event, 0.05))
        worker.start()
        dispatcher._queue.join()
        stop_event.set()
        worker.join(timeout=2)

        assert executed == [FocusWorkspace(workspace_name=n) for n in names]
        assert not worker.is_alive()

    def test_deeply_nested_payload_rejected(self, dispatcher, executed):
        """Test that a payload too deep to decode is rejected and the worker keeps going."""
        for payload in (b"[" * 4000, encode({"type": "OutputEnable", "output_name": "eDP-1"})):
            message = MagicMock(topic=COMMAND_TOPIC)
            message.payload = payload
            dispatcher.on_message(None, None, message)

        stop_event = threading.Event()
        worker = threading.Thread(target=dispatcher.run, args=(stop_event, 0.05))
        worker.start()
        dispatcher._queue.join()
        stop_event.set()
        worker.join(timeout=2)

        assert executed == [OutputEnable(output_name="eDP-1")]
        assert dispatcher.rejected == 1

    def test_run_survives_unexpected_error(self, mock_mqtt_client, executed):
        """Test that an error escaping dispatch is logged and the loop continues."""
        registry = MagicMock()
        registry.decode.side_effect = [RecursionError(), OutputEnable(output_name="eDP-1")]
        dispatcher = CommandDispatcher(
            "sway", MessageBroker(mock_mqtt_client), COMMAND_TOPIC, registry, executed.append
        )
        for _ in range(2):
            message = MagicMock(topic=COMMAND_TOPIC)
            message.payload = b"{}"
            dispatcher.on_message(None, None, message)

        stop_event = threading.Event()
        worker = threading.Thread(target=dispatcher.run, args=(stop_event, 0.05))
        worker.start()
        dispatcher._queue.join()
        stop_event.set()
        worker.join(timeout=2)

        assert executed == [OutputEnable(output_name="eDP-1")]
        assert dispatcher.failed == 1
        assert not worker.is_alive()
