"""Inbound command decoding and dispatch.

Home Assistant sends commands as JSON objects whose ``type`` field names
the action, e.g. ``{"type": "OutputEnable", "output_name": "eDP-1"}``.
Each bridge declares its command set as dataclasses registered in a
CommandRegistry, and a CommandDispatcher executes them one at a time in
the order the broker delivered them.

Decoding is strict: a payload that is not UTF-8, not a JSON object, has an
unknown ``type``, lacks a required field, or carries a field of the wrong
type is rejected and logged. Nothing is executed for it, and the next
command is processed normally.
"""

# Standard library imports
import dataclasses
import json
import logging
import queue
import threading
import typing
from typing import Any, Callable, Dict, Tuple, Type

# Third-party imports
import paho.mqtt.client as mqtt

# Local imports
from desktop_bridge.core.errors import CommandDecodeError
from desktop_bridge.core.messaging import MessageBroker, dump_payload

logger = logging.getLogger(__name__)

TYPE_FIELD = "type"
MAX_PAYLOAD_LENGTH = 4096


@dataclasses.dataclass(frozen=True)
class InboundCommand:
    """Base class for commands; the subclass name is the ``type`` tag."""

    @classmethod
    def tag(cls) -> str:
        return cls.__name__

    def to_payload(self) -> str:
        """Serialize with the type tag, as Home Assistant will send it back."""
        data = dataclasses.asdict(self)
        data[TYPE_FIELD] = self.tag()
        return dump_payload(data)


class CommandRegistry:
    """Maps ``type`` tags to command classes and decodes payloads.

    Example:
        >>> registry = CommandRegistry(OutputEnable, OutputDisable)
        >>> registry.decode(b'{"type": "OutputEnable", "output_name": "eDP-1"}')
        OutputEnable(output_name='eDP-1')
    """

    def __init__(self, *command_types: Type[InboundCommand]):
        self._types: Dict[str, Type[InboundCommand]] = {}
        for command_type in command_types:
            self._types[command_type.tag()] = command_type

    def __contains__(self, tag: str) -> bool:
        return tag in self._types

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(self._types)

    def decode(self, payload: bytes) -> InboundCommand:
        """Decode raw payload bytes into a registered command.

        Raises:
            CommandDecodeError: On any malformed payload.
        """
        if len(payload) > MAX_PAYLOAD_LENGTH:
            raise CommandDecodeError(f"Payload too long ({len(payload)} bytes)")
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CommandDecodeError(f"Payload is not valid UTF-8: {e}") from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CommandDecodeError(f"Payload is not valid JSON: {e}") from e
        except RecursionError as e:
            raise CommandDecodeError("Payload is nested too deeply") from e
        return self.from_dict(data)

    def from_dict(self, data: Any) -> InboundCommand:
        if not isinstance(data, dict):
            raise CommandDecodeError("Payload must be a JSON object")

        tag = data.get(TYPE_FIELD)
        if not isinstance(tag, str):
            raise CommandDecodeError(f"Payload has no '{TYPE_FIELD}' field")
        command_type = self._types.get(tag)
        if command_type is None:
            raise CommandDecodeError(f"Unknown command type '{tag}'")

        hints = typing.get_type_hints(command_type)
        kwargs = {}
        for f in dataclasses.fields(command_type):
            if f.name not in data:
                if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
                    raise CommandDecodeError(f"{tag}: missing field '{f.name}'")
                continue
            value = data[f.name]
            if not _matches(value, hints[f.name]):
                raise CommandDecodeError(
                    f"{tag}: field '{f.name}' has invalid value {value!r}"
                )
            kwargs[f.name] = value

        try:
            return command_type(**kwargs)
        except ValueError as e:
            raise CommandDecodeError(f"{tag}: {e}") from e


def _matches(value: Any, expected: Any) -> bool:
    # bool is an int subclass, so check it first
    if expected is bool:
        return isinstance(value, bool)
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if expected is str:
        return isinstance(value, str)
    return isinstance(value, expected)


class CommandDispatcher:
    """Decodes and executes the commands arriving on one bridge's command topic.

    The paho callback only enqueues messages; a single worker thread
    (``run``) drains the queue, so commands against one subsystem run
    strictly in delivery order and never concurrently.

    Attributes:
        name: Bridge name used in log messages.
        broker: MessageBroker used for the subscription.
        command_topic: The only topic this dispatcher accepts commands from.
        registry: Commands understood by this bridge.
        handler: Callable performing the external action for one command.
        processed: Number of commands whose action succeeded.
        rejected: Number of messages rejected before any action ran.
        failed: Number of commands whose action raised.
    """

    def __init__(
        self,
        name: str,
        broker: MessageBroker,
        command_topic: str,
        registry: CommandRegistry,
        handler: Callable[[InboundCommand], None],
    ):
        self.name = name
        self.broker = broker
        self.command_topic = command_topic
        self.registry = registry
        self.handler = handler
        self.processed = 0
        self.rejected = 0
        self.failed = 0
        self._queue: "queue.Queue[Tuple[str, bytes]]" = queue.Queue()

    def subscribe(self) -> None:
        """Subscribe to the command topic (again after every reconnect)."""
        self.broker.subscribe(self.command_topic, callback=self.on_message)

    def on_message(self, client: mqtt.Client, userdata: Any, message: mqtt.MQTTMessage) -> None:
        """paho callback: hand the message to the worker thread."""
        self._queue.put((message.topic, bytes(message.payload)))

    def dispatch(self, topic: str, payload: bytes) -> bool:
        """Validate, decode and execute one message.

        Returns:
            True if the command's action ran successfully.
        """
        if topic != self.command_topic:
            self.rejected += 1
            logger.error(
                f"[{self.name}] Rejecting message on '{topic}': "
                f"this bridge only accepts commands on '{self.command_topic}'"
            )
            return False

        try:
            command = self.registry.decode(payload)
        except CommandDecodeError as e:
            self.rejected += 1
            logger.error(f"[{self.name}] Rejected command: {e}")
            return False

        logger.debug(f"[{self.name}] Running command: {command}")
        try:
            self.handler(command)
        except Exception as e:
            self.failed += 1
            logger.error(f"[{self.name}] Command {command} failed: {e}", exc_info=True)
            return False

        self.processed += 1
        logger.info(f"[{self.name}] Command {command.tag()} completed")
        return True

    def run(self, stop_event: threading.Event, poll_interval: float = 0.5) -> None:
        """Command loop: process queued messages until stop_event is set."""
        logger.info(f"[{self.name}] Command loop started")
        while not stop_event.is_set():
            try:
                topic, payload = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                continue
            try:
                self.dispatch(topic, payload)
            except Exception as e:
                self.failed += 1
                logger.error(f"[{self.name}] Unexpected error handling message on '{topic}': {e}", exc_info=True)
            finally:
                self._queue.task_done()
        logger.info(f"[{self.name}] Command loop stopped")

