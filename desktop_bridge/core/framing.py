"""Event stream framing.

The external event sources (``pactl subscribe`` and ``swaymsg -m -t
subscribe``) write a stream of JSON objects to a pipe without any framing,
and a read from the pipe can return half an object or several at once.
EventFramer reassembles complete objects from arbitrary chunks, decodes
them, and turns each into a ParsedEvent.

A unit ends at the closing brace that brings the nesting depth back to
zero; braces inside JSON strings are ignored. For the flat objects pactl
emits this is simply the first closing brace.
"""

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator

logger = logging.getLogger(__name__)

OPEN_BRACE = ord("{")
CLOSE_BRACE = ord("}")
QUOTE = ord('"')
BACKSLASH = ord("\\")
WHITESPACE = frozenset(b" \t\r\n,")


class EventCategory(enum.Enum):
    NEW = "new"
    CHANGE = "change"
    REMOVE = "remove"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "EventCategory":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class EventTarget(enum.Enum):
    SINK = "sink"
    CLIENT = "client"
    WORKSPACE = "workspace"
    WINDOW = "window"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "EventTarget":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ParsedEvent:
    """A discrete state-change notification from an external subsystem."""

    category: EventCategory
    target: EventTarget
    data: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


Classifier = Callable[[Dict[str, Any]], ParsedEvent]


class EventFramer:
    """Lazy, non-restartable sequence of ParsedEvents over a chunked byte source.

    Malformed units are logged and skipped without ending the sequence. The
    sequence ends when the byte source is exhausted; a unit that never
    closes keeps the consumer blocked on the next read.

    Attributes:
        malformed: Number of units discarded because they failed to decode.

    Example:
        >>> framer = EventFramer([b'{"event":"change",', b'"on":"sink"}'], classify)
        >>> [e.target for e in framer]
        [<EventTarget.SINK: 'sink'>]
    """

    def __init__(self, chunks: Iterable[bytes], classify: Classifier):
        self._chunks = chunks
        self._classify = classify
        self._events = self._decode(self._frames())
        self.malformed = 0

    def __iter__(self) -> Iterator[ParsedEvent]:
        return self

    def __next__(self) -> ParsedEvent:
        return next(self._events)

    def close(self) -> None:
        """Stop framing and close the underlying byte source if it supports it."""
        self._events.close()
        close = getattr(self._chunks, "close", None)
        if close:
            close()

    def _discard(self, unit: bytes, reason: str) -> None:
        self.malformed += 1
        preview = unit[:80].decode("utf-8", errors="replace")
        logger.warning(f"Discarding malformed event ({reason}): {preview!r}")

    def _frames(self) -> Iterator[bytes]:
        buffer = bytearray()
        noise = bytearray()
        depth = 0
        in_string = False
        escaped = False

        for chunk in self._chunks:
            for byte in chunk:
                if depth == 0:
                    if byte == OPEN_BRACE:
                        if noise:
                            self._discard(bytes(noise), "stray bytes between events")
                            noise.clear()
                        buffer.append(byte)
                        depth = 1
                    elif byte == CLOSE_BRACE:
                        noise.append(byte)
                        self._discard(bytes(noise), "unbalanced closing brace")
                        noise.clear()
                    elif byte not in WHITESPACE:
                        noise.append(byte)
                    continue

                buffer.append(byte)
                if in_string:
                    if escaped:
                        escaped = False
                    elif byte == BACKSLASH:
                        escaped = True
                    elif byte == QUOTE:
                        in_string = False
                elif byte == QUOTE:
                    in_string = True
                elif byte == OPEN_BRACE:
                    depth += 1
                elif byte == CLOSE_BRACE:
                    depth -= 1
                    if depth == 0:
                        yield bytes(buffer)
                        buffer.clear()

        if noise:
            self._discard(bytes(noise), "stray bytes at end of stream")
        if buffer:
            logger.debug(f"Event stream ended inside an event ({len(buffer)} bytes dropped)")

    def _decode(self, frames: Iterator[bytes]) -> Iterator[ParsedEvent]:
        for unit in frames:
            try:
                data = json.loads(unit)
            except ValueError as e:
                # JSONDecodeError and UnicodeDecodeError are both ValueErrors
                self._discard(unit, str(e))
                continue
            except RecursionError:
                self._discard(unit, "nested too deeply")
                continue
            yield self._classify(data)
