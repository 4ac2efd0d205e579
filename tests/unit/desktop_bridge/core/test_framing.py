"""
Event stream framing tests.

Uses Hypothesis to split event streams at arbitrary byte boundaries and
verify that framing does not depend on how the bytes arrive.

Invariants tested:
    1. Chunking invariance - N events in any chunking -> exactly N ParsedEvents
    2. Malformed units are discarded and framing continues
    3. Braces inside JSON strings do not end a unit
    4. End of stream ends the sequence
"""

import json

import pytest
from hypothesis import given, settings, strategies as st

from desktop_bridge.core.framing import (
    EventCategory,
    EventFramer,
    EventTarget,
    ParsedEvent,
)


def classify(data):
    return ParsedEvent(
        category=EventCategory.parse(data.get("event")),
        target=EventTarget.parse(data.get("on")),
        data=data,
    )


def chunked(data: bytes, cuts):
    """Split data at the given (sorted, deduplicated) offsets."""
    bounds = [0] + sorted(set(c for c in cuts if 0 < c < len(data))) + [len(data)]
    return [data[a:b] for a, b in zip(bounds, bounds[1:])]


# =============================================================================
# Hypothesis Strategies
# =============================================================================

event_strategy = st.fixed_dictionaries(
    {
        "index": st.integers(min_value=0, max_value=500),
        "event": st.sampled_from(["new", "change", "remove", "bogus"]),
        "on": st.sampled_from(["sink", "client", "server", "card"]),
    },
    optional={
        "name": st.text(max_size=12),
        "props": st.fixed_dictionaries({"label": st.text(max_size=8)}),
    },
)


class TestChunkingInvariance:
    """Property tests over arbitrary chunk boundaries."""

    @given(
        events=st.lists(event_strategy, max_size=12),
        cuts=st.lists(st.integers(min_value=0, max_value=4000), max_size=40),
        separator=st.sampled_from([b"", b"\n", b" \r\n"]),
    )
    @settings(max_examples=200)
    def test_exact_event_count_and_order(self, events, cuts, separator):
        """N framed events in any chunking produce exactly N matching ParsedEvents."""
        stream = separator.join(json.dumps(e).encode("utf-8") for e in events)

        parsed = list(EventFramer(chunked(stream, cuts), classify))

        assert len(parsed) == len(events)
        for event, result in zip(events, parsed):
            assert result.category is EventCategory.parse(event["event"])
            assert result.target is EventTarget.parse(event["on"])
            assert result.data == event

    @given(
        events=st.lists(event_strategy, min_size=1, max_size=6),
        size=st.integers(min_value=1, max_value=7),
    )
    def test_fixed_size_chunks(self, events, size):
        """Tiny fixed-size chunks give the same events as one chunk."""
        stream = b"\n".join(json.dumps(e).encode("utf-8") for e in events)
        chunks = [stream[i:i + size] for i in range(0, len(stream), size)]

        assert list(EventFramer(chunks, classify)) == list(EventFramer([stream], classify))


class TestEventFramer:
    """Example-based framing tests."""

    def test_split_event(self):
        """Test one event split across two chunks."""
        framer = EventFramer([b'{"event":"change",', b'"on":"sink","index":1}'], classify)

        events = list(framer)

        assert events == [ParsedEvent(EventCategory.CHANGE, EventTarget.SINK)]

    def test_several_events_in_one_chunk(self):
        """Test several events arriving in one read."""
        chunk = b'{"event":"new","on":"sink"}{"event":"remove","on":"client"}\n'

        events = list(EventFramer([chunk], classify))

        assert [(e.category, e.target) for e in events] == [
            (EventCategory.NEW, EventTarget.SINK),
            (EventCategory.REMOVE, EventTarget.CLIENT),
        ]

    def test_unknown_values(self):
        """Test that unknown categories and targets map to UNKNOWN."""
        events = list(EventFramer([b'{"event":"explode","on":"card"}'], classify))

        assert events[0].category is EventCategory.UNKNOWN
        assert events[0].target is EventTarget.UNKNOWN

    def test_nested_objects(self):
        """Test that nested objects (sway events) are framed as one unit."""
        event = {"change": "focus", "current": {"name": "1", "rect": {"x": 0}}, "old": None}
        data = json.dumps(event).encode("utf-8")

        events = list(EventFramer([data[:10], data[10:]], classify))

        assert len(events) == 1
        assert events[0].data == event

    def test_braces_inside_strings(self):
        """Test that braces and escaped quotes in strings do not end a unit."""
        event = {"event": "change", "on": "sink", "name": 'odd}{name "quoted" \\'}
        data = json.dumps(event).encode("utf-8")

        events = list(EventFramer([data], classify))

        assert len(events) == 1
        assert events[0].data["name"] == event["name"]

    def test_malformed_unit_discarded(self):
        """Test that a malformed unit is skipped and framing continues."""
        framer = EventFramer(
            [b'{"event":"change","on":"sink"}', b"{not json}", b'{"event":"new","on":"sink"}'],
            classify,
        )

        events = list(framer)

        assert [e.category for e in events] == [EventCategory.CHANGE, EventCategory.NEW]
        assert framer.malformed == 1

    def test_invalid_utf8_discarded(self):
        """Test that a unit with invalid UTF-8 is discarded."""
        framer = EventFramer([b'{"name":"\xff\xfe"}', b'{"event":"new","on":"sink"}'], classify)

        events = list(framer)

        assert len(events) == 1
        assert framer.malformed == 1

    def test_stray_bytes_discarded(self):
        """Test that noise between events is discarded without losing events."""
        framer = EventFramer([b'garbage{"event":"new","on":"sink"}}'], classify)

        events = list(framer)

        assert len(events) == 1
        assert framer.malformed == 2

    def test_stray_bytes_at_end_discarded(self):
        """Test that trailing noise is reported like noise between events."""
        framer = EventFramer([b'{"event":"new","on":"sink"} garbage'], classify)

        events = list(framer)

        assert len(events) == 1
        assert framer.malformed == 1

    def test_deeply_nested_unit_discarded(self):
        """Test that a unit too deep to decode is discarded and framing continues."""
        depth = 50000
        nested = b'{"a":' + b"[" * depth + b"]" * depth + b"}"
        framer = EventFramer([nested, b'{"event":"change","on":"sink"}'], classify)

        events = list(framer)

        assert [(e.category, e.target) for e in events] == [
            (EventCategory.CHANGE, EventTarget.SINK)
        ]
        assert framer.malformed == 1

    def test_incomplete_event_at_end(self):
        """Test that an unterminated unit at end of stream yields nothing."""
        events = list(EventFramer([b'{"event":"new","on":"sink"}', b'{"event":"ch'], classify))

        assert len(events) == 1

    def test_empty_stream(self):
        """Test that an empty stream ends immediately."""
        assert list(EventFramer([], classify)) == []

    def test_lazy(self):
        """Test that chunks are only consumed as events are requested."""
        consumed = []

        def chunks():
            for chunk in (b'{"event":"new","on":"sink"}', b'{"event":"new","on":"sink"}'):
                consumed.append(chunk)
                yield chunk

        framer = EventFramer(chunks(), classify)
        next(framer)

        assert len(consumed) == 1

    def test_close_closes_source(self):
        """Test that closing the framer closes the byte source."""
        closed = []

        def chunks():
            try:
                yield b'{"event":"new","on":"sink"}'
                yield b'{"event":"new","on":"sink"}'
            finally:
                closed.append(True)

        framer = EventFramer(chunks(), classify)
        next(framer)
        framer.close()

        assert closed == [True]
        with pytest.raises(StopIteration):
            next(framer)
