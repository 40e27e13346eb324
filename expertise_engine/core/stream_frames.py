"""Streaming frame protocol shared by the AI service and its clients.

Two newline-delimited SSE dialects travel over the wire:

Simple dialect (interview token stream)::

    data: {"text": "Thanks for"}
    data: {"text": " sharing"}
    data: [DONE]

Typed-event dialect (synthesis jobs)::

    event: status
    data: {"message": "Fetching documents..."}

    event: complete
    data: {"content": "# Sales Playbook ..."}

``StreamFrameParser`` turns arbitrarily split chunks into ``StreamEvent``
objects; ``sse_*`` helpers produce the frames on the server side.

Malformed JSON is skipped in the simple dialect (token noise) but is fatal
in the typed dialect once an ``event:`` line announced a known type.
"""

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

from expertise_engine.core.errors import StreamProtocolError, UpstreamError
from expertise_engine.core.logging import get_logger

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"
UNEXPECTED_END_MESSAGE = "Stream ended unexpectedly"

TYPED_EVENT_TYPES = ("status", "error", "complete")


class Dialect(str, Enum):
    """Wire dialect a parser instance decodes."""
    SIMPLE = "simple"
    TYPED = "typed"


class EventKind(str, Enum):
    """Kinds of decoded stream events."""
    TOKEN = "token"
    STATUS = "status"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class StreamEvent:
    """One decoded stream event."""

    kind: EventKind
    text: str = ""
    message: str = ""
    payload: dict[str, Any] | None = None
    # Only meaningful for ERROR events: who declared the failure
    origin: Literal["upstream", "protocol"] = "upstream"

    @property
    def is_terminal(self) -> bool:
        return self.kind in (EventKind.COMPLETE, EventKind.ERROR)

    def to_exception(self) -> StreamProtocolError | UpstreamError:
        """Map an ERROR event onto the error taxonomy."""
        if self.origin == "protocol":
            return StreamProtocolError(self.message)
        return UpstreamError(self.message)


def _token(text: str) -> StreamEvent:
    return StreamEvent(kind=EventKind.TOKEN, text=text)


def _protocol_error(message: str) -> StreamEvent:
    return StreamEvent(kind=EventKind.ERROR, message=message, origin="protocol")


class StreamFrameParser:
    """Incremental decoder for one stream.

    Feed raw chunks as they arrive; only fully received lines (simple
    dialect) or frames (typed dialect) produce events. After the first
    terminal event (complete or error) all further input is ignored.
    """

    def __init__(self, dialect: Dialect):
        self.dialect = dialect
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_type: str | None = None
        self._data_lines: list[str] = []
        self.finished = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, chunk: str | bytes) -> list[StreamEvent]:
        """Consume one chunk and return the events it completed."""
        if self.finished:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk

        events: list[StreamEvent] = []
        while not self.finished and "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            events.extend(self._emit(self._handle_line(line.rstrip("\r"))))
        return events

    def close(self) -> list[StreamEvent]:
        """Signal end of input. Always yields a terminal event if none was seen."""
        if self.finished:
            return []
        self._buffer += self._decoder.decode(b"", final=True)

        events: list[StreamEvent] = []
        if self._buffer:
            line, self._buffer = self._buffer, ""
            events.extend(self._emit(self._handle_line(line.rstrip("\r"))))
        if not self.finished and self.dialect == Dialect.TYPED:
            events.extend(self._emit(self._dispatch_frame()))
        if not self.finished:
            events.extend(self._emit([_protocol_error(UNEXPECTED_END_MESSAGE)]))
        return events

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _emit(self, events: list[StreamEvent]) -> list[StreamEvent]:
        emitted: list[StreamEvent] = []
        for event in events:
            if self.finished:
                break
            emitted.append(event)
            if event.is_terminal:
                self.finished = True
        return emitted

    def _handle_line(self, line: str) -> list[StreamEvent]:
        if line.startswith(":"):
            return []  # SSE comment / keep-alive
        if self.dialect == Dialect.SIMPLE:
            return self._handle_simple_line(line)
        return self._handle_typed_line(line)

    def _handle_simple_line(self, line: str) -> list[StreamEvent]:
        field, value = _split_field(line)
        if field != "data":
            return []
        if value.strip() == DONE_SENTINEL:
            return [StreamEvent(kind=EventKind.COMPLETE)]
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            logger.debug(f"Skipping unparseable token frame: {value[:80]!r}")
            return []
        if isinstance(parsed, dict):
            text = parsed.get("text")
            if isinstance(text, str) and text:
                return [_token(text)]
        return []

    def _handle_typed_line(self, line: str) -> list[StreamEvent]:
        if line == "":
            return self._dispatch_frame()
        field, value = _split_field(line)
        if field == "event":
            self._event_type = value.strip()
        elif field == "data":
            self._data_lines.append(value)
        # id:, retry: and unknown fields carry nothing for us
        return []

    def _dispatch_frame(self) -> list[StreamEvent]:
        event_type, data_lines = self._event_type, self._data_lines
        self._event_type, self._data_lines = None, []

        if event_type is None and not data_lines:
            return []
        if event_type not in TYPED_EVENT_TYPES:
            logger.debug(f"Ignoring frame with unknown event type {event_type!r}")
            return []

        raw = "\n".join(data_lines)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            return [_protocol_error(f"Malformed '{event_type}' frame: {raw[:120]!r}")]
        if not isinstance(payload, dict):
            return [_protocol_error(f"Malformed '{event_type}' frame: expected a JSON object")]

        if event_type == "status":
            return [StreamEvent(kind=EventKind.STATUS, message=str(payload.get("message", "")), payload=payload)]
        if event_type == "error":
            message = payload.get("error") or payload.get("message") or "Unknown upstream error"
            return [StreamEvent(kind=EventKind.ERROR, message=str(message), payload=payload)]
        return [StreamEvent(kind=EventKind.COMPLETE, payload=payload)]


def _split_field(line: str) -> tuple[str, str]:
    """Split an SSE line into field name and value (one leading space stripped)."""
    field, sep, value = line.partition(":")
    if not sep:
        return line, ""
    if value.startswith(" "):
        value = value[1:]
    return field, value


async def iter_stream_events(
    chunks: AsyncIterable[str | bytes],
    dialect: Dialect,
) -> AsyncIterator[StreamEvent]:
    """Lazily decode a chunk stream. A fresh parser is created per call.

    The generator stops right after the terminal event; if the input ends
    first, an ERROR event with UNEXPECTED_END_MESSAGE is produced.
    """
    parser = StreamFrameParser(dialect)
    async for chunk in chunks:
        for event in parser.feed(chunk):
            yield event
        if parser.finished:
            return
    for event in parser.close():
        yield event


# ----------------------------------------------------------------------
# Frame encoders (server side)
# ----------------------------------------------------------------------


def sse_data(data: dict[str, Any]) -> str:
    """Format a simple-dialect data frame."""
    return f"data: {json.dumps(data)}\n\n"


def sse_done() -> str:
    """Format the simple-dialect completion sentinel."""
    return f"data: {DONE_SENTINEL}\n\n"


def sse_event(event: str, data: dict[str, Any]) -> str:
    """Format a typed-dialect frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def close_chunks(chunks: AsyncIterable[str | bytes]) -> None:
    """Close a chunk source left unfinished after the terminal event."""
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()
