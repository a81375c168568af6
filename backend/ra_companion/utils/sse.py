"""
Server-Sent Events encoding and parsing.

Wire format, one frame per event:

    event: chunk
    data: {"type": "text", "content": "Hello"}
    <blank line>

Lines starting with ":" are comments (used as heartbeats) and carry no event.

Framing relies on blank lines, so every ``data:`` payload must be a single
line of JSON. ``format_sse`` guarantees this (orjson never pretty-prints and
escapes newlines inside strings); other producers must do the same.
"""

from dataclasses import dataclass, field
from typing import Any, List

import orjson

from ra_companion.models.events import SSEEvent

FRAME_SEPARATOR = "\n\n"
EVENT_PREFIX = "event: "
DATA_PREFIX = "data: "
COMMENT_PREFIX = ":"

SSE_MEDIA_TYPE = "text/event-stream"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def format_sse(event: str, data: Any) -> str:
    """Format data as SSE event"""
    return f"{EVENT_PREFIX}{event}\n{DATA_PREFIX}{orjson.dumps(data).decode()}{FRAME_SEPARATOR}"


def format_comment(text: str = "") -> str:
    """Format an SSE comment frame (ignored by consumers)."""
    return f"{COMMENT_PREFIX} {text}{FRAME_SEPARATOR}" if text else f"{COMMENT_PREFIX}{FRAME_SEPARATOR}"


HEARTBEAT_FRAME = format_comment("heartbeat")


@dataclass
class ParseResult:
    """Events found in a buffer plus the incomplete tail to carry forward."""

    events: List[SSEEvent] = field(default_factory=list)
    remaining: str = ""


def parse_sse(buffer: str) -> ParseResult:
    """
    Parse a buffer of SSE text into discrete events.

    The caller keeps ``remaining`` and prepends it to the next network read:

        result = parse_sse(buffer + text)
        buffer = result.remaining

    Only frames terminated by a blank line are parsed. Frames without an
    event type, without data, or whose data is not valid JSON are dropped.
    Never raises.

    Args:
        buffer: All unconsumed text received so far for one stream

    Returns:
        ParseResult with the complete events, in order, and the trailing
        fragment that does not yet form a complete frame
    """
    parts = buffer.split(FRAME_SEPARATOR)

    # Last part is incomplete unless the buffer ends exactly on a boundary
    if buffer.endswith(FRAME_SEPARATOR):
        remaining = ""
    else:
        remaining = parts.pop()

    events: List[SSEEvent] = []
    for part in parts:
        if not part.strip():
            continue
        event = _parse_frame(part)
        if event is not None:
            events.append(event)

    return ParseResult(events=events, remaining=remaining)


def _parse_frame(frame: str) -> SSEEvent | None:
    event_type = ""
    raw_data = ""
    for line in frame.split("\n"):
        if line.startswith(COMMENT_PREFIX):
            continue
        if line.startswith(EVENT_PREFIX):
            event_type = line[len(EVENT_PREFIX):]
        elif line.startswith(DATA_PREFIX):
            raw_data = line[len(DATA_PREFIX):]

    if not event_type or not raw_data:
        return None

    try:
        data = orjson.loads(raw_data)
    except orjson.JSONDecodeError:
        return None

    return SSEEvent(type=event_type, data=data)
