"""
Client-side event consumer.

ResponseAccumulator folds the event sequence of one response into its
final state. Events are numbered by position: the live stream and the
recovery cache hold the same events in the same order, so replaying a
recovered list skips exactly the prefix already applied live and nothing is
applied twice.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

from ra_companion.models.events import (
    ErrorEventData,
    MetaEventData,
    Quote,
    QuoteChunkData,
    SSEEvent,
    TextChunkData,
    parse_chunk_data,
    parse_error_data,
    parse_meta_data,
    parse_session_data,
    parse_suggestions_data,
)

logger = logging.getLogger(__name__)

Segment = Union[TextChunkData, QuoteChunkData]


@dataclass
class ResponseAccumulator:
    response_id: Optional[str] = None
    meta: Optional[MetaEventData] = None
    segments: List[Segment] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    error: Optional[ErrorEventData] = None
    done: bool = False
    applied: int = 0

    @property
    def finished(self) -> bool:
        return self.done or self.error is not None

    @property
    def text(self) -> str:
        return "".join(s.content for s in self.segments if isinstance(s, TextChunkData))

    @property
    def quotes(self) -> List[Quote]:
        return [
            Quote(text=s.text, reference=s.reference, url=s.url)
            for s in self.segments
            if isinstance(s, QuoteChunkData)
        ]

    def apply(self, event: SSEEvent) -> None:
        """Apply the next event in sequence. Events after a terminal one are ignored."""
        self.applied += 1
        if self.finished:
            logger.debug(f"Ignoring {event.type} after terminal event")
            return

        if event.type == "session":
            session = parse_session_data(event.data)
            if session:
                self.response_id = session.response_id
        elif event.type == "meta":
            self.meta = parse_meta_data(event.data)
        elif event.type == "chunk":
            chunk = parse_chunk_data(event.data)
            if chunk is None:
                logger.debug(f"Invalid chunk data: {event.data}")
            else:
                self.segments.append(chunk)
        elif event.type == "suggestions":
            suggestions = parse_suggestions_data(event.data)
            if suggestions:
                self.suggestions = suggestions.items
        elif event.type == "done":
            self.done = True
        elif event.type == "error":
            self.error = parse_error_data(event.data) or ErrorEventData()
        else:
            logger.debug(f"Unknown event type {event.type}")

    def replay(self, events: Iterable[SSEEvent]) -> int:
        """
        Apply a recovered event list, skipping events already applied.

        Events are matched by position: the first ``applied`` recovered
        events are assumed to be the ones already seen live. If the cache
        lost an event (a failed store write, or an entry dropped as
        malformed on read) every later index shifts by one and replay skips
        an event the consumer never saw. A list shorter than ``applied``
        applies nothing.

        Returns the number of newly applied events.
        """
        before = self.applied
        for index, event in enumerate(events):
            if index < before:
                continue
            self.apply(event)
        return self.applied - before
