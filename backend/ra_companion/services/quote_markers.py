"""
Quote marker detection for streamed LLM output.

The model cites passages inline with markers:

    {{QUOTE:N}}          insert passage N (1-indexed) in full
    {{QUOTE:N:sX:sY}}    insert sentences X..Y (1-indexed, inclusive) of passage N

Markers can be split across upstream chunks ("{{QUO" + "TE:2}}"), so text
that could still become a marker is held back until it either completes or
turns out to be ordinary text.
"""

import logging
import re
from typing import List, Optional

from ra_companion.models.events import Quote

logger = logging.getLogger(__name__)

QUOTE_MARKER_REGEX = re.compile(r"\{\{QUOTE:(\d+)(?::s(\d+):s(\d+))?\}\}")

# Longest partial marker is "{{QUOTE:99:s99:s99}" (20 chars)
MAX_PARTIAL_MARKER_LENGTH = 25

_STATIC_PREFIXES = frozenset(
    ["{", "{{"]
    + ["{{Q", "{{QU", "{{QUO", "{{QUOT", "{{QUOTE", "{{QUOTE:"]
)
_PARTIAL_PATTERNS = [
    re.compile(p)
    for p in (
        r"^\{\{QUOTE:\d+$",
        r"^\{\{QUOTE:\d+\}$",
        r"^\{\{QUOTE:\d+:$",
        r"^\{\{QUOTE:\d+:s$",
        r"^\{\{QUOTE:\d+:s\d+$",
        r"^\{\{QUOTE:\d+:s\d+:$",
        r"^\{\{QUOTE:\d+:s\d+:s$",
        r"^\{\{QUOTE:\d+:s\d+:s\d+$",
        r"^\{\{QUOTE:\d+:s\d+:s\d+\}$",
    )
]

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def could_be_partial_marker(s: str) -> bool:
    """True if s is an incomplete prefix of a quote marker."""
    if s in _STATIC_PREFIXES:
        return True
    return any(p.match(s) for p in _PARTIAL_PATTERNS)


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_SPLIT.split(text.strip()) if s]


def apply_sentence_range(text: str, start: int, end: int) -> str:
    """
    Keep sentences start..end (1-indexed, inclusive), marking cut-off ends with "...".

    Out-of-range bounds are clamped; an empty selection returns the whole text.
    """
    sentences = split_sentences(text)
    if not sentences:
        return text
    start = max(1, start)
    end = min(len(sentences), end)
    if start > end:
        return text

    selected = " ".join(sentences[start - 1:end])
    if start > 1:
        selected = "..." + selected
    if end < len(sentences):
        selected = selected + "..."
    return selected


class QuoteMarkerProcessor:
    """
    Turns streamed text into text and quote chunk payloads.

    feed() and finish() return the chunk payloads that became ready, in
    order. Text is released as soon as it can no longer be part of a marker.
    """

    def __init__(self, passages: List[Quote]):
        self.passages = passages
        self._buffer = ""
        self._text = ""
        self.full_output = ""
        self.quote_count = 0

    def feed(self, content: str) -> List[dict]:
        ready: List[dict] = []
        if not content:
            return ready
        self.full_output += content
        self._buffer += content

        while True:
            match = QUOTE_MARKER_REGEX.search(self._buffer)
            if match is None:
                self._hold_back_partial()
                self._flush_text(ready, keep_whitespace=True)
                return ready

            self._text += self._buffer[:match.start()]
            self._flush_text(ready)
            self._append_quote(match, ready)
            self._buffer = self._buffer[match.end():]

    def finish(self) -> List[dict]:
        """Flush whatever text is left, including an unfinished marker."""
        ready: List[dict] = []
        self._text += self._buffer
        self._buffer = ""
        self._flush_text(ready)
        return ready

    def _hold_back_partial(self) -> None:
        start = max(0, len(self._buffer) - MAX_PARTIAL_MARKER_LENGTH)
        for i in range(start, len(self._buffer)):
            if could_be_partial_marker(self._buffer[i:]):
                self._text += self._buffer[:i]
                self._buffer = self._buffer[i:]
                return
        self._text += self._buffer
        self._buffer = ""

    def _flush_text(self, ready: List[dict], keep_whitespace: bool = False) -> None:
        if self._text.strip():
            ready.append({"type": "text", "content": self._text})
            self._text = ""
        elif not keep_whitespace:
            self._text = ""

    def _append_quote(self, match: "re.Match[str]", ready: List[dict]) -> None:
        index = int(match.group(1))
        quote: Optional[Quote] = self.passages[index - 1] if 0 < index <= len(self.passages) else None
        if quote is None:
            logger.debug(f"Dropping marker for missing passage {index}")
            return

        if match.group(2) and match.group(3):
            text = apply_sentence_range(quote.text, int(match.group(2)), int(match.group(3)))
        else:
            text = quote.text

        self.quote_count += 1
        ready.append({"type": "quote", "text": text, "reference": quote.reference, "url": quote.url})
