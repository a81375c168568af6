"""
Response cache for SSE event replay.

Every event streamed to a client is also appended here under the response's
UUID so that a client whose connection died (mobile backgrounding, flaky
network) can fetch everything it missed from /api/chat/recover without
re-running generation.

Redis path uses RPUSH, an atomic per-key list append, with EXPIRE in the same
pipeline. Each append resets the TTL, so a record expires ``ttl_seconds``
after its last event. The in-memory fallback keeps the same contract within a
single process and is only suitable for local development.
"""

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import orjson
from pydantic import BaseModel, ValidationError
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from ra_companion.models.events import TERMINAL_EVENT_TYPES, SSEEvent
from ra_companion.utils.time import now_ms

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_LOCAL_ENTRIES = 100
# Cap on ids remembered for log de-duplication
MAX_ERROR_LOG_IDS = 1000


# Cached entries have the same shape as live events
CachedEvent = SSEEvent


class CachedResponse(BaseModel):
    """Recovery state for one streamed response"""
    events: List[CachedEvent]
    complete: bool


@dataclass
class _LocalRecord:
    events: List[Dict[str, Any]] = field(default_factory=list)
    expires_at: int = 0


def cache_key(response_id: str) -> str:
    return f"chat:{response_id}"


def is_complete(events: List[SSEEvent]) -> bool:
    """A response is complete once a terminal event has been recorded."""
    return any(e.type in TERMINAL_EVENT_TYPES for e in events)


class ResponseCache:
    """Append-only event log per response id, with expiry."""

    def __init__(
        self,
        redis: Optional[aioredis.Redis] = None,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_local_entries: int = DEFAULT_MAX_LOCAL_ENTRIES,
        clock: Callable[[], int] = now_ms,
    ):
        self._redis = redis
        self.ttl_seconds = ttl_seconds
        self.max_local_entries = max_local_entries
        self._clock = clock
        self._local: "OrderedDict[str, _LocalRecord]" = OrderedDict()
        self._error_logged: set = set()

    @property
    def backend(self) -> str:
        return "redis" if self._redis is not None else "memory"

    async def append_event(self, response_id: str, event: str, data: Any) -> None:
        """
        Append one event to the response's log.

        Errors are logged (once per response) and swallowed: losing the
        recovery copy must never break the live stream.
        """
        entry = {"type": event, "data": data}

        if self._redis is not None:
            key = cache_key(response_id)
            try:
                async with self._redis.pipeline(transaction=True) as pipe:
                    pipe.rpush(key, orjson.dumps(entry))
                    pipe.expire(key, self.ttl_seconds)
                    await pipe.execute()
            except RedisError as e:
                self._log_once(response_id, f"Redis append error for {response_id}: {e}")
            return

        self._append_local(response_id, entry)

    async def get_cached_response(self, response_id: str) -> Optional[CachedResponse]:
        """
        Retrieve a cached response for replay.

        Returns None if the response is unknown, expired, or unreadable.
        """
        if self._redis is not None:
            try:
                raw_items = await self._redis.lrange(cache_key(response_id), 0, -1)
            except RedisError as e:
                logger.error(f"Redis get error for {response_id}: {e}")
                return None
            if not raw_items:
                return None
            events = [e for e in (_decode_event(item) for item in raw_items) if e is not None]
        else:
            record = self._get_local(response_id)
            if record is None or not record.events:
                return None
            events = [e for e in (_validate_event(item) for item in record.events) if e is not None]

        return CachedResponse(events=events, complete=is_complete(events))

    def _append_local(self, response_id: str, entry: Dict[str, Any]) -> None:
        now = self._clock()
        self._purge_expired(now)

        record = self._local.get(response_id)
        if record is None:
            # Evict oldest entry if cache is at capacity
            while len(self._local) >= self.max_local_entries:
                evicted, _ = self._local.popitem(last=False)
                logger.debug(f"Evicted cached response {evicted}")
            record = _LocalRecord()
            self._local[response_id] = record

        record.events.append(entry)
        record.expires_at = now + self.ttl_seconds * 1000

    def _get_local(self, response_id: str) -> Optional[_LocalRecord]:
        self._purge_expired(self._clock())
        return self._local.get(response_id)

    def _purge_expired(self, now: int) -> None:
        expired = [rid for rid, rec in self._local.items() if rec.expires_at <= now]
        for rid in expired:
            del self._local[rid]

    def _log_once(self, response_id: str, message: str) -> None:
        if response_id in self._error_logged:
            return
        if len(self._error_logged) >= MAX_ERROR_LOG_IDS:
            self._error_logged.clear()
        self._error_logged.add(response_id)
        logger.error(message)


def _validate_event(entry: Any) -> Optional[SSEEvent]:
    if not isinstance(entry, dict) or not isinstance(entry.get("data"), dict):
        return None
    try:
        return SSEEvent.model_validate(entry)
    except ValidationError:
        return None


def _decode_event(raw: Any) -> Optional[SSEEvent]:
    try:
        entry = orjson.loads(raw)
    except (orjson.JSONDecodeError, TypeError):
        logger.warning("Skipping undecodable cached event")
        return None
    return _validate_event(entry)


class ResponseRecorder:
    """
    Write side of one response's cache record.

    One recorder per streamed response; it is the record's only writer, so
    appends are sequential. Once a terminal event (done or error) is recorded
    the record is closed and further events are ignored.
    """

    def __init__(self, cache: ResponseCache, response_id: Optional[str] = None):
        self.cache = cache
        self.response_id = response_id or str(uuid.uuid4())
        self.complete = False
        self.event_count = 0

    async def record(self, event: str, data: Any) -> bool:
        """Append an event; returns False if the record was already complete."""
        if self.complete:
            logger.debug(f"Ignoring {event} after completion of {self.response_id}")
            return False
        await self.cache.append_event(self.response_id, event, data)
        self.event_count += 1
        if event in TERMINAL_EVENT_TYPES:
            self.complete = True
        return True
