"""
HTTP client for the chat stream and its recovery endpoint.

    async with ChatStreamClient("http://localhost:8000") as client:
        response = await client.send("What is harvest?")
        print(response.text)

``send`` survives a dropped connection: once the session event has named
the response, a network failure is answered by fetching the cached events
from /api/chat/recover and replaying whatever was not seen live.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, List, Optional

import httpx
import orjson
from pydantic import ValidationError

from ra_companion.client.consumer import ResponseAccumulator
from ra_companion.client.errors import ErrorKind, StreamError
from ra_companion.models.events import SSEEvent
from ra_companion.models.response import RecoveryResponse
from ra_companion.utils.sse import parse_sse

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"
RECOVER_PATH = "/api/chat/recover"

DEFAULT_RETRY_AFTER = 1


def _error_body(response: httpx.Response) -> dict:
    try:
        body = orjson.loads(response.content)
    except orjson.JSONDecodeError:
        return {}
    return body if isinstance(body, dict) else {}


def _retry_after(response: httpx.Response, body: dict) -> int:
    """Seconds to wait from the Retry-After header, falling back to the body."""
    for value in (response.headers.get("Retry-After"), body.get("retryAfter")):
        try:
            seconds = int(value)
        except (TypeError, ValueError):
            continue
        if seconds > 0:
            return seconds
    return DEFAULT_RETRY_AFTER


def error_from_response(response: httpx.Response) -> StreamError:
    """Classify a non-2xx response by status code."""
    body = _error_body(response)
    message = str(body.get("error") or "")
    if response.status_code == 429:
        return StreamError(
            ErrorKind.RATE_LIMITED, message, retry_after=_retry_after(response, body)
        )
    if response.status_code == 400:
        return StreamError(ErrorKind.VALIDATION, message, retryable=False)
    return StreamError(ErrorKind.SERVER, message or f"HTTP {response.status_code}")


class ChatStreamClient:
    """Async client for POST /api/chat and GET /api/chat/recover."""

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 60.0,
        max_recovery_attempts: int = 3,
        recovery_poll_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.max_recovery_attempts = max_recovery_attempts
        self.recovery_poll_interval = recovery_poll_interval
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=httpx.Timeout(timeout, connect=10.0),
        )

    async def __aenter__(self) -> "ChatStreamClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def stream_chat(
        self,
        message: str,
        history: Optional[List[dict]] = None,
        target_language: str = "en",
    ) -> AsyncIterator[SSEEvent]:
        """Yield events from a live chat stream as they arrive."""
        payload = {
            "message": message,
            "history": history or [],
            "targetLanguage": target_language,
        }
        try:
            async with self._client.stream("POST", CHAT_PATH, json=payload) as response:
                if response.status_code != 200:
                    await response.aread()
                    raise error_from_response(response)

                buffer = ""
                async for text in response.aiter_text():
                    result = parse_sse(buffer + text)
                    buffer = result.remaining
                    for event in result.events:
                        yield event
        except httpx.TransportError as e:
            raise StreamError(ErrorKind.NETWORK, str(e)) from e

    async def recover(self, response_id: str) -> Optional[RecoveryResponse]:
        """
        Fetch cached events for a response.

        Returns None when the response is unknown, expired or the id is
        rejected; those are final and not retried. 429s are retried after the
        server's Retry-After, up to max_recovery_attempts.
        """
        for attempt in range(1, self.max_recovery_attempts + 1):
            try:
                response = await self._client.get(RECOVER_PATH, params={"id": response_id})
            except httpx.TransportError as e:
                raise StreamError(ErrorKind.NETWORK, str(e)) from e

            if response.status_code in (400, 404):
                logger.info(f"Response {response_id} not recoverable ({response.status_code})")
                return None
            if response.status_code == 429:
                error = error_from_response(response)
                if attempt == self.max_recovery_attempts:
                    raise error
                logger.debug(f"Recovery rate limited, retrying in {error.retry_after}s")
                await self._sleep(error.retry_after)
                continue
            if response.status_code != 200:
                raise error_from_response(response)

            try:
                return RecoveryResponse.model_validate(orjson.loads(response.content))
            except (orjson.JSONDecodeError, ValidationError) as e:
                raise StreamError(ErrorKind.SERVER, "Malformed recovery response") from e

        return None

    async def send(
        self,
        message: str,
        history: Optional[List[dict]] = None,
        target_language: str = "en",
    ) -> ResponseAccumulator:
        """
        Stream one response to completion, recovering from dropped connections.

        Raises StreamError for HTTP errors, unrecoverable drops, and terminal
        error events (after the error event has been applied).
        """
        state = ResponseAccumulator()
        try:
            async for event in self.stream_chat(message, history, target_language):
                state.apply(event)
        except StreamError as e:
            if e.kind is not ErrorKind.NETWORK or state.response_id is None:
                raise
            logger.warning(f"Stream for {state.response_id} dropped after {state.applied} events: {e}")

        if not state.finished:
            await self._recover_into(state)

        if state.error is not None:
            raise StreamError(
                ErrorKind.SERVER,
                state.error.message or "",
                retryable=bool(state.error.retryable),
                code=state.error.code,
            )
        return state

    async def _recover_into(self, state: ResponseAccumulator) -> None:
        """Replay cached events into state, polling while generation is still running."""
        if state.response_id is None:
            raise StreamError(ErrorKind.NETWORK, "Connection lost before the response started")

        for poll in range(self.max_recovery_attempts):
            if poll:
                await self._sleep(self.recovery_poll_interval)
            recovered = await self.recover(state.response_id)
            if recovered is None:
                raise StreamError(ErrorKind.NETWORK, "Response could not be recovered")
            replayed = state.replay(recovered.events)
            logger.info(f"Recovered {replayed} events for {state.response_id}")
            if state.finished:
                return

        raise StreamError(ErrorKind.NETWORK, "Response did not complete")
