import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import httpx
import orjson

logger = logging.getLogger(__name__)

# Constants
SSE_DATA_PREFIX = "data: "
SSE_DONE_SIGNAL = "data: [DONE]"
DEFAULT_TIMEOUT = 60.0


@dataclass
class StreamChunk:
    """Represents a single streaming chunk from a provider"""

    provider: str
    content: str
    is_done: bool = False
    error: Optional[str] = None


class BaseProvider(ABC):
    """Abstract base class for upstream LLM providers"""

    name: str

    def __init__(self, api_key: Optional[str], model: str, timeout: float = DEFAULT_TIMEOUT):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    @abstractmethod
    async def stream_chat(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat completion responses"""
        pass

    @abstractmethod
    async def complete(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
    ) -> str:
        """Return a whole (non-streamed) completion"""
        pass

    async def cleanup(self):
        """Cleanup HTTP client resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def is_configured(self) -> bool:
        """Check if provider has valid API key"""
        return bool(self.api_key)

    def _error_chunk(self, error: Exception) -> StreamChunk:
        """Create an error StreamChunk."""
        return StreamChunk(provider=self.name, content="", is_done=True, error=str(error))

    async def _stream_sse_lines(
        self,
        response: httpx.Response,
        extract_content: Callable[[dict], Optional[str]],
    ) -> AsyncIterator[StreamChunk]:
        """
        Turn an upstream ``data:`` line stream into StreamChunks.

        Ends with a single is_done chunk, either at ``data: [DONE]`` or when
        the upstream closes the connection. Unparseable lines are skipped.
        """
        async for line in response.aiter_lines():
            if line == SSE_DONE_SIGNAL:
                break
            if not line.startswith(SSE_DATA_PREFIX):
                continue
            try:
                data = orjson.loads(line[len(SSE_DATA_PREFIX):])
            except orjson.JSONDecodeError as e:
                logger.debug(f"JSON parse error in {self.name}: {e}")
                continue
            content = extract_content(data)
            if content:
                yield StreamChunk(provider=self.name, content=content)

        yield StreamChunk(provider=self.name, content="", is_done=True)


def _extract_delta(data: dict) -> str | None:
    choices = data.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("delta") or {}).get("content")


class OpenAIFormatProvider(BaseProvider):
    """Base class for providers using the OpenAI chat completions format.

    Subclasses only need to set `name` and `base_url` class attributes.
    """

    name: str = ""  # Override in subclass
    base_url: str = ""  # Override in subclass

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(api_key, model, timeout)
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=transport,
        )

    def _build_messages(self, messages: list[dict], system_prompt: Optional[str]) -> list[dict]:
        formatted = []
        if system_prompt:
            formatted.append({"role": "system", "content": system_prompt})
        formatted.extend({"role": m["role"], "content": m["content"]} for m in messages)
        return formatted

    def _build_payload(
        self,
        messages: list[dict],
        system_prompt: Optional[str],
        reasoning_effort: Optional[str],
    ) -> dict:
        payload = {
            "model": self.model,
            "messages": self._build_messages(messages, system_prompt),
        }
        if reasoning_effort:
            payload["reasoning_effort"] = reasoning_effort
        return payload

    async def stream_chat(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream chat completion using the OpenAI API format."""
        payload = self._build_payload(messages, system_prompt, reasoning_effort)
        payload["stream"] = True
        try:
            async with self._client.stream(
                "POST", "/chat/completions", json=payload
            ) as response:
                response.raise_for_status()
                async for chunk in self._stream_sse_lines(response, _extract_delta):
                    yield chunk
        except Exception as e:
            yield self._error_chunk(e)

    async def complete(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        reasoning_effort: Optional[str] = None,
    ) -> str:
        payload = self._build_payload(messages, system_prompt, reasoning_effort)
        response = await self._client.post("/chat/completions", json=payload)
        response.raise_for_status()
        data = orjson.loads(response.content)
        choices = data.get("choices") or []
        if not choices:
            return ""
        return (choices[0].get("message") or {}).get("content") or ""
