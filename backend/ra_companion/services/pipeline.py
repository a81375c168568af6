"""
Chat pipeline: retrieval -> meta -> streamed answer -> suggestions -> done.

Emits, in order:
- meta: {quotes, intent, confidence, concepts?}
- chunk: {type: "text", content} / {type: "quote", text, reference, url}
- suggestions: {items} (only when there are any)
- done: {}

Any failure ends the stream with a single error event instead of done.
"""

import logging
from typing import Awaitable, Callable, Optional

from ra_companion.models.request import ChatRequest
from ra_companion.providers.base import BaseProvider
from ra_companion.services.errors import ChatError, ChatErrorCode, to_error_event_data
from ra_companion.services.prompts import build_system_prompt
from ra_companion.services.quote_markers import QuoteMarkerProcessor
from ra_companion.services.retrieval import NoopRetriever, PassageRetriever, RetrievalResult
from ra_companion.services.suggestions import generate_suggestions

logger = logging.getLogger(__name__)

Emit = Callable[[str, dict], Awaitable[None]]

DEFAULT_RECENT_HISTORY = 6


class ChatPipeline:
    """Runs one chat generation and reports it through an emit callback."""

    def __init__(
        self,
        provider: BaseProvider,
        retriever: Optional[PassageRetriever] = None,
        suggestions_enabled: bool = True,
        recent_history_count: int = DEFAULT_RECENT_HISTORY,
        reasoning_effort: Optional[str] = None,
        thinking_reasoning_effort: Optional[str] = None,
    ):
        self.provider = provider
        self.retriever = retriever or NoopRetriever()
        self.suggestions_enabled = suggestions_enabled
        self.recent_history_count = recent_history_count
        self.reasoning_effort = reasoning_effort
        self.thinking_reasoning_effort = thinking_reasoning_effort

    def effort_for(self, request: ChatRequest) -> Optional[str]:
        """Reasoning effort for the request, raised when thinking mode is on."""
        if request.thinking_mode and self.thinking_reasoning_effort:
            return self.thinking_reasoning_effort
        return self.reasoning_effort

    async def run(self, request: ChatRequest, emit: Emit) -> None:
        """Never raises; failures are emitted as a terminal error event."""
        try:
            await self._run(request, emit)
        except Exception as e:
            logger.exception("Chat pipeline error")
            await emit("error", to_error_event_data(e))

    async def _run(self, request: ChatRequest, emit: Emit) -> None:
        if not self.provider.is_configured():
            raise ChatError(ChatErrorCode.STREAM_FAILED, RuntimeError("Upstream provider not configured"))

        history = [{"role": m.role, "content": m.content} for m in request.history]
        try:
            retrieval: RetrievalResult = await self.retriever.retrieve(request.message, history)
        except Exception as e:
            raise ChatError(ChatErrorCode.SEARCH_FAILED, e) from e

        meta = {
            "quotes": [q.model_dump() for q in retrieval.passages],
            "intent": retrieval.intent,
            "confidence": retrieval.confidence,
        }
        if retrieval.concepts:
            meta["concepts"] = retrieval.concepts
        await emit("meta", meta)

        processor = QuoteMarkerProcessor(retrieval.passages)
        system_prompt = build_system_prompt(
            retrieval.passages, retrieval.intent, request.target_language
        )
        async for chunk in self.provider.stream_chat(
            request.llm_messages(self.recent_history_count),
            system_prompt,
            self.effort_for(request),
        ):
            if chunk.error:
                raise ChatError(ChatErrorCode.STREAM_FAILED, RuntimeError(chunk.error))
            for payload in processor.feed(chunk.content):
                await emit("chunk", payload)
            if chunk.is_done:
                break
        for payload in processor.finish():
            await emit("chunk", payload)

        logger.info(
            f"Response generated: {len(processor.full_output)} chars, "
            f"{processor.quote_count} quotes, intent={retrieval.intent}"
        )

        if self.suggestions_enabled:
            items = await generate_suggestions(
                self.provider,
                request.message,
                processor.full_output,
                retrieval.intent,
                request.turn_count,
                self.reasoning_effort,
            )
            if items:
                await emit("suggestions", {"items": items})

        await emit("done", {})
