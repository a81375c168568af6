"""
Live SSE stream for one chat response, mirrored into the recovery cache.

The pipeline runs in a background task. Each event it emits is recorded in
the ResponseCache first and then queued for the live connection, so the
cached order always equals the live order. If the client goes away the
task keeps running and recording; a later /api/chat/recover call replays
the whole response.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional, Set

from ra_companion.models.request import ChatRequest
from ra_companion.services.pipeline import ChatPipeline
from ra_companion.services.response_cache import ResponseCache, ResponseRecorder
from ra_companion.utils.sse import HEARTBEAT_FRAME, format_sse

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 15.0


class ChatStreamHandler:
    def __init__(
        self,
        pipeline: ChatPipeline,
        cache: ResponseCache,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
    ):
        self.pipeline = pipeline
        self.cache = cache
        self.heartbeat_interval = heartbeat_interval
        # Strong references so detached generations are not garbage collected
        self._tasks: Set[asyncio.Task] = set()

    def new_recorder(self) -> ResponseRecorder:
        return ResponseRecorder(self.cache)

    @property
    def active_generations(self) -> int:
        return len(self._tasks)

    async def stream(
        self, request: ChatRequest, recorder: Optional[ResponseRecorder] = None
    ) -> AsyncIterator[str]:
        """
        Yield SSE frames: session first, then pipeline events, with
        heartbeat comments whenever the pipeline is quiet.
        """
        recorder = recorder or self.new_recorder()
        queue: asyncio.Queue[Optional[str]] = asyncio.Queue()

        async def emit(event: str, data: dict) -> None:
            if await recorder.record(event, data):
                queue.put_nowait(format_sse(event, data))

        async def produce() -> None:
            try:
                await emit("session", {"responseId": recorder.response_id})
                await self.pipeline.run(request, emit)
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(produce())
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

        try:
            while True:
                try:
                    frame = await asyncio.wait_for(queue.get(), timeout=self.heartbeat_interval)
                except asyncio.TimeoutError:
                    yield HEARTBEAT_FRAME
                    continue
                if frame is None:
                    break
                yield frame
        finally:
            if not task.done():
                logger.info(
                    f"Client left response {recorder.response_id}; generation continues for recovery"
                )

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Chat generation task failed: {exc}", exc_info=exc)

    async def shutdown(self) -> None:
        """Cancel generations still running at application shutdown."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
