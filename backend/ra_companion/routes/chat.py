"""
Chat route: streams one AI response over SSE.

Returns an SSE stream with events:
- session: {responseId} - first event; use it with /api/chat/recover
- meta: {quotes, intent, confidence, concepts?}
- chunk: {type: "text", content} or {type: "quote", text, reference, url}
- suggestions: {items}
- done: {} or error: {code, message, retryable} - terminal
Comment lines (": heartbeat") keep idle connections open.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ra_companion.dependencies import get_chat_policy, get_rate_limiter, get_stream_handler
from ra_companion.models.request import ChatRequest
from ra_companion.models.response import error_responses
from ra_companion.services.rate_limit import RateLimitPolicy, RateLimiter, get_client_ip
from ra_companion.services.streaming import ChatStreamHandler
from ra_companion.utils.exceptions import raise_too_many_requests
from ra_companion.utils.sse import SSE_HEADERS, SSE_MEDIA_TYPE

router = APIRouter()


@router.post("/chat", responses=error_responses(400, 429))
async def chat(
    body: ChatRequest,
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
    policy: RateLimitPolicy = Depends(get_chat_policy),
    handler: ChatStreamHandler = Depends(get_stream_handler),
):
    """POST /api/chat - stream a response and record it for recovery."""
    result = await limiter.check(get_client_ip(request), policy)
    if not result.success:
        reset = datetime.fromtimestamp(result.reset_at / 1000, tz=timezone.utc)
        raise_too_many_requests(
            "Too many requests. Please wait before trying again.",
            result.retry_after_seconds(limiter.now()),
            headers={
                "X-RateLimit-Limit": str(result.limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": reset.isoformat(),
            },
        )

    recorder = handler.new_recorder()
    return StreamingResponse(
        handler.stream(body, recorder),
        media_type=SSE_MEDIA_TYPE,
        headers={**SSE_HEADERS, "X-Response-Id": recorder.response_id},
    )
