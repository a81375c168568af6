"""
Chat recovery endpoint.

Replays cached SSE events for a response ID. Used by clients whose live
stream died (e.g. mobile backgrounding) to fetch what they missed without
re-running generation.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ra_companion.dependencies import get_rate_limiter, get_recovery_policy, get_response_cache
from ra_companion.models.response import RecoveryResponse, error_responses
from ra_companion.services.rate_limit import RateLimitPolicy, RateLimiter, get_client_ip
from ra_companion.services.response_cache import ResponseCache
from ra_companion.utils.exceptions import raise_bad_request, raise_not_found, raise_too_many_requests

logger = logging.getLogger(__name__)

router = APIRouter()

# UUID v4 textual format
UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_valid_response_id(value: Optional[str]) -> bool:
    return bool(value) and UUID_PATTERN.match(value) is not None


@router.get(
    "/chat/recover",
    response_model=RecoveryResponse,
    responses=error_responses(400, 404, 429),
)
async def recover(
    request: Request,
    id: Optional[str] = Query(default=None),
    cache: ResponseCache = Depends(get_response_cache),
    limiter: RateLimiter = Depends(get_rate_limiter),
    policy: RateLimitPolicy = Depends(get_recovery_policy),
):
    """
    GET /api/chat/recover?id=<uuid>

    - 429 {error, retryAfter} + Retry-After when over the recovery budget
    - 400 {error} when id is missing or not UUID-shaped (no lookup made)
    - 404 {error} when nothing is cached (expired or unknown)
    - 200 {events: [{type, data}], complete}
    """
    client_ip = get_client_ip(request)
    result = await limiter.check(client_ip, policy)
    if not result.success:
        raise_too_many_requests("Too many requests", result.retry_after_seconds(limiter.now()))

    if not is_valid_response_id(id):
        raise_bad_request("Invalid or missing id parameter")

    cached = await cache.get_cached_response(id)
    if cached is None:
        logger.info(f"Recovery miss for {id}")
        raise_not_found("Response")

    return RecoveryResponse(events=cached.events, complete=cached.complete)
