"""
FastAPI dependencies resolving per-application services from app.state.
"""

from fastapi import Request

from ra_companion.services.rate_limit import RateLimitPolicy, RateLimiter
from ra_companion.services.response_cache import ResponseCache
from ra_companion.services.streaming import ChatStreamHandler


def get_response_cache(request: Request) -> ResponseCache:
    return request.app.state.response_cache


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_stream_handler(request: Request) -> ChatStreamHandler:
    return request.app.state.stream_handler


def get_chat_policy(request: Request) -> RateLimitPolicy:
    return request.app.state.chat_policy


def get_recovery_policy(request: Request) -> RateLimitPolicy:
    return request.app.state.recovery_policy
