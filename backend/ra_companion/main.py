import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from redis import asyncio as aioredis

from ra_companion.config import Settings, settings as default_settings, warn_missing_api_key
from ra_companion.providers.base import BaseProvider
from ra_companion.providers.openai import OpenAIProvider
from ra_companion.routes import chat, health, recover
from ra_companion.services.pipeline import ChatPipeline
from ra_companion.services.rate_limit import RateLimiter, chat_policy, recovery_policy
from ra_companion.services.response_cache import ResponseCache
from ra_companion.services.retrieval import PassageRetriever
from ra_companion.services.streaming import ChatStreamHandler
from ra_companion.utils.exceptions import http_exception_handler, validation_exception_handler

logger = logging.getLogger(__name__)


def create_redis(config: Settings) -> Optional[aioredis.Redis]:
    """Shared asyncio Redis client, or None to use in-process storage."""
    if not config.redis_url:
        logger.warning("REDIS_URL not set; using in-memory rate limits and response cache")
        return None
    return aioredis.from_url(
        config.redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=config.redis_max_connections,
    )


def create_app(
    config: Settings = default_settings,
    redis: Optional[aioredis.Redis] = None,
    provider: Optional[BaseProvider] = None,
    retriever: Optional[PassageRetriever] = None,
    rate_limiter: Optional[RateLimiter] = None,
    response_cache: Optional[ResponseCache] = None,
) -> FastAPI:
    """
    Build the application with its own services.

    Everything stateful (cache, limiter, running generations) hangs off
    app.state, so each app instance, including each test app, is isolated.
    """
    if redis is None and response_cache is None and rate_limiter is None:
        redis = create_redis(config)

    if provider is None:
        warn_missing_api_key()
        provider = OpenAIProvider(
            api_key=config.openai_api_key,
            model=config.chat_model,
            base_url=config.openai_base_url,
            timeout=float(config.provider_timeout),
        )

    response_cache = response_cache or ResponseCache(
        redis=redis,
        ttl_seconds=config.stream_recovery_cache_ttl_seconds,
        max_local_entries=config.max_local_cache_size,
    )
    rate_limiter = rate_limiter or RateLimiter(redis=redis)
    pipeline = ChatPipeline(
        provider,
        retriever=retriever,
        recent_history_count=config.recent_history_count,
        reasoning_effort=config.reasoning_effort,
        thinking_reasoning_effort=config.thinking_reasoning_effort,
    )
    stream_handler = ChatStreamHandler(
        pipeline, response_cache, heartbeat_interval=config.heartbeat_interval_seconds
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle events"""
        logger.info(
            f"Recovery cache: {response_cache.backend} (ttl {response_cache.ttl_seconds}s), "
            f"rate limits: {rate_limiter.backend}"
        )

        yield

        # Shutdown: Cleanup resources
        await stream_handler.shutdown()
        await provider.cleanup()
        if redis is not None:
            await redis.aclose()

    app = FastAPI(
        title="Ra Companion API",
        description="Streaming study companion for the Ra Material, with SSE response recovery",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.response_cache = response_cache
    app.state.rate_limiter = rate_limiter
    app.state.stream_handler = stream_handler
    app.state.chat_policy = chat_policy(config)
    app.state.recovery_policy = recovery_policy(config)

    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # CORS middleware (reverse proxy handles external access, but useful for dev)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Response-Id", "Retry-After"],
    )

    # Include routers
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(chat.router, prefix="/api", tags=["chat"])
    app.include_router(recover.router, prefix="/api", tags=["chat"])

    return app


def run():
    """Console entry point: serve with uvicorn."""
    import uvicorn

    uvicorn.run(
        "ra_companion.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )
