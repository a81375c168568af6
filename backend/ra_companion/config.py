import logging
import sys

from pydantic_settings import BaseSettings
from typing import Optional


def setup_logging():
    """Configure application logging."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # Set third-party loggers to WARNING to reduce noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# Initialize logging on import
setup_logging()

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    # Upstream LLM (server-side only)
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    chat_model: str = "gpt-5-mini"
    # reasoning_effort sent upstream; thinking mode asks for more
    reasoning_effort: Optional[str] = "low"
    thinking_reasoning_effort: Optional[str] = "medium"

    # Timeout settings (seconds)
    provider_timeout: int = 60

    # Key-value store. Without a URL, rate limits and the recovery cache
    # live in process memory (local development only).
    redis_url: Optional[str] = None
    redis_max_connections: int = 100

    # Rate limiting (per client IP, fixed window)
    chat_rate_limit_max_requests: int = 10
    chat_rate_limit_window_seconds: int = 60
    recovery_rate_limit_max_requests: int = 30
    recovery_rate_limit_window_seconds: int = 60

    # Stream recovery cache
    stream_recovery_cache_ttl_seconds: int = 300
    max_local_cache_size: int = 100

    # SSE keep-alive
    heartbeat_interval_seconds: float = 15.0

    # Input validation
    max_message_length: int = 5000
    max_history_length: int = 20
    max_history_message_length: int = 10000
    recent_history_count: int = 6

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def warn_missing_api_key():
    """Log a warning when no upstream API key is configured."""
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set; chat requests will fail with STREAM_FAILED")


settings = Settings()
