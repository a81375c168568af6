"""
OpenAI provider, also usable against OpenAI-compatible servers (vLLM, Ollama, ...).
"""

from typing import Optional

import httpx

from ra_companion.providers.base import DEFAULT_TIMEOUT, OpenAIFormatProvider


class OpenAIProvider(OpenAIFormatProvider):
    """OpenAI GPT provider."""

    name = "openai"
    base_url = "https://api.openai.com/v1"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if base_url:
            self.base_url = base_url.rstrip("/")
        super().__init__(api_key, model, timeout=timeout, transport=transport)
