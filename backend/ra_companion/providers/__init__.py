from ra_companion.providers.base import BaseProvider, StreamChunk
from ra_companion.providers.openai import OpenAIProvider

__all__ = ["BaseProvider", "StreamChunk", "OpenAIProvider"]
