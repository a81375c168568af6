"""
Passage retrieval boundary.

Vector search over the corpus is an external service; the pipeline only
needs passages plus the detected intent. Deployments plug in their own
PassageRetriever.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from ra_companion.models.events import Quote


@dataclass
class RetrievalResult:
    passages: List[Quote] = field(default_factory=list)
    intent: str = "conceptual"
    confidence: str = "low"
    concepts: Optional[List[str]] = None


class PassageRetriever(Protocol):
    async def retrieve(self, query: str, history: List[dict]) -> RetrievalResult:
        ...


class NoopRetriever:
    """Retriever used when no search backend is configured."""

    async def retrieve(self, query: str, history: List[dict]) -> RetrievalResult:
        return RetrievalResult()
