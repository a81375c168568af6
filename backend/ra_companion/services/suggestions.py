"""
Follow-up suggestion generation for chat responses.

Suggestions are optional: any failure yields the intent's fallback list
rather than an error event.
"""

import logging
from typing import Dict, List, Optional

from ra_companion.providers.base import BaseProvider
from ra_companion.services.prompts import SUGGESTIONS_PROMPT, build_suggestions_context
from ra_companion.utils.normalize import normalize_string_list, repair_llm_json

logger = logging.getLogger(__name__)

SUGGESTION_COUNT = 3
MAX_SUGGESTION_LENGTH = 60

# Fallback suggestions by intent when the LLM fails or returns fewer than 3
FALLBACK_SUGGESTIONS: Dict[str, List[str]] = {
    "quote-search": [
        "Show me the full passage",
        "What else does Ra say about this?",
        "Which session is this from?",
    ],
    "conceptual": [
        "How does this connect to other concepts?",
        "Can you explain this further?",
        "What's the context for this teaching?",
    ],
    "practical": [
        "What's the first step?",
        "Are there other approaches?",
        "How do I know if it's working?",
    ],
    "personal": [
        "What does Ra say about this?",
        "Is there more to explore here?",
        "I'd like to discuss something else",
    ],
    "comparative": [
        "What are the key differences?",
        "Are there other parallels?",
        "How is Ra's view unique?",
    ],
    "meta": [
        "What topics can I explore?",
        "What is the Law of One?",
        "How do I search for quotes?",
    ],
    "off-topic": [
        "What is the Law of One?",
        "Tell me about densities",
        "What topics can I explore?",
    ],
}


def get_fallback_suggestions(intent: str, existing: List[str]) -> List[str]:
    """Fallbacks for intent, minus any already present"""
    fallbacks = FALLBACK_SUGGESTIONS.get(intent, FALLBACK_SUGGESTIONS["conceptual"])
    return [f for f in fallbacks if f not in existing]


def parse_suggestions(raw: str, provider: str = "unknown") -> List[str]:
    """Extract up to SUGGESTION_COUNT short suggestions from LLM output."""
    parsed = repair_llm_json(raw, provider=provider, list_key="suggestions")
    if not parsed:
        return []
    items = normalize_string_list(parsed.get("suggestions"), "suggestions", provider)
    return [s for s in items if len(s) <= MAX_SUGGESTION_LENGTH][:SUGGESTION_COUNT]


async def generate_suggestions(
    provider: BaseProvider,
    user_message: str,
    assistant_response: str,
    intent: str,
    turn_count: int = 1,
    reasoning_effort: Optional[str] = None,
) -> List[str]:
    """Ask the provider for follow-ups, topping up from fallbacks."""
    suggestions: List[str] = []
    try:
        context = build_suggestions_context(user_message, assistant_response, intent, turn_count)
        raw = await provider.complete(
            [{"role": "user", "content": context}], SUGGESTIONS_PROMPT, reasoning_effort
        )
        suggestions = parse_suggestions(raw, provider.name)
    except Exception as e:
        logger.warning(f"Suggestion generation failed, using fallbacks: {e}")

    if len(suggestions) < SUGGESTION_COUNT:
        suggestions += get_fallback_suggestions(intent, suggestions)
    return suggestions[:SUGGESTION_COUNT]
