"""
Normalization utilities for LLM JSON output.

LLMs sometimes return objects instead of strings in list fields, or
slightly malformed JSON. These helpers turn such output into plain values.
"""

import logging
from typing import Any, Dict, List, Optional

from json_repair import repair_json

logger = logging.getLogger(__name__)


def repair_llm_json(
    raw_content: str,
    provider: str = "unknown",
    list_key: str = "items",
) -> Optional[Dict[str, Any]]:
    """
    Repair and parse potentially malformed JSON from LLM output.

    Uses json-repair library to fix common issues like:
    - Control characters in strings
    - Trailing commas
    - Missing quotes
    - Markdown code fences around the JSON

    Args:
        raw_content: Raw JSON string from LLM (may be malformed)
        provider: Provider name for logging purposes
        list_key: Key to wrap a bare top-level array under

    Returns:
        Parsed dict if successful, None if repair failed

    Examples:
        >>> repair_llm_json('{"suggestions": ["a", "b",]}')  # trailing comma
        {"suggestions": ["a", "b"]}

        >>> repair_llm_json('["a", "b"]', list_key="suggestions")
        {"suggestions": ["a", "b"]}
    """
    if not raw_content or not raw_content.strip():
        return None

    try:
        repaired = repair_json(raw_content, return_objects=True)
    except Exception as e:
        logger.warning(f"[{provider}] JSON repair failed: {e}")
        return None

    if isinstance(repaired, dict):
        return repaired

    if isinstance(repaired, list):
        # If list contains a single dict, extract it
        if len(repaired) == 1 and isinstance(repaired[0], dict):
            logger.info(f"[{provider}] JSON repair: extracted dict from single-element array")
            return repaired[0]
        logger.info(f"[{provider}] JSON repair: wrapped array as {list_key}")
        return {list_key: repaired}

    # If repair_json returns a string, it means it couldn't parse
    logger.warning(f"[{provider}] JSON repair returned non-dict: {type(repaired)}")
    return None


# Keys models use when they wrap a suggestion in an object, most specific first
TEXT_KEYS = (
    "suggestion",
    "question",
    "text",
    "label",
    "content",
    "value",
)


def normalize_string_list(
    items: Any,
    field_name: str = "items",
    provider: str = "unknown",
) -> List[str]:
    """
    Coerce an LLM list field to a list of non-empty, stripped strings.

    Objects such as ``{"question": "..."}`` are reduced to their text; other
    scalars are stringified; empty strings and nulls are dropped.

        >>> normalize_string_list([{"question": "What is harvest?"}, " Densities "])
        ["What is harvest?", "Densities"]
    """
    if not items:
        return []

    if not isinstance(items, list):
        logger.warning(f"[{provider}] {field_name}: expected list, got {type(items).__name__}")
        return []

    result: List[str] = []
    from_objects = 0
    for item in items:
        if isinstance(item, dict):
            from_objects += 1
            text = _text_from_object(item)
        elif item is None:
            text = ""
        else:
            text = str(item).strip()
        if text:
            result.append(text)

    if from_objects:
        logger.info(f"[{provider}] {field_name}: unwrapped {from_objects}/{len(items)} object items")

    return result


def _text_from_object(obj: dict) -> str:
    """First non-empty string under a known key, else the first string value at all."""
    preferred = [obj[key] for key in TEXT_KEYS if key in obj]
    for value in preferred + list(obj.values()):
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""
