"""
Prompts and context builders for the chat pipeline.
"""

from typing import List, Optional

from ra_companion.models.events import Quote


RESPONSE_PROMPT = """You are a study companion for the Ra Material (the Law of One series).
Answer the user's question using the numbered passages provided below.

Rules:
- Ground every claim in the passages; say so plainly when they do not cover the question
- To show a passage, write its marker on its own: {{QUOTE:N}}
- To show only sentences X to Y of a passage, write {{QUOTE:N:sX:sY}}
- Never paste passage text yourself; the marker is replaced with the quote
- Do not invent session numbers or references
- Be warm and concise; avoid preaching"""

SUGGESTIONS_PROMPT = """Generate EXACTLY 3 short follow-up questions the user might ask next.

Respond in JSON only:
{"suggestions": ["question 1", "question 2", "question 3"]}

Rules:
- Use the specific terms just discussed, not vague phrases like "Tell me more"
- If the response ends with a question to the user, the first suggestion answers it
- Each suggestion under 60 characters
- Write in the user's language"""


def build_context_from_quotes(passages: List[Quote]) -> str:
    """Number passages 1..N for marker references."""
    if not passages:
        return "No passages were found for this question."
    blocks = [
        f"[{i}] ({quote.reference})\n{quote.text}"
        for i, quote in enumerate(passages, start=1)
    ]
    return "PASSAGES:\n\n" + "\n\n".join(blocks)


def build_system_prompt(
    passages: List[Quote],
    intent: str,
    target_language: Optional[str] = None,
) -> str:
    parts = [RESPONSE_PROMPT, f"DETECTED INTENT: {intent}", build_context_from_quotes(passages)]
    if target_language and target_language != "en":
        parts.append(f"Respond in the language with code '{target_language}'.")
    return "\n\n".join(parts)


def build_suggestions_context(
    user_message: str,
    assistant_response: str,
    intent: str,
    turn_count: int,
) -> str:
    # Long answers: keep the ending, which is where invitations to continue live
    if len(assistant_response) > 1200:
        response = f"[...about {round(len(assistant_response) / 4)} words...]\n\n...{assistant_response[-700:]}"
    else:
        response = assistant_response

    return "\n".join(
        [
            f"DETECTED INTENT: {intent}",
            f"CONVERSATION DEPTH: Turn {turn_count}",
            "",
            f"USER'S MESSAGE: {user_message}",
            "",
            "ASSISTANT'S RESPONSE:",
            response,
        ]
    )
