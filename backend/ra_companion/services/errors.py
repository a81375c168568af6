"""
Typed errors for the chat pipeline.

Each code carries a user-facing message and whether resubmitting the same
request may succeed. The pipeline turns any failure into exactly one
terminal ``error`` SSE event built from these templates.
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional


class ChatErrorCode(str, Enum):
    AUGMENTATION_FAILED = "AUGMENTATION_FAILED"
    EMBEDDING_FAILED = "EMBEDDING_FAILED"
    SEARCH_FAILED = "SEARCH_FAILED"
    STREAM_FAILED = "STREAM_FAILED"
    QUOTE_PROCESSING_FAILED = "QUOTE_PROCESSING_FAILED"
    SUGGESTIONS_FAILED = "SUGGESTIONS_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class _ErrorTemplate(NamedTuple):
    user_message: str
    retryable: bool


ERROR_TEMPLATES: Dict[ChatErrorCode, _ErrorTemplate] = {
    ChatErrorCode.AUGMENTATION_FAILED: _ErrorTemplate(
        "I had trouble understanding your question. Please try rephrasing it.", True
    ),
    ChatErrorCode.EMBEDDING_FAILED: _ErrorTemplate(
        "I couldn't process your message. Please try again.", True
    ),
    ChatErrorCode.SEARCH_FAILED: _ErrorTemplate(
        "I couldn't search the Ra Material. Please try again in a moment.", True
    ),
    ChatErrorCode.STREAM_FAILED: _ErrorTemplate(
        "I encountered an error generating my response. Please try again.", True
    ),
    ChatErrorCode.QUOTE_PROCESSING_FAILED: _ErrorTemplate(
        "I had trouble formatting a quote. The response may be incomplete.", False
    ),
    # Silent failure - suggestions are optional
    ChatErrorCode.SUGGESTIONS_FAILED: _ErrorTemplate("", False),
    ChatErrorCode.RATE_LIMITED: _ErrorTemplate(
        "Too many requests. Please wait before trying again.", True
    ),
    ChatErrorCode.VALIDATION_ERROR: _ErrorTemplate(
        "Invalid request. Please check your message and try again.", False
    ),
    ChatErrorCode.UNKNOWN_ERROR: _ErrorTemplate(
        "Something went wrong. Please try again.", True
    ),
}


class ChatError(Exception):
    """A pipeline failure with a stable code and user-facing message."""

    def __init__(self, code: ChatErrorCode, cause: Optional[BaseException] = None):
        template = ERROR_TEMPLATES[code]
        message = f"{code.value}: {cause}" if cause else code.value
        super().__init__(message)
        self.code = code
        self.user_message = template.user_message
        self.retryable = template.retryable
        self.cause = cause


def to_chat_error(error: BaseException) -> ChatError:
    """Convert any exception to a ChatError for consistent handling"""
    if isinstance(error, ChatError):
        return error
    return ChatError(ChatErrorCode.UNKNOWN_ERROR, error)


def to_error_event_data(error: BaseException) -> dict:
    """Payload for the terminal ``error`` SSE event."""
    chat_error = to_chat_error(error)
    return {
        "code": chat_error.code.value,
        "message": chat_error.user_message,
        "retryable": chat_error.retryable,
    }
