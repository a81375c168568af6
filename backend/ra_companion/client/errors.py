"""
Client-side failure kinds.

Every failure the client surfaces carries one ErrorKind; what the user sees
and whether to retry is derived from the kind, never from message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    NETWORK = "network"
    SERVER = "server"
    VALIDATION = "validation"


USER_MESSAGES = {
    ErrorKind.RATE_LIMITED: "Too many requests. Please try again shortly.",
    ErrorKind.NETWORK: "The connection was interrupted. Please try again shortly.",
    ErrorKind.SERVER: "I apologize, but I encountered an error. Please try again.",
    ErrorKind.VALIDATION: "Invalid request. Please check your message and try again.",
}

# Kinds where "try again shortly" is the right advice
TRANSIENT_KINDS = frozenset({ErrorKind.RATE_LIMITED, ErrorKind.NETWORK, ErrorKind.SERVER})


def user_message_for(kind: ErrorKind) -> str:
    return USER_MESSAGES[kind]


class StreamError(Exception):
    """A chat request that did not complete normally."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str = "",
        retryable: Optional[bool] = None,
        retry_after: Optional[int] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message or user_message_for(kind))
        self.kind = kind
        self.retryable = kind in TRANSIENT_KINDS if retryable is None else retryable
        self.retry_after = retry_after
        self.code = code

    @property
    def user_message(self) -> str:
        """Server-provided message for generation errors, otherwise the kind's text."""
        if self.kind is ErrorKind.SERVER and self.code and str(self):
            return str(self)
        return user_message_for(self.kind)
