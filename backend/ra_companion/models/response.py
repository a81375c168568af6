from pydantic import BaseModel
from typing import List, Optional

from ra_companion.models.events import SSEEvent


class RecoveryResponse(BaseModel):
    """Body of a successful /api/chat/recover call"""

    events: List[SSEEvent]
    complete: bool


class ErrorBody(BaseModel):
    """Body of every non-2xx JSON response"""

    error: str
    retryAfter: Optional[int] = None


def error_responses(*status_codes: int) -> dict:
    """OpenAPI ``responses=`` entries documenting ErrorBody for each status."""
    return {code: {"model": ErrorBody} for code in status_codes}
