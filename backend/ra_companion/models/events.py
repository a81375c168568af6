"""
SSE event models for the chat stream.

Every event the server emits is one of:
- session: {responseId} - always first, identifies the response for recovery
- meta: {quotes, intent, confidence, concepts?}
- chunk: {type: "text", content} or {type: "quote", text, reference, url}
- suggestions: {items}
- error: {code?, message?, retryable?} - terminal
- done: {} - terminal
"""

from typing import Annotated, Any, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

TERMINAL_EVENT_TYPES = frozenset({"done", "error"})

T = TypeVar("T")


class SSEEvent(BaseModel):
    """One decoded SSE frame"""

    model_config = ConfigDict(frozen=True)

    type: str = Field(min_length=1)
    data: Any

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENT_TYPES


class Quote(BaseModel):
    """A passage from the Ra Material"""
    text: str
    reference: str  # e.g. "1.7"
    url: str


class SessionEventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_id: str = Field(alias="responseId")


class MetaEventData(BaseModel):
    quotes: List[Quote]
    intent: str
    confidence: str
    concepts: Optional[List[str]] = None


class TextChunkData(BaseModel):
    type: Literal["text"] = "text"
    content: str


class QuoteChunkData(BaseModel):
    type: Literal["quote"] = "quote"
    text: str
    reference: str
    url: str


ChunkData = Annotated[Union[TextChunkData, QuoteChunkData], Field(discriminator="type")]
_chunk_adapter: TypeAdapter = TypeAdapter(ChunkData)


class SuggestionsEventData(BaseModel):
    items: List[str]


class DoneEventData(BaseModel):
    """Empty payload of the terminal done event"""


class ErrorEventData(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None
    retryable: Optional[bool] = None


def _safe_parse(model: Type[T], data: Any) -> Optional[T]:
    try:
        return model.model_validate(data)  # type: ignore[attr-defined]
    except ValidationError:
        return None


def parse_session_data(data: Any) -> Optional[SessionEventData]:
    return _safe_parse(SessionEventData, data)


def parse_meta_data(data: Any) -> Optional[MetaEventData]:
    return _safe_parse(MetaEventData, data)


def parse_chunk_data(data: Any) -> Optional[Union[TextChunkData, QuoteChunkData]]:
    """Validate chunk event data; None if it is neither a text nor a quote chunk."""
    try:
        return _chunk_adapter.validate_python(data)
    except ValidationError:
        return None


def parse_suggestions_data(data: Any) -> Optional[SuggestionsEventData]:
    return _safe_parse(SuggestionsEventData, data)


def parse_error_data(data: Any) -> Optional[ErrorEventData]:
    return _safe_parse(ErrorEventData, data)
