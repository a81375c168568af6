from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ra_companion.config import settings


class ChatMessage(BaseModel):
    """One prior turn of the conversation"""
    role: Literal["user", "assistant"]
    content: str = Field(max_length=settings.max_history_message_length)
    quotes_used: Optional[List[str]] = Field(default=None, alias="quotesUsed")

    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=settings.max_message_length)
    history: List[ChatMessage] = Field(default_factory=list, max_length=settings.max_history_length)
    thinking_mode: bool = Field(default=False, alias="thinkingMode")
    target_language: str = Field(default="en", alias="targetLanguage")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "message": "What is the Law of One?",
                    "history": [],
                    "targetLanguage": "en",
                }
            ]
        },
    )

    def llm_messages(self, recent_count: int) -> List[dict]:
        """Recent history plus the new message, in chat-completions format."""
        recent = self.history[-recent_count:] if recent_count > 0 else []
        messages = [{"role": m.role, "content": m.content} for m in recent]
        messages.append({"role": "user", "content": self.message})
        return messages

    @property
    def turn_count(self) -> int:
        return sum(1 for m in self.history if m.role == "user") + 1
