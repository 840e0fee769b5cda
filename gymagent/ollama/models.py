"""Pydantic models for Ollama chat responses."""

from pydantic import BaseModel, ConfigDict


class ChatResponseMessage(BaseModel):
    role: str
    content: str = ""
    thinking: str | None = None


class ChatResponse(BaseModel):
    """One chat completion. Fields the SDK adds beyond these are kept for the prompt log."""

    model_config = ConfigDict(extra="allow")

    message: ChatResponseMessage
    thinking: str | None = None
    model: str | None = None
    done: bool = True

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def reasoning(self) -> str | None:
        """Thinking trace, wherever the model put it."""
        return self.thinking or self.message.thinking
