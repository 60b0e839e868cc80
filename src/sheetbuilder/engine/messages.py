from __future__ import annotations

from typing import Protocol

from pydantic import Field

from .models import BaseModel


class Speaker(BaseModel):
    actor_id: str | None = None
    alias: str | None = None


class ChatMessage(BaseModel):
    """A roll result as posted to the chat.

    Attributes:
        speaker: Who the message is attributed to.
        content: Rendered roll text.
        formula: The roll formula, before evaluation.
        explanations: Dice breakdown of every expression in the formula.
    """

    speaker: Speaker
    content: str
    formula: str | None = None
    explanations: list[str] = Field(default_factory=list)


class MessageSink(Protocol):
    def post(self, message: ChatMessage) -> None:
        ...


class ChatLog:
    """Keeps posted messages in memory, newest last."""

    def __init__(self):
        self.messages: list[ChatMessage] = []

    def post(self, message: ChatMessage) -> None:
        self.messages.append(message)

    @property
    def last(self) -> ChatMessage | None:
        return self.messages[-1] if self.messages else None
