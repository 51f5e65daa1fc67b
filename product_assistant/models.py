from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChatRequest(BaseModel):
    """Request payload for chat API."""
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("Message is required")
        return value


class ChatOption(BaseModel):
    """Selectable option rendered as a button; `action` is re-submitted as `action:<action>`."""
    label: str
    value: str
    action: str


class ChatResponse(BaseModel):
    """Response payload returned by the chat API."""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    options: Optional[List[ChatOption]] = None
    show_options: Optional[bool] = Field(default=None, alias="showOptions")


class StoredMessage(BaseModel):
    """One conversation turn kept in session history."""
    role: str
    content: str
    timestamp: float


class SessionSummary(BaseModel):
    """Lightweight session summary for listing."""
    session_id: str
    title: str
    updated_at: float
