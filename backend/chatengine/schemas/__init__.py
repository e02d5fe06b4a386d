"""Pydantic request/response schemas."""
from .common import (
    HistoryItem,
    ChatRequest,
    ChatResponse,
    MessageOut,
    MessagesResponse,
    TypingStatus,
    TypingUpdate,
    GreetingResponse,
    ErrorResponse,
)

__all__ = [
    "HistoryItem",
    "ChatRequest",
    "ChatResponse",
    "MessageOut",
    "MessagesResponse",
    "TypingStatus",
    "TypingUpdate",
    "GreetingResponse",
    "ErrorResponse",
]
