"""Common API schemas."""
from pydantic import BaseModel, Field
from typing import Literal, Optional
from uuid import UUID


class HistoryItem(BaseModel):
    role: Optional[str] = "user"
    content: Optional[str] = ""
    sender_type: Optional[str] = None


class ChatRequest(BaseModel):
    prompt: Optional[str] = None
    history: list[HistoryItem] = Field(default_factory=list)
    sessionId: Optional[str] = None
    customerId: Optional[str] = None
    slug: Optional[str] = None
    # Set by an upstream screening layer
    suspicious: bool = False
    suspiciousReason: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    sessionId: UUID
    customerId: UUID
    customerName: str
    aiName: str
    triggeredActions: list[str] = Field(default_factory=list)
    needsHandoff: bool = False
    humanTookOver: Optional[bool] = None


class MessageOut(BaseModel):
    id: UUID
    role: str
    content: str
    sender_type: str
    timestamp: str


class MessagesResponse(BaseModel):
    messages: list[MessageOut]
    count: int


class TypingStatus(BaseModel):
    visitor_typing: bool = False
    staff_typing: bool = False


class TypingUpdate(BaseModel):
    typing: bool
    sender: Literal["visitor", "staff"]


class GreetingResponse(BaseModel):
    customerId: UUID
    customerName: str
    slug: str
    aiName: str
    aiRole: Optional[str] = None
    greeting: str


class ErrorResponse(BaseModel):
    error: str
