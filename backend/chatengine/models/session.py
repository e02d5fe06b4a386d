"""ChatSession and ChatMessage models."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Boolean, Uuid
from sqlalchemy.sql import func
from ..database import Base, JSONType
from .enums import SessionStatus
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, nullable=False, index=True)
    status = Column(String(32), nullable=False, default=SessionStatus.ACTIVE.value)
    # Sticky: once set the AI stays silent for the rest of the session
    needs_human = Column(Boolean, nullable=False, default=False)
    suspicious = Column(Boolean, nullable=False, default=False)
    suspicious_reason = Column(Text, nullable=True)
    routed_to_superadmin = Column(Boolean, nullable=False, default=False)
    metadata_ = Column("metadata", JSONType, default=dict)  # extracted guest fields
    visitor_typing = Column(Boolean, nullable=False, default=False)
    staff_typing = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id = Column(Uuid, nullable=False, index=True)
    role = Column(String(32), nullable=False)  # user, assistant
    sender_type = Column(String(32), nullable=False)  # user, ai, human
    content = Column(Text, nullable=False)
    # Set client-side with microsecond precision so per-session ordering is stable
    timestamp = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
