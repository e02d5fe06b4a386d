"""Staff-facing notification model."""
from sqlalchemy import Column, String, Text, DateTime, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base, JSONType
import uuid


class Notification(Base):
    __tablename__ = "notifications"
    # At most one notification of a given type per session
    __table_args__ = (UniqueConstraint("session_id", "type"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, nullable=False, index=True)
    session_id = Column(Uuid, nullable=False, index=True)
    type = Column(String(64), nullable=False)  # reservation, complaint, question, ...
    priority = Column(String(32), nullable=False, default="normal")
    status = Column(String(32), nullable=False, default="unread")
    summary = Column(Text, nullable=False, default="")
    guest_name = Column(String(255), nullable=True)
    guest_email = Column(String(255), nullable=True)
    guest_phone = Column(String(64), nullable=True)
    reservation_details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
