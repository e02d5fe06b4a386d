"""Customer (tenant) and per-customer configuration models."""
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Boolean, Integer, Float, Enum, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base, JSONType
from .enums import TriggerType, ActionType, enum_values
import uuid


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    metadata_ = Column("metadata", JSONType, default=dict)  # address, phone, tagline, reply_to_email, domain
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AIConfig(Base):
    __tablename__ = "customer_ai_config"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, nullable=False, unique=True, index=True)
    ai_name = Column(String(255), nullable=False)
    ai_role = Column(String(255), nullable=True)
    system_prompt = Column(Text, nullable=False, default="")
    knowledge_base = Column(Text, nullable=True)
    greeting = Column(Text, nullable=True)
    temperature = Column(Float, nullable=False, default=0.7)
    max_tokens = Column(Integer, nullable=False, default=500)


class AnalysisConfig(Base):
    __tablename__ = "customer_analysis_config"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, nullable=False, unique=True, index=True)
    enable_analysis = Column(Boolean, nullable=False, default=False)
    email_pattern = Column(String(512), nullable=True)
    phone_pattern = Column(String(512), nullable=True)
    # Comma-separated keyword lists
    complaint_keywords = Column(Text, nullable=False, default="")
    human_request_keywords = Column(Text, nullable=False, default="")
    special_request_keywords = Column(Text, nullable=False, default="")
    ai_unsure_patterns = Column(Text, nullable=False, default="")
    min_messages_before_analysis = Column(Integer, nullable=False, default=2)
    staff_email = Column(String(255), nullable=True)
    from_email = Column(String(255), nullable=True)


class ActionRule(Base):
    __tablename__ = "customer_actions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, nullable=False, index=True)
    trigger_type = Column(
        Enum(TriggerType, native_enum=False, length=32, values_callable=enum_values),
        nullable=False,
    )
    # Literal substring, regex source, or analysis label depending on trigger_type
    trigger_value = Column(String(1024), nullable=False)
    action_type = Column(
        Enum(ActionType, native_enum=False, length=32, values_callable=enum_values),
        nullable=False,
    )
    action_config = Column(JSONType, default=dict)
    priority = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class EmailTemplate(Base):
    __tablename__ = "email_templates"
    __table_args__ = (UniqueConstraint("customer_id", "template_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_id = Column(Uuid, nullable=False, index=True)
    template_name = Column(String(128), nullable=False)
    subject = Column(String(512), nullable=False)
    html_body = Column(Text, nullable=False)
