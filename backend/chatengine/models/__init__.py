"""SQLAlchemy models."""
from .enums import TriggerType, ActionType, AnalysisTrigger, SessionStatus, SenderType
from .customer import Customer, AIConfig, AnalysisConfig, ActionRule, EmailTemplate
from .session import ChatSession, ChatMessage
from .notification import Notification

__all__ = [
    "TriggerType",
    "ActionType",
    "AnalysisTrigger",
    "SessionStatus",
    "SenderType",
    "Customer",
    "AIConfig",
    "AnalysisConfig",
    "ActionRule",
    "EmailTemplate",
    "ChatSession",
    "ChatMessage",
    "Notification",
]
