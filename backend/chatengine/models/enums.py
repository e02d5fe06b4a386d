"""Closed vocabularies shared by models and services."""
import enum


class TriggerType(str, enum.Enum):
    KEYWORD = "keyword"
    REGEX = "regex"
    ANALYSIS = "analysis"


class ActionType(str, enum.Enum):
    ADD_CONTEXT = "add_context"
    CREATE_NOTIFICATION = "create_notification"
    EMAIL_STAFF = "email_staff"
    EMAIL_GUEST = "email_guest"
    HANDOFF = "handoff"


class AnalysisTrigger(str, enum.Enum):
    """Semantic labels produced by the conversation analysis pass."""

    RESERVATION_COMPLETE = "reservation_complete"
    IS_COMPLAINT = "is_complaint"
    NEEDS_HUMAN_RESPONSE = "needs_human_response"


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    HUMAN_HANDLED = "human_handled"
    CLOSED = "closed"


class SenderType(str, enum.Enum):
    USER = "user"
    AI = "ai"
    HUMAN = "human"


def enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]
