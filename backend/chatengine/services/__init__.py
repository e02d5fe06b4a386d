"""Business logic services."""
from .triggers import match_rules
from .prompt import build_system_prompt, build_chat_contents
from .llm import ModelGateway
from .analysis import ConversationAnalyzer, ConversationAnalysisResult, should_run_analysis, get_fired_triggers
from .security import SecurityClassifier, should_analyze_for_security
from .templates import render_template
from .email import EmailSender
from .push import PushClient
from .actions import ActionExecutor, ActionContext
from .orchestrator import ChatOrchestrator

__all__ = [
    "match_rules",
    "build_system_prompt",
    "build_chat_contents",
    "ModelGateway",
    "ConversationAnalyzer",
    "ConversationAnalysisResult",
    "should_run_analysis",
    "get_fired_triggers",
    "SecurityClassifier",
    "should_analyze_for_security",
    "render_template",
    "EmailSender",
    "PushClient",
    "ActionExecutor",
    "ActionContext",
    "ChatOrchestrator",
]
