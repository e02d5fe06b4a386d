"""Conversation analysis: cheap local gate, LLM classification pass, fired triggers."""
import asyncio
import json
import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional, Union

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..core.errors import ChatEngineError, ParseError, UpstreamRateLimited
from ..models import AnalysisConfig, AnalysisTrigger
from .llm import ModelGateway

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_PATTERN = "@"
DEFAULT_PHONE_PATTERN = r"(\d{3,4}[\s-]?\d{2,3}[\s-]?\d{2,4}|\d{10,})"
RECENT_WINDOW = 4

ANALYSIS_PROMPT = """Analysera denna restaurangkonversation noggrant:

{conversation}

Avgör:
1. Om det finns en KOMPLETT reservation (datum + tid + antal + namn + kontakt)
2. Om gästen ställt en fråga som {ai_name} INTE kunde svara på
3. Om gästen uttryckt missnöje eller klagomål
4. Om gästen explicit bett att prata med personal/chef

Svara ENDAST med JSON (ingen annan text):
{{
  "reservation_complete": true/false,
  "needs_human_response": true/false,
  "needs_human_reason": "anledning eller null",
  "is_complaint": true/false,
  "guest_name": "namn eller null",
  "guest_email": "email eller null",
  "guest_phone": "telefon eller null",
  "reservation_date": "datum/veckodag eller null",
  "reservation_time": "tid eller null",
  "party_size": antal eller null,
  "special_requests": "allergier/önskemål eller null"
}}"""

# Fields merged into session metadata after a successful pass
GUEST_FIELDS = (
    "guest_name",
    "guest_email",
    "guest_phone",
    "reservation_date",
    "reservation_time",
    "party_size",
    "special_requests",
)


class ConversationAnalysisResult(BaseModel):
    reservation_complete: Optional[bool] = False
    needs_human_response: Optional[bool] = False
    needs_human_reason: Optional[str] = None
    is_complaint: Optional[bool] = False
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    reservation_date: Optional[str] = None
    reservation_time: Optional[str] = None
    party_size: Optional[Union[int, str]] = None
    special_requests: Optional[str] = None

    def guest_fields(self) -> dict:
        return {name: getattr(self, name) for name in GUEST_FIELDS}


@dataclass
class AnalysisGate:
    should_run: bool
    has_email: bool = False
    has_phone: bool = False
    has_complaint: bool = False
    wants_human: bool = False
    has_special_request: bool = False
    ai_unsure: bool = False

    def flags(self) -> dict:
        out = asdict(self)
        out.pop("should_run")
        return out


def _split_keywords(raw: str | None) -> list[str]:
    return [k.strip().casefold() for k in (raw or "").split(",") if k.strip()]


def _configured_pattern(raw: str | None, default: str) -> str:
    source = (raw or "").strip()
    if source.startswith("/"):
        source = source[1:]
    if source.endswith("/"):
        source = source[:-1]
    return source or default


def _pattern_matches(raw: str | None, default: str, text: str, label: str) -> bool:
    source = _configured_pattern(raw, default)
    try:
        return re.search(source, text, re.IGNORECASE) is not None
    except re.error as e:
        logger.warning("Invalid %s pattern %r: %s", label, source, e)
        return False


def should_run_analysis(
    conversation: list[dict],
    latest_ai_response: str,
    config: AnalysisConfig | None,
) -> AnalysisGate:
    """Local heuristics over the last few messages; no I/O."""
    if config is None or not config.enable_analysis:
        return AnalysisGate(should_run=False)

    recent = " ".join(m.get("content") or "" for m in conversation[-RECENT_WINDOW:]).casefold()
    reply = (latest_ai_response or "").casefold()

    gate = AnalysisGate(
        should_run=False,
        has_email=_pattern_matches(config.email_pattern, DEFAULT_EMAIL_PATTERN, recent, "email"),
        has_phone=_pattern_matches(config.phone_pattern, DEFAULT_PHONE_PATTERN, recent, "phone"),
        has_complaint=any(k in recent for k in _split_keywords(config.complaint_keywords)),
        wants_human=any(k in recent for k in _split_keywords(config.human_request_keywords)),
        has_special_request=any(k in recent for k in _split_keywords(config.special_request_keywords)),
        ai_unsure=any(p in reply for p in _split_keywords(config.ai_unsure_patterns)),
    )
    min_messages = config.min_messages_before_analysis or 0
    gate.should_run = len(conversation) >= min_messages and any(gate.flags().values())
    return gate


def parse_analysis(text: str) -> ConversationAnalysisResult:
    """Greedy {...} span of the reply, validated. Raises ParseError."""
    match = re.search(r"\{.*\}", text or "", re.DOTALL)
    if not match:
        raise ParseError("No JSON object in analysis reply")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid analysis JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParseError("Analysis JSON is not an object")
    try:
        return ConversationAnalysisResult.model_validate(data)
    except ValidationError as e:
        raise ParseError(f"Unexpected analysis shape: {e}") from e


class ConversationAnalyzer:
    """Runs the analysis pass; retries only on provider rate limiting."""

    def __init__(self, gateway: ModelGateway, max_retries: int = 3, wait=None, sleep=asyncio.sleep):
        self.gateway = gateway
        self.max_retries = max_retries
        # 1s, 2s, 4s between attempts
        self.wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=4)
        self.sleep = sleep

    @staticmethod
    def build_prompt(conversation: list[dict], ai_name: str) -> str:
        lines = "\n".join(
            f"{'Gäst' if m.get('role') == 'user' else ai_name}: {m.get('content') or ''}"
            for m in conversation
        )
        return ANALYSIS_PROMPT.format(conversation=lines, ai_name=ai_name)

    async def analyze(
        self,
        conversation: list[dict],
        ai_name: str,
        deadline: float | None = None,
    ) -> ConversationAnalysisResult | None:
        turns = [HumanMessage(content=self.build_prompt(conversation, ai_name))]
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(UpstreamRateLimited),
                stop=stop_after_attempt(self.max_retries + 1),
                wait=self.wait,
                sleep=self.sleep,
                reraise=False,
            ):
                with attempt:
                    text = await self.gateway.call(
                        turns, temperature=0.1, max_output_tokens=500, deadline=deadline
                    )
        except RetryError:
            logger.warning("Analysis gave up after %d rate-limited attempts", self.max_retries + 1)
            return None
        except ChatEngineError as e:
            logger.error("Analysis call failed: %s", e.message)
            return None

        try:
            return parse_analysis(text)
        except ParseError as e:
            logger.info("No usable analysis: %s", e.message)
            return None


def get_fired_triggers(result: ConversationAnalysisResult | None) -> list[AnalysisTrigger]:
    if result is None:
        return []
    fired: list[AnalysisTrigger] = []
    has_contact = bool(result.guest_email or result.guest_phone)
    if result.reservation_complete and result.guest_name and has_contact:
        fired.append(AnalysisTrigger.RESERVATION_COMPLETE)
    if result.is_complaint:
        fired.append(AnalysisTrigger.IS_COMPLAINT)
    if result.needs_human_response and not fired:
        fired.append(AnalysisTrigger.NEEDS_HUMAN_RESPONSE)
    return fired
