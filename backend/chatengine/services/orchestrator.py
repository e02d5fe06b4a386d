"""LangGraph pipeline for one inbound chat message."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, TypedDict
from uuid import UUID

from langgraph.graph import StateGraph, END
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.errors import ConfigurationMissing, NotFound, UpstreamServiceError
from ..models import AIConfig, ActionRule, AnalysisConfig, ChatSession, Customer, SenderType
from ..repositories import CustomerRepository, CustomerConfigRepository, SessionRepository, MessageRepository
from .analysis import AnalysisGate, should_run_analysis
from .email import EmailSender
from .llm import ModelGateway
from .prompt import build_chat_contents, build_system_prompt
from .security import SecurityClassifier, SecurityVerdict, should_analyze_for_security
from .triggers import match_rules

logger = logging.getLogger(__name__)

HUMAN_OVERRIDE_WINDOW = 3


class ChatState(TypedDict, total=False):
    # Input
    prompt: str
    history: list[dict]
    session_id: Optional[UUID]
    customer_id: Optional[UUID]
    slug: Optional[str]
    test_mode: bool
    caller_suspicious: bool
    caller_suspicious_reason: Optional[str]
    deadline: Optional[float]
    # Loaded
    customer: Customer
    ai_config: AIConfig
    analysis_config: Optional[AnalysisConfig]
    rules: list[ActionRule]
    session: ChatSession
    inbound_message_id: UUID
    reply_message_id: UUID
    # Decisions
    human_override: bool
    matched_rules: list[ActionRule]
    turns: list
    response: str
    verdict: Optional[SecurityVerdict]
    suspicious: bool
    gate: Optional[AnalysisGate]


@dataclass
class ChatOutcome:
    response: str
    session_id: UUID
    customer: Customer
    ai_config: AIConfig
    triggered_actions: list[str] = field(default_factory=list)
    needs_handoff: bool = False
    human_override: bool = False
    suspicious: bool = False
    run_analysis: bool = False
    conversation: list[dict] = field(default_factory=list)


def human_took_over(history: list[dict], session: ChatSession | None) -> bool:
    """Staff reply in the trailing history window, or the session's sticky flag."""
    recent = (history or [])[-HUMAN_OVERRIDE_WINDOW:]
    if any(m.get("sender_type") == SenderType.HUMAN.value for m in recent):
        return True
    return bool(session is not None and session.needs_human)


class ChatOrchestrator:
    """Sequences matcher, prompt, model, security screen and analysis gate on one DB session."""

    def __init__(
        self,
        db: AsyncSession,
        gateway: ModelGateway,
        email_sender: EmailSender,
        classifier: SecurityClassifier | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.email_sender = email_sender
        self.classifier = classifier or SecurityClassifier(gateway)
        self.graph = self._build_graph()

    # ----- Nodes -----
    async def identify_customer(self, state: ChatState) -> dict:
        customer = await CustomerRepository(self.db).identify(state.get("customer_id"), state.get("slug"))
        if customer is None:
            raise NotFound("Customer not found")
        logger.info("Customer identified: %s (%s)", customer.name, customer.id)
        return {"customer": customer}

    async def load_config(self, state: ChatState) -> dict:
        # Sequential: an AsyncSession does not allow concurrent statements
        repo = CustomerConfigRepository(self.db, state["customer"].id)
        ai_config = await repo.get_ai_config()
        if ai_config is None:
            raise ConfigurationMissing("AI config not found")
        analysis_config = await repo.get_analysis_config()
        rules = await repo.get_active_rules()
        logger.info("AI loaded: %s, %d active rules", ai_config.ai_name, len(rules))
        return {"ai_config": ai_config, "analysis_config": analysis_config, "rules": rules}

    async def resolve_session(self, state: ChatState) -> dict:
        repo = SessionRepository(self.db)
        customer = state["customer"]
        session = None
        if state.get("session_id"):
            session = await repo.get_for_customer(state["session_id"], customer.id)
        if session is None:
            session = await repo.create(customer.id)
            logger.info("New session created: %s", session.id)
        return {"session": session}

    async def check_human_override(self, state: ChatState) -> dict:
        override = human_took_over(state.get("history") or [], state["session"])
        if override:
            logger.info("Human took over session %s, AI stays silent", state["session"].id)
        return {"human_override": override}

    async def persist_inbound(self, state: ChatState) -> dict:
        session = state["session"]
        msg = await MessageRepository(self.db, session.id).add("user", SenderType.USER.value, state["prompt"])
        await SessionRepository(self.db).touch(session.id)
        # The guest message is kept even if the model call fails below
        await self.db.commit()
        return {"inbound_message_id": msg.id}

    async def match_triggers(self, state: ChatState) -> dict:
        matched = match_rules(state["prompt"], state.get("rules") or [])
        if matched:
            logger.info("Matched rules: %s", [str(r.id) for r in matched])
        return {"matched_rules": matched}

    async def assemble_prompt(self, state: ChatState) -> dict:
        ai_config = state["ai_config"]
        system_prompt = build_system_prompt(ai_config, state.get("matched_rules") or [])
        turns = build_chat_contents(system_prompt, ai_config.greeting, state.get("history") or [], state["prompt"])
        return {"turns": turns}

    async def call_model(self, state: ChatState) -> dict:
        """Model call, with the security judge running alongside when the pre-filter trips."""
        ai_config = state["ai_config"]
        deadline = state.get("deadline")
        security_task = None
        if should_analyze_for_security(state["prompt"]):
            domain = (state["customer"].metadata_ or {}).get("domain", "general")
            security_task = asyncio.create_task(
                self.classifier.analyze_prompt_safety(state["prompt"], domain, deadline=deadline)
            )
        try:
            text = await self.gateway.call(
                state["turns"],
                temperature=ai_config.temperature if ai_config.temperature is not None else 0.7,
                max_output_tokens=ai_config.max_tokens or 500,
                top_p=0.9,
                deadline=deadline,
            )
        except BaseException:
            if security_task is not None:
                security_task.cancel()
            raise
        verdict = await self._await_verdict(security_task) if security_task is not None else None
        if not text:
            raise UpstreamServiceError("AI failed to respond")
        return {"response": text, "verdict": verdict}

    @staticmethod
    async def _await_verdict(task: asyncio.Task) -> SecurityVerdict | None:
        # The judge must never fail the reply
        try:
            return await task
        except Exception:
            logger.exception("Security judge failed, treating message as safe")
            return None

    async def persist_reply(self, state: ChatState) -> dict:
        session = state["session"]
        msg = await MessageRepository(self.db, session.id).add("assistant", SenderType.AI.value, state["response"])
        await SessionRepository(self.db).touch(session.id)
        return {"reply_message_id": msg.id}

    async def screen_security(self, state: ChatState) -> dict:
        verdict = state.get("verdict")
        suspicious = bool(state.get("caller_suspicious")) or bool(verdict and verdict.suspicious)
        if not suspicious:
            return {"suspicious": False}
        reason = state.get("caller_suspicious_reason") or (verdict.reason if verdict else None)
        session = state["session"]
        customer = state["customer"]
        logger.warning("Suspicious activity in session %s: %s", session.id, reason)
        await SessionRepository(self.db).mark_suspicious(session.id, reason)
        await self.email_sender.send_superadmin_alert(
            customer_name=customer.name,
            session_id=str(session.id),
            reason=reason,
            prompt=state["prompt"],
            test_mode=bool(state.get("test_mode")),
        )
        return {"suspicious": True}

    async def gate_analysis(self, state: ChatState) -> dict:
        conversation = self._conversation(state)
        gate = should_run_analysis(conversation, state["response"], state.get("analysis_config"))
        logger.info("Analysis gate for session %s: run=%s %s", state["session"].id, gate.should_run, gate.flags())
        return {"gate": gate}

    # ----- Routing -----
    @staticmethod
    def route_after_persist(state: ChatState) -> str:
        return END if state.get("human_override") else "match_triggers"

    @staticmethod
    def route_after_screen(state: ChatState) -> str:
        return END if state.get("suspicious") else "gate_analysis"

    def _build_graph(self):
        graph = StateGraph(ChatState)

        graph.add_node("identify_customer", self.identify_customer)
        graph.add_node("load_config", self.load_config)
        graph.add_node("resolve_session", self.resolve_session)
        graph.add_node("check_human_override", self.check_human_override)
        graph.add_node("persist_inbound", self.persist_inbound)
        graph.add_node("match_triggers", self.match_triggers)
        graph.add_node("assemble_prompt", self.assemble_prompt)
        graph.add_node("call_model", self.call_model)
        graph.add_node("persist_reply", self.persist_reply)
        graph.add_node("screen_security", self.screen_security)
        graph.add_node("gate_analysis", self.gate_analysis)

        graph.set_entry_point("identify_customer")
        graph.add_edge("identify_customer", "load_config")
        graph.add_edge("load_config", "resolve_session")
        graph.add_edge("resolve_session", "check_human_override")
        graph.add_edge("check_human_override", "persist_inbound")
        graph.add_conditional_edges(
            "persist_inbound",
            self.route_after_persist,
            {"match_triggers": "match_triggers", END: END},
        )
        graph.add_edge("match_triggers", "assemble_prompt")
        graph.add_edge("assemble_prompt", "call_model")
        graph.add_edge("call_model", "persist_reply")
        graph.add_edge("persist_reply", "screen_security")
        graph.add_conditional_edges(
            "screen_security",
            self.route_after_screen,
            {"gate_analysis": "gate_analysis", END: END},
        )
        graph.add_edge("gate_analysis", END)

        return graph.compile()

    @staticmethod
    def _conversation(state: ChatState) -> list[dict]:
        return [
            *[{"role": m.get("role"), "content": m.get("content")} for m in state.get("history") or []],
            {"role": "user", "content": state["prompt"]},
            {"role": "assistant", "content": state.get("response") or ""},
        ]

    # ----- Entry point -----
    async def handle(
        self,
        prompt: str,
        history: list[dict] | None = None,
        session_id: UUID | None = None,
        customer_id: UUID | None = None,
        slug: str | None = None,
        test_mode: bool = False,
        suspicious: bool = False,
        suspicious_reason: str | None = None,
        timeout: float | None = None,
    ) -> ChatOutcome:
        deadline = asyncio.get_running_loop().time() + timeout if timeout else None
        state: ChatState = await self.graph.ainvoke({
            "prompt": prompt,
            "history": history or [],
            "session_id": session_id,
            "customer_id": customer_id,
            "slug": slug,
            "test_mode": test_mode,
            "caller_suspicious": suspicious,
            "caller_suspicious_reason": suspicious_reason,
            "deadline": deadline,
        })
        session = state["session"]
        override = bool(state.get("human_override"))
        gate = state.get("gate")
        matched = state.get("matched_rules") or []
        return ChatOutcome(
            response="" if override else state.get("response") or "",
            session_id=session.id,
            customer=state["customer"],
            ai_config=state["ai_config"],
            triggered_actions=[_value(r.action_type) for r in matched],
            needs_handoff=override or bool(session.needs_human),
            human_override=override,
            suspicious=bool(state.get("suspicious")),
            run_analysis=bool(gate and gate.should_run),
            conversation=self._conversation(state) if not override else [],
        )


def _value(member: Any) -> str:
    return getattr(member, "value", member)
