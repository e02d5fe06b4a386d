import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["RESEND_API_KEY"] = ""
os.environ["PUSH_API_URL"] = ""

import json

import httpx
import pytest
from langchain_core.messages import AIMessage
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chatengine.database import Base
from chatengine import models  # noqa: F401
from chatengine.models import (
    ActionRule,
    ActionType,
    AIConfig,
    AnalysisConfig,
    Customer,
    EmailTemplate,
    TriggerType,
)
from chatengine.services.email import EmailSender
from chatengine.services.llm import ModelGateway
from chatengine.services.push import PushClient

COMPLAINT_ANALYSIS = {
    "reservation_complete": False,
    "needs_human_response": True,
    "needs_human_reason": "Gästen är missnöjd med maten",
    "is_complaint": True,
    "guest_name": None,
    "guest_email": None,
    "guest_phone": None,
    "reservation_date": None,
    "reservation_time": None,
    "party_size": None,
    "special_requests": None,
}


class ScriptedChatModel:
    """Stands in for ChatOpenAI; answers by prompt kind and records every call."""

    def __init__(self, reply="Hej! Vad kan jag hjälpa till med?", analysis=None, security=None):
        self.reply = reply
        self.analysis = analysis
        self.security = security
        self.calls = []

    @property
    def chat_calls(self):
        return [c for c in self.calls if self._kind(c) == "chat"]

    @staticmethod
    def _kind(messages) -> str:
        first = messages[0].content if messages else ""
        if first.startswith("Analysera denna"):
            return "analysis"
        if first.startswith("You are a security monitor"):
            return "security"
        return "chat"

    async def ainvoke(self, messages):
        self.calls.append(messages)
        kind = self._kind(messages)
        out = {"analysis": self.analysis, "security": self.security, "chat": self.reply}[kind]
        if isinstance(out, Exception):
            raise out
        if isinstance(out, dict):
            out = json.dumps(out, ensure_ascii=False)
        return AIMessage(content=out if out is not None else "")


class RecordingTransport(httpx.MockTransport):
    def __init__(self, status_code=200, body=None):
        self.requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, json=body if body is not None else {"id": "msg_123"})

        super().__init__(handler)

    def payloads(self):
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def chat_model():
    return ScriptedChatModel(security={"suspicious": False, "reason": "ok", "riskLevel": 1})


@pytest.fixture
def gateway(chat_model):
    return ModelGateway(api_key="test-key", model_factory=lambda **kwargs: chat_model)


@pytest.fixture
def email_transport():
    return RecordingTransport()


@pytest.fixture
def push_transport():
    return RecordingTransport(body={"sent": 1, "total": 1})


@pytest.fixture
def email_sender(email_transport):
    return EmailSender(
        api_key="re_test",
        api_url="https://email.test/emails",
        default_from="noreply@bella.test",
        superadmin_email="admin@platform.test",
        transport=email_transport,
    )


@pytest.fixture
def push_client(push_transport):
    return PushClient(api_url="https://push.test/send", internal_api_key="internal", transport=push_transport)


@pytest.fixture
async def bella(session_factory):
    """Restaurant tenant with a complaint keyword and a complaint notification rule."""
    async with session_factory() as session:
        customer = Customer(
            name="Bella Italia",
            slug="bella-italia",
            metadata_={
                "domain": "restaurant",
                "address": "Storgatan 1",
                "phone": "08-123 45 67",
                "tagline": "Äkta italiensk mat",
                "reply_to_email": "info@bella.test",
            },
        )
        session.add(customer)
        await session.flush()
        session.add_all([
            AIConfig(
                customer_id=customer.id,
                ai_name="Sofia",
                ai_role="Värdinna",
                system_prompt="Du är Sofia, värdinna på Bella Italia.",
                knowledge_base="Öppettider: 11-22 alla dagar.",
                greeting="Ciao! Jag heter Sofia.",
            ),
            AnalysisConfig(
                customer_id=customer.id,
                enable_analysis=True,
                complaint_keywords="klaga, missnöjd, äcklig",
                human_request_keywords="personal, chef",
                special_request_keywords="allergi, gluten",
                ai_unsure_patterns="vet inte, osäker",
                min_messages_before_analysis=2,
                staff_email="staff@bella.test",
                from_email="sofia@bella.test",
            ),
            ActionRule(
                customer_id=customer.id,
                trigger_type=TriggerType.KEYWORD,
                trigger_value="gluten",
                action_type=ActionType.ADD_CONTEXT,
                action_config={"text": "Vi har glutenfri pasta."},
                priority=10,
            ),
            ActionRule(
                customer_id=customer.id,
                trigger_type=TriggerType.ANALYSIS,
                trigger_value="is_complaint",
                action_type=ActionType.CREATE_NOTIFICATION,
                action_config={"type": "complaint", "priority": "high"},
                priority=20,
            ),
            ActionRule(
                customer_id=customer.id,
                trigger_type=TriggerType.ANALYSIS,
                trigger_value="is_complaint",
                action_type=ActionType.EMAIL_STAFF,
                action_config={"template": "staff_complaint"},
                priority=30,
            ),
            EmailTemplate(
                customer_id=customer.id,
                template_name="staff_complaint",
                subject="Klagomål från {{guest_name}}",
                html_body="<p>{{summary}}</p>{{#special_requests}}<p>Önskemål: {{special_requests}}</p>{{/special_requests}}",
            ),
            EmailTemplate(
                customer_id=customer.id,
                template_name="guest_confirmation",
                subject="Tack {{guest_name}}!",
                html_body="<p>Välkommen till {{customer_name}}, {{customer_address}}.</p>",
            ),
        ])
        await session.commit()
        return customer
