"""Chat endpoint."""
from fastapi import APIRouter, Depends, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...config import get_settings
from ...core import InvalidRequest, NotFound, get_test_mode, parse_optional_uuid
from ...dependencies import (
    enforce_rate_limit,
    get_action_executor,
    get_analyzer,
    get_db,
    get_email_sender,
    get_model_gateway,
    get_push_client,
    get_session_factory,
)
from ...jobs import FollowUpJob, notify_human_override, run_follow_up
from ...schemas import ChatRequest, ChatResponse
from ...services.actions import ActionExecutor
from ...services.analysis import ConversationAnalyzer
from ...services.email import EmailSender
from ...services.llm import ModelGateway
from ...services.orchestrator import ChatOrchestrator
from ...services.push import PushClient

router = APIRouter(tags=["chat"])


@router.post("/chat", response_model=ChatResponse, response_model_exclude_none=True)
async def chat(
    body: ChatRequest,
    background_tasks: BackgroundTasks,
    _: None = Depends(enforce_rate_limit),
    test_mode: bool = Depends(get_test_mode),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    gateway: ModelGateway = Depends(get_model_gateway),
    email_sender: EmailSender = Depends(get_email_sender),
    push_client: PushClient = Depends(get_push_client),
    analyzer: ConversationAnalyzer = Depends(get_analyzer),
    executor: ActionExecutor = Depends(get_action_executor),
):
    prompt = (body.prompt or "").strip()
    if not prompt:
        raise InvalidRequest("Prompt is required")
    customer_id = parse_optional_uuid(body.customerId, "customerId")
    if customer_id is None and not body.slug:
        raise NotFound("Customer not found")
    session_id = parse_optional_uuid(body.sessionId, "sessionId")

    orchestrator = ChatOrchestrator(db, gateway, email_sender)
    outcome = await orchestrator.handle(
        prompt=prompt,
        history=[h.model_dump() for h in body.history],
        session_id=session_id,
        customer_id=customer_id,
        slug=body.slug,
        test_mode=test_mode,
        suspicious=body.suspicious,
        suspicious_reason=body.suspiciousReason,
        timeout=get_settings().request_timeout_seconds,
    )
    # Follow-up work reads what this request wrote
    await db.commit()

    if outcome.human_override:
        background_tasks.add_task(
            notify_human_override, push_client, outcome.customer.id, outcome.session_id, prompt
        )
    elif not outcome.suspicious:
        job = FollowUpJob(
            customer_id=outcome.customer.id,
            session_id=outcome.session_id,
            prompt=prompt,
            conversation=outcome.conversation,
            run_analysis=outcome.run_analysis,
            test_mode=test_mode,
        )
        background_tasks.add_task(run_follow_up, job, session_factory, analyzer, executor, push_client)

    return ChatResponse(
        response=outcome.response,
        sessionId=outcome.session_id,
        customerId=outcome.customer.id,
        customerName=outcome.customer.name,
        aiName=outcome.ai_config.ai_name,
        triggeredActions=outcome.triggered_actions,
        needsHandoff=outcome.needs_handoff,
        humanTookOver=True if outcome.human_override else None,
    )
