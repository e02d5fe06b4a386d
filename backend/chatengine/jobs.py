"""Detached follow-up work for a chat turn (analysis, actions, push). Runs after the response is sent."""
import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import async_sessionmaker

from .repositories import CustomerRepository, CustomerConfigRepository, SessionRepository
from .services.actions import ActionContext, ActionExecutor
from .services.analysis import ConversationAnalyzer, get_fired_triggers
from .services.push import PushClient

logger = logging.getLogger(__name__)


@dataclass
class FollowUpJob:
    customer_id: UUID
    session_id: UUID
    prompt: str
    conversation: list[dict] = field(default_factory=list)
    run_analysis: bool = False
    test_mode: bool = False


async def run_follow_up(
    job: FollowUpJob,
    session_factory: async_sessionmaker,
    analyzer: ConversationAnalyzer,
    executor: ActionExecutor,
    push_client: PushClient,
) -> list[str]:
    """
    Analysis pass, metadata merge and trigger actions, then the new-message push.
    Uses its own DB sessions. Returns the fired triggers.
    """
    fired: list[str] = []
    guest_name = None
    try:
        if job.run_analysis:
            fired, guest_name = await _analyze_and_act(job, session_factory, analyzer, executor)
    except Exception:
        logger.exception("Follow-up analysis failed for session %s", job.session_id)

    await push_client.new_guest_message(str(job.customer_id), str(job.session_id), job.prompt, guest_name)
    return fired


async def _analyze_and_act(
    job: FollowUpJob,
    session_factory: async_sessionmaker,
    analyzer: ConversationAnalyzer,
    executor: ActionExecutor,
) -> tuple[list[str], str | None]:
    async with session_factory() as db:
        customer = await CustomerRepository(db).get_by_id(job.customer_id)
        if customer is None:
            logger.warning("Customer %s vanished before analysis", job.customer_id)
            return [], None
        config_repo = CustomerConfigRepository(db, customer.id)
        ai_config = await config_repo.get_ai_config()
        analysis_config = await config_repo.get_analysis_config()
        rules = await config_repo.get_active_rules()
    if ai_config is None:
        logger.warning("AI config for %s vanished before analysis", job.customer_id)
        return [], None

    result = await analyzer.analyze(job.conversation, ai_config.ai_name)
    logger.info("Conversation analysis for session %s: %s", job.session_id, result)
    if result is None:
        return [], None

    async with session_factory() as db:
        merged = await SessionRepository(db).merge_metadata(job.session_id, result.guest_fields())
        await db.commit()
    guest_name = (merged or {}).get("guest_name")

    fired = get_fired_triggers(result)
    logger.info("Fired triggers for session %s: %s", job.session_id, [t.value for t in fired])
    ctx = ActionContext(
        customer=customer,
        ai_config=ai_config,
        analysis_config=analysis_config,
        session_id=job.session_id,
        analysis=result,
        test_mode=job.test_mode,
    )
    for trigger in fired:
        await executor.execute_actions_for_trigger(trigger.value, rules, ctx)
    return [t.value for t in fired], guest_name


async def notify_human_override(
    push_client: PushClient, customer_id: UUID, session_id: UUID, prompt: str
) -> None:
    """A human owns the session; tell staff the guest wrote again."""
    await push_client.new_guest_message(str(customer_id), str(session_id), prompt)
