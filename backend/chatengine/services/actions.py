"""Executes the actions configured for a fired analysis trigger."""
import logging
from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import ActionRule, ActionType, AIConfig, AnalysisConfig, Customer, TriggerType
from ..repositories import CustomerConfigRepository, NotificationRepository, SessionRepository
from .analysis import ConversationAnalysisResult
from .email import EmailSender
from .push import PushClient
from .templates import render_template

logger = logging.getLogger(__name__)


@dataclass
class ActionContext:
    customer: Customer
    ai_config: AIConfig
    analysis_config: AnalysisConfig | None
    session_id: UUID
    analysis: ConversationAnalysisResult = field(default_factory=ConversationAnalysisResult)
    test_mode: bool = False


def notification_summary(notification_type: str | None, analysis: ConversationAnalysisResult) -> str:
    if notification_type == "reservation":
        summary = (
            f"Reservation {analysis.reservation_date} kl {analysis.reservation_time}, "
            f"{analysis.party_size} pers"
        )
        if analysis.special_requests:
            summary += f", {analysis.special_requests}"
        return summary
    if notification_type == "complaint":
        return analysis.needs_human_reason or "Gäst har uttryckt missnöje"
    return analysis.needs_human_reason or "Gäst har frågor som behöver svar"


def staff_email_variables(ctx: ActionContext) -> dict:
    a = ctx.analysis
    return {
        "ai_name": ctx.ai_config.ai_name,
        "customer_name": ctx.customer.name,
        "guest_name": a.guest_name or "Okänd gäst",
        "guest_contact": a.guest_email or a.guest_phone or "Ej angiven",
        "session_id": str(ctx.session_id),
        "reservation_date": a.reservation_date or "",
        "reservation_time": a.reservation_time or "",
        "party_size": a.party_size or "",
        "special_requests": a.special_requests or "",
        "summary": a.needs_human_reason or "Gästen behöver hjälp",
    }


def guest_email_variables(ctx: ActionContext) -> dict:
    a = ctx.analysis
    meta = ctx.customer.metadata_ or {}
    return {
        "ai_name": ctx.ai_config.ai_name,
        "customer_name": ctx.customer.name,
        "customer_tagline": meta.get("tagline") or "",
        "customer_address": meta.get("address") or "",
        "customer_phone": meta.get("phone") or "",
        "guest_name": a.guest_name or "Gäst",
        "reservation_date": a.reservation_date or "",
        "reservation_time": a.reservation_time or "",
        "party_size": a.party_size or "",
        "special_requests": a.special_requests or "",
    }


class ActionExecutor:
    """
    Each action runs in its own database session and its own error boundary, so one
    failing action never blocks its siblings.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        email_sender: EmailSender,
        push_client: PushClient,
    ):
        self.session_factory = session_factory
        self.email_sender = email_sender
        self.push_client = push_client
        self._handlers = {
            ActionType.ADD_CONTEXT: self._add_context,
            ActionType.CREATE_NOTIFICATION: self._create_notification,
            ActionType.EMAIL_STAFF: self._email_staff,
            ActionType.EMAIL_GUEST: self._email_guest,
            ActionType.HANDOFF: self._handoff,
        }

    @staticmethod
    def select_rules(trigger: str, rules: list[ActionRule]) -> list[ActionRule]:
        return [
            r for r in rules
            if TriggerType(r.trigger_type) is TriggerType.ANALYSIS and r.trigger_value == trigger
        ]

    async def execute_actions_for_trigger(
        self, trigger: str, rules: list[ActionRule], ctx: ActionContext
    ) -> list[str]:
        """Run every analysis rule bound to trigger; returns the action types that completed."""
        completed = []
        for rule in self.select_rules(trigger, rules):
            action_type = ActionType(rule.action_type)
            logger.info("Executing %s for trigger %s (session %s)", action_type.value, trigger, ctx.session_id)
            async with self.session_factory() as db:
                try:
                    await self._handlers[action_type](db, rule, ctx)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    logger.exception("Action %s failed for session %s", action_type.value, ctx.session_id)
                    continue
            completed.append(action_type.value)
        return completed

    async def _add_context(self, db: AsyncSession, rule: ActionRule, ctx: ActionContext) -> None:
        # Only meaningful for keyword/regex rules at prompt time
        logger.debug("add_context bound to analysis trigger %s ignored", rule.trigger_value)

    async def _create_notification(self, db: AsyncSession, rule: ActionRule, ctx: ActionContext) -> None:
        config = rule.action_config or {}
        notification_type = config.get("type") or rule.trigger_value
        repo = NotificationRepository(db, ctx.session_id)
        if await repo.exists(notification_type):
            logger.info("Notification %s already exists for session %s", notification_type, ctx.session_id)
            return
        a = ctx.analysis
        reservation_details = None
        if notification_type == "reservation":
            reservation_details = {
                "date": a.reservation_date,
                "time": a.reservation_time,
                "party_size": a.party_size,
                "special_requests": a.special_requests,
            }
        try:
            notification = await repo.create(
                customer_id=ctx.customer.id,
                notification_type=notification_type,
                summary=notification_summary(notification_type, a),
                priority=config.get("priority") or "normal",
                guest_name=a.guest_name,
                guest_email=a.guest_email,
                guest_phone=a.guest_phone,
                reservation_details=reservation_details,
            )
        except IntegrityError:
            # A concurrent request created it between the check and the insert
            await db.rollback()
            logger.info("Notification %s raced for session %s", notification_type, ctx.session_id)
            return
        await SessionRepository(db).mark_needs_human(ctx.session_id)
        await db.commit()
        logger.info("Notification created: %s (%s)", notification.id, notification_type)
        await self.push_client.for_trigger(
            str(ctx.customer.id), str(ctx.session_id), rule.trigger_value, a.model_dump(), notification_type
        )

    async def _send_templated(
        self,
        db: AsyncSession,
        rule: ActionRule,
        ctx: ActionContext,
        to: str,
        from_: str,
        variables: dict,
    ) -> None:
        template_name = (rule.action_config or {}).get("template")
        if not template_name:
            logger.error("Action %s has no template configured", rule.id)
            return
        template = await CustomerConfigRepository(db, ctx.customer.id).get_email_template(template_name)
        if template is None:
            logger.error("Email template not found: %s", template_name)
            return
        subject = render_template(template.subject, variables, escape=False)
        body = render_template(template.html_body, variables)
        to, subject = self.email_sender.route(to, subject, ctx.test_mode)
        await self.email_sender.send(
            from_=from_,
            to=to,
            subject=subject,
            html_body=body,
            reply_to=(ctx.customer.metadata_ or {}).get("reply_to_email"),
        )

    def _from_address(self, ctx: ActionContext) -> str:
        return (ctx.analysis_config.from_email if ctx.analysis_config else None) or self.email_sender.default_from

    async def _email_staff(self, db: AsyncSession, rule: ActionRule, ctx: ActionContext) -> None:
        if not self.email_sender.enabled:
            logger.info("RESEND_API_KEY not set, skipping staff email")
            return
        to = (ctx.analysis_config.staff_email if ctx.analysis_config else None) or self.email_sender.superadmin_email
        await self._send_templated(
            db, rule, ctx,
            to=to,
            from_=f"{ctx.ai_config.ai_name} <{self._from_address(ctx)}>",
            variables=staff_email_variables(ctx),
        )

    async def _email_guest(self, db: AsyncSession, rule: ActionRule, ctx: ActionContext) -> None:
        if not ctx.analysis.guest_email:
            logger.info("No guest email, skipping guest notification")
            return
        if not self.email_sender.enabled:
            logger.info("RESEND_API_KEY not set, skipping guest email")
            return
        await self._send_templated(
            db, rule, ctx,
            to=ctx.analysis.guest_email,
            from_=f"{ctx.customer.name} <{self._from_address(ctx)}>",
            variables=guest_email_variables(ctx),
        )

    async def _handoff(self, db: AsyncSession, rule: ActionRule, ctx: ActionContext) -> None:
        await SessionRepository(db).mark_needs_human(ctx.session_id)
        await db.commit()
        logger.info("Session %s marked for handoff", ctx.session_id)
        config = rule.action_config or {}
        await self.push_client.for_trigger(
            str(ctx.customer.id), str(ctx.session_id), rule.trigger_value,
            ctx.analysis.model_dump(), config.get("type"),
        )
