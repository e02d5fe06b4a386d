"""Customer and per-customer configuration lookups (read-only)."""
from uuid import UUID
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Customer, AIConfig, AnalysisConfig, ActionRule, EmailTemplate


class CustomerRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, customer_id: UUID) -> Customer | None:
        result = await self.db.execute(select(Customer).where(Customer.id == customer_id))
        return result.scalar_one_or_none()

    async def get_by_slug(self, slug: str) -> Customer | None:
        result = await self.db.execute(select(Customer).where(Customer.slug == slug))
        return result.scalar_one_or_none()

    async def identify(self, customer_id: UUID | None, slug: str | None) -> Customer | None:
        """Look up by id or by slug, never both; the id wins when both are given."""
        if customer_id:
            return await self.get_by_id(customer_id)
        if slug:
            return await self.get_by_slug(slug)
        return None


class CustomerConfigRepository:
    def __init__(self, db: AsyncSession, customer_id: UUID):
        self.db = db
        self.customer_id = customer_id

    async def get_ai_config(self) -> AIConfig | None:
        result = await self.db.execute(
            select(AIConfig).where(AIConfig.customer_id == self.customer_id)
        )
        return result.scalar_one_or_none()

    async def get_analysis_config(self) -> AnalysisConfig | None:
        result = await self.db.execute(
            select(AnalysisConfig).where(AnalysisConfig.customer_id == self.customer_id)
        )
        return result.scalar_one_or_none()

    async def get_active_rules(self) -> list[ActionRule]:
        """Active rules by ascending priority, ties broken by insertion order."""
        result = await self.db.execute(
            select(ActionRule)
            .where(
                and_(
                    ActionRule.customer_id == self.customer_id,
                    ActionRule.is_active.is_(True),
                )
            )
            .order_by(ActionRule.priority.asc(), ActionRule.created_at.asc(), ActionRule.id.asc())
        )
        return list(result.scalars().all())

    async def get_email_template(self, template_name: str) -> EmailTemplate | None:
        result = await self.db.execute(
            select(EmailTemplate).where(
                and_(
                    EmailTemplate.customer_id == self.customer_id,
                    EmailTemplate.template_name == template_name,
                )
            )
        )
        return result.scalar_one_or_none()
