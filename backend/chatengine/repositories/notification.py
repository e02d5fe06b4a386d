"""Notification repository."""
from uuid import UUID
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import Notification


class NotificationRepository:
    def __init__(self, db: AsyncSession, session_id: UUID):
        self.db = db
        self.session_id = session_id

    async def exists(self, notification_type: str) -> bool:
        result = await self.db.execute(
            select(Notification.id).where(
                and_(
                    Notification.session_id == self.session_id,
                    Notification.type == notification_type,
                )
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def create(
        self,
        customer_id: UUID,
        notification_type: str,
        summary: str,
        priority: str = "normal",
        guest_name: str = None,
        guest_email: str = None,
        guest_phone: str = None,
        reservation_details: dict = None,
    ) -> Notification:
        n = Notification(
            customer_id=customer_id,
            session_id=self.session_id,
            type=notification_type,
            priority=priority,
            status="unread",
            summary=summary,
            guest_name=guest_name,
            guest_email=guest_email,
            guest_phone=guest_phone,
            reservation_details=reservation_details,
        )
        self.db.add(n)
        await self.db.flush()
        return n

    async def list_all(self) -> list[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.session_id == self.session_id)
            .order_by(Notification.created_at.asc())
        )
        return list(result.scalars().all())
