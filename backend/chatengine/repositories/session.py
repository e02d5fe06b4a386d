"""Chat session and message repositories."""
from uuid import UUID
from datetime import datetime, timezone
from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import ChatSession, ChatMessage, SessionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, session_id: UUID) -> ChatSession | None:
        result = await self.db.execute(select(ChatSession).where(ChatSession.id == session_id))
        return result.scalar_one_or_none()

    async def get_for_customer(self, session_id: UUID, customer_id: UUID) -> ChatSession | None:
        result = await self.db.execute(
            select(ChatSession).where(
                and_(
                    ChatSession.id == session_id,
                    ChatSession.customer_id == customer_id,
                )
            )
        )
        return result.scalar_one_or_none()

    async def create(self, customer_id: UUID, metadata: dict = None) -> ChatSession:
        session = ChatSession(
            customer_id=customer_id,
            status=SessionStatus.ACTIVE.value,
            metadata_=metadata or {},
        )
        self.db.add(session)
        await self.db.flush()
        return session

    async def touch(self, session_id: UUID) -> None:
        await self.db.execute(
            update(ChatSession).where(ChatSession.id == session_id).values(updated_at=_utcnow())
        )

    async def mark_needs_human(self, session_id: UUID) -> None:
        """Sticky handoff flag; nothing in the pipeline clears it."""
        await self.db.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(
                needs_human=True,
                status=SessionStatus.HUMAN_HANDLED.value,
                updated_at=_utcnow(),
            )
        )

    async def mark_suspicious(self, session_id: UUID, reason: str | None) -> None:
        await self.db.execute(
            update(ChatSession)
            .where(ChatSession.id == session_id)
            .values(
                suspicious=True,
                suspicious_reason=reason,
                routed_to_superadmin=True,
                updated_at=_utcnow(),
            )
        )

    async def merge_metadata(self, session_id: UUID, fields: dict) -> dict | None:
        """Read-modify-write merge: non-null values only, last write wins per key."""
        updates = {k: v for k, v in fields.items() if v is not None}
        session = await self.get(session_id)
        if session is None:
            return None
        if not updates:
            return dict(session.metadata_ or {})
        merged = {**(session.metadata_ or {}), **updates}
        # Assign a new dict so the JSON column is flagged dirty
        session.metadata_ = merged
        session.updated_at = _utcnow()
        await self.db.flush()
        return merged

    async def get_typing(self, session_id: UUID) -> tuple[bool, bool] | None:
        result = await self.db.execute(
            select(ChatSession.visitor_typing, ChatSession.staff_typing).where(ChatSession.id == session_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return bool(row.visitor_typing), bool(row.staff_typing)

    async def set_typing(self, session_id: UUID, sender: str, typing: bool) -> bool:
        column = "visitor_typing" if sender == "visitor" else "staff_typing"
        result = await self.db.execute(
            update(ChatSession).where(ChatSession.id == session_id).values({column: typing})
        )
        return result.rowcount > 0


class MessageRepository:
    """Append-only message log for one session."""

    def __init__(self, db: AsyncSession, session_id: UUID):
        self.db = db
        self.session_id = session_id

    async def add(self, role: str, sender_type: str, content: str) -> ChatMessage:
        msg = ChatMessage(
            session_id=self.session_id,
            role=role,
            sender_type=sender_type,
            content=content,
            timestamp=_utcnow(),
        )
        self.db.add(msg)
        await self.db.flush()
        return msg

    async def list_all(self) -> list[ChatMessage]:
        result = await self.db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == self.session_id)
            .order_by(ChatMessage.timestamp.asc())
        )
        return list(result.scalars().all())
