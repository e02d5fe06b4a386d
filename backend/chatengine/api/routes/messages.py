"""Message history endpoint used by the widget and the staff dashboard."""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...core import parse_session_id
from ...dependencies import get_db
from ...repositories import MessageRepository
from ...schemas import MessageOut, MessagesResponse

router = APIRouter(tags=["messages"])


@router.get("/messages", response_model=MessagesResponse)
async def list_messages(session_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    sid = parse_session_id(session_id)
    rows = await MessageRepository(db, sid).list_all()
    messages = [
        MessageOut(
            id=m.id,
            role=m.role,
            content=m.content,
            sender_type=m.sender_type,
            timestamp=m.timestamp.isoformat() if m.timestamp else "",
        )
        for m in rows
    ]
    return MessagesResponse(messages=messages, count=len(messages))
