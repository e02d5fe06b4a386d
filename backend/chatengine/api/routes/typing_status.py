"""Typing indicators for visitor and staff."""
from typing import Optional
from fastapi import APIRouter, Body, Depends
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from ...core import InvalidRequest, parse_session_id
from ...dependencies import get_db
from ...repositories import SessionRepository
from ...schemas import TypingStatus, TypingUpdate

router = APIRouter(tags=["typing"])


@router.get("/typing", response_model=TypingStatus)
async def get_typing(session_id: Optional[str] = None, db: AsyncSession = Depends(get_db)):
    sid = parse_session_id(session_id)
    flags = await SessionRepository(db).get_typing(sid)
    if flags is None:
        return TypingStatus()
    visitor, staff = flags
    return TypingStatus(visitor_typing=visitor, staff_typing=staff)


@router.post("/typing")
async def set_typing(
    session_id: Optional[str] = None,
    payload: Optional[dict] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    sid = parse_session_id(session_id)
    try:
        update = TypingUpdate.model_validate(payload or {}, strict=True)
    except ValidationError:
        raise InvalidRequest("Invalid parameters")
    await SessionRepository(db).set_typing(sid, update.sender, update.typing)
    return {"success": True}
