"""Widget greeting for a customer."""
from typing import Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ...core import InvalidRequest, NotFound, parse_optional_uuid
from ...dependencies import get_db
from ...repositories import CustomerRepository, CustomerConfigRepository
from ...schemas import GreetingResponse

router = APIRouter(tags=["greeting"])


@router.get("/greeting", response_model=GreetingResponse)
async def greeting(
    slug: Optional[str] = None,
    customerId: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    if not slug and not customerId:
        raise InvalidRequest("slug or customerId is required")
    customer = await CustomerRepository(db).identify(parse_optional_uuid(customerId, "customerId"), slug)
    if customer is None:
        raise NotFound("Customer not found")
    ai_config = await CustomerConfigRepository(db, customer.id).get_ai_config()
    if ai_config is None:
        raise NotFound("AI config not found")
    return GreetingResponse(
        customerId=customer.id,
        customerName=customer.name,
        slug=customer.slug,
        aiName=ai_config.ai_name,
        aiRole=ai_config.ai_role,
        greeting=ai_config.greeting or f"Hej! Jag heter {ai_config.ai_name}. Hur kan jag hjälpa dig?",
    )
