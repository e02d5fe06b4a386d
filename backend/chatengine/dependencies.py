"""FastAPI dependency providers. Long-lived collaborators are built once per process."""
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import get_settings
from .core.errors import RateLimited
from .core.rate_limit import RateLimiter, get_client_ip
from .database import AsyncSessionLocal
from .services.actions import ActionExecutor
from .services.analysis import ConversationAnalyzer
from .services.email import EmailSender
from .services.llm import ModelGateway
from .services.push import PushClient


# === INFRASTRUCTURE ===
def get_session_factory() -> async_sessionmaker:
    return AsyncSessionLocal


async def get_db(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# === EXTERNAL CLIENTS ===
@lru_cache()
def get_model_gateway() -> ModelGateway:
    settings = get_settings()
    return ModelGateway(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        timeout=settings.llm_timeout_seconds,
    )


@lru_cache()
def get_email_sender() -> EmailSender:
    settings = get_settings()
    return EmailSender(
        api_key=settings.resend_api_key,
        api_url=settings.resend_api_url,
        default_from=settings.default_from_email,
        superadmin_email=settings.superadmin_email,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache()
def get_push_client() -> PushClient:
    settings = get_settings()
    return PushClient(
        api_url=settings.push_api_url,
        internal_api_key=settings.internal_api_key,
        timeout=settings.http_timeout_seconds,
    )


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


# === SERVICES ===
def get_analyzer(gateway: ModelGateway = Depends(get_model_gateway)) -> ConversationAnalyzer:
    return ConversationAnalyzer(gateway)


def get_action_executor(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    email_sender: EmailSender = Depends(get_email_sender),
    push_client: PushClient = Depends(get_push_client),
) -> ActionExecutor:
    return ActionExecutor(session_factory, email_sender, push_client)


def enforce_rate_limit(request: Request, limiter: RateLimiter = Depends(get_rate_limiter)) -> None:
    decision = limiter.allow(get_client_ip(request))
    if not decision.allowed:
        raise RateLimited(decision.retry_after)
