"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import get_settings
from .core.errors import ChatEngineError, RateLimited, UpstreamRateLimited, UpstreamServiceError
from .core.logging import setup_logging
from .database import init_db
from .api.routes import chat, messages, typing_status, greeting

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().log_level)
    await init_db()
    yield


app = FastAPI(
    title="Chat Engine API",
    description="Multi-tenant restaurant chatbot with rule-driven actions and human handoff",
    version="1.0.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Test-Mode", "Retry-After"],
)


@app.exception_handler(ChatEngineError)
async def chat_engine_error_handler(request: Request, exc: ChatEngineError):
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}
    message = exc.message
    if isinstance(exc, (UpstreamServiceError, UpstreamRateLimited)):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        # Upstream details stay in the log
        message = "Server error"
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


app.include_router(chat.router)
app.include_router(messages.router)
app.include_router(typing_status.router)
app.include_router(greeting.router)


@app.get("/health")
def health():
    return {"status": "ok"}
