"""Model gateway: one chat completion per call, no internal retry."""
import asyncio
import logging
from typing import Any, Callable

import httpx
import openai
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

from ..core.errors import ConfigurationMissing, UpstreamRateLimited, UpstreamServiceError

logger = logging.getLogger(__name__)


def _openai_factory(model: str, api_key: str, timeout: float) -> Callable[..., Any]:
    def build(temperature: float, max_tokens: int, top_p: float):
        return ChatOpenAI(
            model=model,
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
            top_p=top_p,
            timeout=timeout,
            max_retries=0,
        )
    return build


def extract_text(message: Any) -> str:
    """First text content of a model reply, or "" when the shape is unexpected."""
    content = getattr(message, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        for part in content:
            if isinstance(part, str):
                return part
            if isinstance(part, dict) and part.get("type") == "text":
                return part.get("text") or ""
    return ""


class ModelGateway:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        model_factory: Callable[..., Any] | None = None,
    ):
        self.api_key = (api_key or "").strip()
        self.model = model
        self.timeout = timeout
        self._model_factory = model_factory

    def _build_model(self, temperature: float, max_tokens: int, top_p: float):
        if self._model_factory is not None:
            return self._model_factory(temperature=temperature, max_tokens=max_tokens, top_p=top_p)
        if not self.api_key:
            raise ConfigurationMissing("OPENAI_API_KEY is not set")
        return _openai_factory(self.model, self.api_key, self.timeout)(temperature, max_tokens, top_p)

    def _budget(self, deadline: float | None) -> float:
        if deadline is None:
            return self.timeout
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise UpstreamServiceError("Request deadline exceeded before model call")
        return min(self.timeout, remaining)

    async def call(
        self,
        turns: list[BaseMessage],
        temperature: float = 0.7,
        max_output_tokens: int = 500,
        top_p: float = 0.9,
        deadline: float | None = None,
    ) -> str:
        """
        Send turns to the model and return its text.
        Raises ConfigurationMissing, UpstreamRateLimited (HTTP 429) or UpstreamServiceError.
        """
        llm = self._build_model(temperature, max_output_tokens, top_p)
        budget = self._budget(deadline)
        try:
            reply = await asyncio.wait_for(llm.ainvoke(turns), timeout=budget)
        except openai.RateLimitError as e:
            logger.warning("Model rate limited: %s", e)
            raise UpstreamRateLimited("Model provider rate limit") from e
        except openai.APIStatusError as e:
            body = e.response.text if e.response is not None else None
            logger.error("Model API error: status=%s body=%s", e.status_code, body)
            raise UpstreamServiceError("Model request failed", status=e.status_code, body=body) from e
        except (openai.APIConnectionError, httpx.HTTPError) as e:
            logger.error("Model transport error: %s", e)
            raise UpstreamServiceError("Model unreachable") from e
        except openai.APIError as e:
            logger.error("Model reply rejected: %s", e)
            raise UpstreamServiceError("Model request failed") from e
        except asyncio.TimeoutError as e:
            logger.error("Model call timed out after %.1fs", budget)
            raise UpstreamServiceError("Model call timed out") from e
        return extract_text(reply)
