# src/learn_buddy/llm/client.py

from __future__ import annotations

import logging
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..core.errors import GenerationError
from ..core.ports import JsonDict

logger = logging.getLogger(__name__)


def _is_auth_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "AuthenticationError",
        "PermissionDeniedError",
        "UnauthorizedError",
    }


def _is_rate_limit_error(exc: Exception) -> bool:
    if isinstance(exc, openai.RateLimitError):
        return True
    return exc.__class__.__name__ in {"RateLimitError", "TooManyRequestsError"}


def _is_connection_error(exc: Exception) -> bool:
    return exc.__class__.__name__ in {
        "APIConnectionError",
        "APITimeoutError",
        "Timeout",
        "ConnectTimeout",
        "ReadTimeout",
        "WriteTimeout",
    }


def _is_not_found_error(exc: Exception) -> bool:
    # OpenAI-compatible SDK often uses NotFoundError for HTTP 404
    return exc.__class__.__name__ in {"NotFoundError"}


def friendly_llm_error_message(err: Exception) -> str:
    if _is_auth_error(err):
        return "LLM authentication failed. Check your API key (LEARNBUDDY_OPENROUTER_API_KEY)."
    if _is_rate_limit_error(err):
        return "LLM is rate-limited. Try again later."
    if _is_connection_error(err):
        return "LLM network/timeout error. Try again later."
    if _is_not_found_error(err):
        return "The configured model is not available. Check LEARNBUDDY_LLM_MODEL."
    msg = str(err).strip() or "LLM error."
    if "LLM API key is not set" in msg:
        return "LLM is not configured (missing API key). Set LEARNBUDDY_OPENROUTER_API_KEY in .env."
    return msg


class OpenRouterLLMClient:
    """
    GenerationBackend over an OpenAI-compatible chat completions endpoint.

    One model, one request per call: the SDK's automatic retries are disabled,
    so a failure surfaces to the caller immediately.
    """

    def __init__(self, settings: Any) -> None:
        api_key = getattr(settings, "openrouter_api_key", None)
        base_url = str(getattr(settings, "openrouter_base_url", "") or "")
        model = str(getattr(settings, "llm_model", "") or "").strip()

        if not api_key or not str(api_key).strip():
            raise RuntimeError("LLM API key is not set. Set LEARNBUDDY_OPENROUTER_API_KEY in your .env.")
        if not base_url.strip():
            raise RuntimeError("LLM base URL is not set. Set LEARNBUDDY_OPENROUTER_BASE_URL in your .env.")
        if not model:
            raise RuntimeError("LLM model is not set. Set LEARNBUDDY_LLM_MODEL in your .env.")

        connect_s = float(getattr(settings, "llm_connect_timeout_seconds", 5.0))
        read_s = float(getattr(settings, "llm_read_timeout_seconds", 60.0))

        self._model = model
        self._headers: dict[str, str] = dict(getattr(settings, "extra_headers", {}) or {})
        self._client = AsyncOpenAI(
            base_url=base_url,
            api_key=str(api_key),
            timeout=httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s),
            max_retries=0,
        )

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        *,
        operation: str,
        system_prompt: str,
        user_prompt: str,
        output_schema: JsonDict,
        payload: JsonDict,
    ) -> str | None:
        logger.info("LLM: %s on model=%s", operation, self._model)
        try:
            resp = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                extra_headers=self._headers or None,
            )
        except Exception as e:
            logger.info("LLM: %s failed on model=%s (%s)", operation, self._model, e.__class__.__name__)
            raise GenerationError(friendly_llm_error_message(e)) from e

        try:
            content = resp.choices[0].message.content
        except (AttributeError, IndexError):
            content = None

        logger.debug("LLM: %s returned %d chars", operation, len(content or ""))
        return content

    async def close(self) -> None:
        await self._client.close()
