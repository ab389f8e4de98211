# src/testsmith/llm/client.py

from __future__ import annotations

import logging
import re
import time
from typing import Any, List

import httpx
import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior engineer improving unit tests. "
    "You receive an existing test file and the source file it covers. "
    "Return the complete revised test file with better coverage of edge cases "
    "and error paths. Keep the existing test framework, imports and style. "
    "Reply with the file contents only, no explanations."
)

_FENCE = re.compile(r"^\s*```[\w+-]*\s*\n(?P<body>.*?)\n\s*```\s*$", re.DOTALL)


def strip_code_fence(text: str) -> str:
    """Models like to wrap the file in a Markdown fence; drop it if that is all there is."""
    m = _FENCE.match(text or "")
    return m.group("body") if m else (text or "")


def build_messages(test_content: str, source_content: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": (
                "Existing test file:\n"
                f"```\n{test_content}\n```\n\n"
                "Source file under test:\n"
                f"```\n{source_content}\n```"
            ),
        },
    ]


def _is_auth_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError))


def _is_rate_limit_error(exc: Exception) -> bool:
    return isinstance(exc, openai.RateLimitError)


def _is_connection_error(exc: Exception) -> bool:
    return isinstance(exc, (openai.APIConnectionError, openai.APITimeoutError))


def _is_not_found_error(exc: Exception) -> bool:
    return isinstance(exc, openai.NotFoundError)


class OpenAISuggestionGenerator:
    """
    SuggestionGenerator backed by an OpenAI-compatible chat completions API.

    Behavior:
    - Tries models in the configured order.
    - 404 (model not available) -> remember for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    - A model that answers with empty content counts as a failure.
    """

    def __init__(self, settings: Any, *, client: OpenAI | None = None) -> None:
        api_key = getattr(settings, "openai_api_key", None)
        base_url = str(getattr(settings, "openai_base_url", "") or "")
        self._models: List[str] = [m.strip() for m in getattr(settings, "llm_models", []) or [] if m.strip()]

        if not self._models:
            raise RuntimeError("LLM model list is empty. Set TESTSMITH_LLM_MODELS in your .env.")

        if client is None:
            if not api_key or not str(api_key).strip():
                raise RuntimeError("LLM API key is not set. Set TESTSMITH_OPENAI_API_KEY in your .env.")
            connect_s = float(getattr(settings, "llm_connect_timeout_seconds", 5.0))
            read_s = float(getattr(settings, "llm_read_timeout_seconds", 120.0))
            # No SDK retries: falling through to the next model is quicker.
            client = OpenAI(
                base_url=base_url or None,
                api_key=str(api_key),
                timeout=httpx.Timeout(connect=connect_s, read=read_s, write=10.0, pool=connect_s),
                max_retries=0,
            )
        self._client = client
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)

    def generate_suggestions(self, test_content: str, source_content: str) -> str | None:
        messages = build_messages(test_content, source_content)
        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.info("LLM: trying model=%s", model)
            t0 = time.monotonic()
            try:
                response = self._client.chat.completions.create(model=model, messages=messages)
            except Exception as e:
                last_error = e
                if _is_auth_error(e):
                    raise RuntimeError("LLM authentication failed. Check TESTSMITH_OPENAI_API_KEY.") from e
                if _is_not_found_error(e):
                    self._bad_models[model] = time.monotonic() + 3600.0
                    logger.info("LLM: model not available (404): %s", model)
                elif _is_rate_limit_error(e):
                    logger.info("LLM: rate-limited on model=%s, trying next", model)
                elif _is_connection_error(e):
                    logger.info("LLM: network/timeout error on model=%s, trying next", model)
                else:
                    logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            content = ""
            if response.choices:
                content = response.choices[0].message.content or ""
            content = strip_code_fence(content)
            if content.strip():
                logger.info("LLM: model=%s answered in %.2fs (%d chars)", model, time.monotonic() - t0, len(content))
                return content

            logger.info("LLM: model=%s returned no content, trying next", model)
            last_error = RuntimeError(f"Model returned no content: {model}")

        if last_error is not None:
            logger.warning("LLM: all models failed: %s", last_error)
        return None
