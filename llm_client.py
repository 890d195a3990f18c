#!/usr/bin/env python3
"""Async completion helper for the Groq OpenAI-compatible API.

`chat_completion` sends one system+user exchange with bounded linear-backoff
retries and normalized content extraction. API errors and malformed bodies
are both retried; once attempts are exhausted a `CompletionError` is raised.
"""
from __future__ import annotations
from typing import Any, Dict, List, Optional
from asyncio import sleep

from openai import AsyncOpenAI, OpenAIError

from config import Config, get_logger
from errors import CompletionError
from utils import RetryHelper

logger = get_logger("llm_client")


class MalformedResponseError(Exception):
    """A completion response carried no usable text."""


def create_client(config: Config) -> AsyncOpenAI:
    """Build the async client; the API key must already be validated."""
    config.require("GROQ_API_KEY")
    return AsyncOpenAI(api_key=config.GROQ_API_KEY, base_url=config.AI_BASE_URL, max_retries=0)


def _extract_text(resp: Any) -> str:
    choices = getattr(resp, "choices", None) or []
    if not choices:
        raise MalformedResponseError("no choices in response")
    message = getattr(choices[0], "message", None)
    content = message.get("content") if isinstance(message, dict) else getattr(message, "content", None)
    if isinstance(content, list):
        content = "\n".join(
            part.get("text", "") for part in content if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
    if not isinstance(content, str) or not content.strip():
        finish = getattr(choices[0], "finish_reason", None)
        raise MalformedResponseError(f"empty content (finish_reason={finish})")
    return content.strip()


async def chat_completion(
    client: Any,
    messages: List[Dict[str, str]],
    config: Config,
    *,
    purpose: str = "generic",
    max_attempts: Optional[int] = None,
) -> str:
    """Execute a chat completion and return the stripped message text.

    Waits ``attempt * AI_RETRY_DELAY`` seconds between attempts and never
    after the last one. Raises `CompletionError` when every attempt fails.
    """
    retry = RetryHelper(max_attempts or config.AI_MAX_RETRIES, config.AI_RETRY_DELAY)
    params: Dict[str, Any] = {
        "model": config.AI_MODEL,
        "messages": messages,
        "max_tokens": config.AI_MAX_TOKENS,
        "temperature": config.AI_TEMPERATURE,
    }
    last_error: Optional[BaseException] = None

    for attempt in range(1, retry.max_attempts + 1):
        try:
            resp = await client.chat.completions.create(**params)
            return _extract_text(resp)
        except (OpenAIError, MalformedResponseError) as e:
            last_error = e
            if attempt >= retry.max_attempts:
                break
            delay = retry.calculate_delay(attempt)
            logger.warning("%s completion error: %s. Backoff %ss (attempt %d/%d)", purpose, e, delay, attempt, retry.max_attempts)
            await sleep(delay)

    logger.error("%s request failed after %d attempts: %s", purpose, retry.max_attempts, last_error)
    raise CompletionError(
        f"Completion for {purpose} failed after {retry.max_attempts} attempts: {last_error}",
        purpose=purpose,
        attempts=retry.max_attempts,
        last_error=last_error,
    )


__all__ = ["chat_completion", "create_client", "MalformedResponseError"]
