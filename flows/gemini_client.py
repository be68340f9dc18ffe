# flows/gemini_client.py
"""
Gemini inference client.

Gemini is reached through its OpenAI-compatible endpoint with the `openai`
SDK. A thin AsyncOpenAI client is built per call so each dispatcher attempt
runs with exactly the credential it was handed; all of them share the
per-loop httpx transport from core.http_client.

SDK-level retries are disabled: failover across keys is the dispatcher's job.
SDK errors are translated into core.exceptions so nothing above this module
depends on the SDK's exception types.
"""

import asyncio
import json
import logging
import re
import time
from typing import Optional, Type, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from core.config import GEMINI_BASE_URL, GEMINI_MODEL, GEMINI_TEMPERATURE, GEMINI_TIMEOUT
from core.credential_pool import CredentialPool
from core.exceptions import LLMError, ProviderError, QuotaExceededError
from core.http_client import get_client
from core.request_context import get_request_id

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def _client_for(credential: str, timeout: float) -> AsyncOpenAI:
    return AsyncOpenAI(
        api_key=credential,
        base_url=GEMINI_BASE_URL,
        http_client=get_client(),
        max_retries=0,
        timeout=timeout,
    )


def _extract_json(text: str) -> str:
    """Strip markdown code fences the model sometimes wraps around JSON."""
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def _translate_error(exc: openai.OpenAIError) -> LLMError:
    if isinstance(exc, openai.RateLimitError):
        return QuotaExceededError(str(exc), status_code=exc.status_code)
    if isinstance(exc, openai.APIStatusError):
        return LLMError(str(exc), status_code=exc.status_code)
    return LLMError(str(exc))


async def generate_structured(
    credential: str,
    *,
    prompt: str,
    schema: Type[M],
    system: Optional[str] = None,
    model: Optional[str] = None,
    temperature: Optional[float] = None,
    timeout: Optional[float] = None,
) -> M:
    """
    Run one completion with `credential` and validate the JSON reply against `schema`.

    Raises:
        QuotaExceededError: the service rejected the key for rate/usage limits.
        LLMError: any other API or transport failure.
        ProviderError: empty, non-JSON or schema-violating output.
    """
    model = model or GEMINI_MODEL
    temperature = GEMINI_TEMPERATURE if temperature is None else temperature
    timeout = GEMINI_TIMEOUT if timeout is None else timeout

    schema_hint = json.dumps(schema.model_json_schema())
    system_prompt = (
        f"{system}\n\n" if system else ""
    ) + f"Respond with a single JSON object matching this JSON schema:\n{schema_hint}"

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": prompt},
    ]

    start = time.monotonic()
    client = _client_for(credential, timeout)
    try:
        response = await client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            response_format={"type": "json_object"},
        )
    except openai.OpenAIError as e:
        raise _translate_error(e) from e

    if not response.choices or response.choices[0].message is None:
        raise ProviderError("Malformed response: missing choices")
    content = response.choices[0].message.content
    if not content:
        raise ProviderError("Empty completion (content is None)")

    try:
        parsed = schema.model_validate_json(_extract_json(content))
    except ValidationError as e:
        raise ProviderError(f"Response did not match {schema.__name__}: {e.error_count()} error(s)") from e

    usage = getattr(response, "usage", None)
    logger.info("Gemini completion succeeded", extra={
        "request_id": get_request_id(),
        "model": model,
        "latency_sec": round(time.monotonic() - start, 3),
        "total_tokens": getattr(usage, "total_tokens", None),
    })
    return parsed


async def health_check(pool: CredentialPool, timeout: float = 5.0) -> str:
    """
    Probe the service with a single rotated key (lists models, no quota-heavy call).
    Returns "ok" or "fail".
    """
    credential = pool.next()
    if credential is None:
        return "fail"
    client = _client_for(credential, timeout)

    async def _probe():
        await client.models.list()

    try:
        await asyncio.wait_for(_probe(), timeout=timeout)
        return "ok"
    except Exception as e:
        logger.warning("Gemini health check failed", extra={"error_type": type(e).__name__})
        return "fail"
