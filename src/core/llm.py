"""
Life Admin — LLM Provider Abstraction.

The LLM is the free-text extraction oracle: it turns a pasted message
("car insurance renews on the 3rd of every month") into candidate
obligations. Output is never trusted; see src.core.extractor.

Single public function `complete()` that routes to the configured provider.
Supports: gemini (default), anthropic, openai, cohere.
"""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

# (api_key, model, system, user_message, max_tokens, json_output) -> text
_ProviderFn = Callable[[str, str, str, str, int, bool], Awaitable[str]]

_TIMEOUT_SECONDS = 30.0


async def _complete_gemini(api_key: str, model: str, system: str, user_message: str, max_tokens: int, json_output: bool) -> str:
    import google.generativeai as genai

    genai.configure(api_key=api_key)
    gm = genai.GenerativeModel(model_name=model, system_instruction=system)
    response = await gm.generate_content_async(
        user_message,
        generation_config=genai.types.GenerationConfig(
            max_output_tokens=max_tokens,
            temperature=0,
            response_mime_type="application/json" if json_output else None,
        ),
    )
    return response.text


async def _complete_anthropic(api_key: str, model: str, system: str, user_message: str, max_tokens: int, json_output: bool) -> str:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        temperature=0,
        system=system,
        messages=[{"role": "user", "content": user_message}],
    )
    return response.content[0].text


async def _complete_openai(api_key: str, model: str, system: str, user_message: str, max_tokens: int, json_output: bool) -> str:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        temperature=0,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.choices[0].message.content or ""


async def _complete_cohere(api_key: str, model: str, system: str, user_message: str, max_tokens: int, json_output: bool) -> str:
    import cohere

    client = cohere.AsyncClientV2(api_key=api_key)
    response = await client.chat(
        model=model,
        max_tokens=max_tokens,
        temperature=0,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ],
    )
    return response.message.content[0].text


_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "gemini":    (_complete_gemini,    "gemini-2.0-flash"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "cohere":    (_complete_cohere,    "command-a-03-2025"),
}


@lru_cache(maxsize=1)
def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Resolve (provider_fn, model, api_key) from settings once per process."""
    from src.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, settings.LLM_API_KEY


async def complete(
    system: str,
    user_message: str,
    max_tokens: int = 1024,
    json_output: bool = False,
    timeout: float = _TIMEOUT_SECONDS,
) -> str:
    """Send a prompt to the configured LLM provider and return the response text.

    json_output asks providers with a native JSON mode (gemini) for raw JSON;
    the others rely on the prompt. Object-only JSON modes are not used because
    extraction answers with an array.

    Raises on API errors and on timeout; callers should handle exceptions.
    """
    fn, model, api_key = _select_provider()
    return await asyncio.wait_for(
        fn(api_key, model, system, user_message, max_tokens, json_output),
        timeout=timeout,
    )
