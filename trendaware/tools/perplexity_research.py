from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError as PayloadValidationError

from trendaware.config import settings
from trendaware.errors import ProviderError, ProviderUnavailable, RateLimited
from trendaware.models.schemas import ChatCompletionPayload
from trendaware.services.prompt_store import render_prompt

PROVIDER = "perplexity"


def _retry_after(response: httpx.Response) -> float | None:
    raw = response.headers.get("Retry-After")
    if raw:
        try:
            return float(raw)
        except ValueError:
            return None
    return None


async def research(title: str, *, timeout: float | None = None) -> str:
    """Ask Perplexity's online model for recent context on ``title``."""
    if not settings.perplexity_api_key:
        raise ProviderUnavailable("PERPLEXITY_API_KEY is not configured", provider=PROVIDER)

    payload: dict[str, Any] = {
        "model": settings.perplexity_model,
        "messages": [
            {"role": "system", "content": render_prompt("research.system")},
            {"role": "user", "content": render_prompt("research.user", title=title.strip())},
        ],
        "max_tokens": settings.research_max_tokens,
    }
    base_url = settings.perplexity_base_url.rstrip("/")

    async with httpx.AsyncClient(timeout=timeout or settings.research_timeout_seconds) as client:
        response = await client.post(
            f"{base_url}/chat/completions",
            json=payload,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {settings.perplexity_api_key}",
            },
        )

    if response.status_code == 429:
        raise RateLimited(retry_after=_retry_after(response), provider=PROVIDER)
    if not response.is_success:
        raise ProviderError(
            f"Perplexity API error (HTTP {response.status_code})",
            provider=PROVIDER,
            details={"status_code": response.status_code},
        )

    try:
        parsed = ChatCompletionPayload.model_validate(response.json())
    except (ValueError, PayloadValidationError) as exc:
        raise ProviderError("Perplexity returned a malformed response", provider=PROVIDER) from exc

    return (parsed.choices[0].message.content or "").strip()
