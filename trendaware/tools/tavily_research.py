from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tavily import AsyncTavilyClient

from trendaware.config import settings
from trendaware.errors import ProviderError, ProviderUnavailable

PROVIDER = "tavily"


@dataclass
class SearchResult:
    title: str
    url: str
    content: str
    score: float


def _to_results(response: dict[str, Any]) -> list[SearchResult]:
    return [
        SearchResult(
            title=r.get("title", ""),
            url=r.get("url", ""),
            content=r.get("content", ""),
            score=r.get("score", 0.0),
        )
        for r in response.get("results", [])
        if isinstance(r, dict)
    ]


def format_research(answer: str, results: list[SearchResult], *, max_sources: int = 5) -> str:
    """Render Tavily's answer plus its top sources as plain text for the prompt."""
    lines: list[str] = []
    if answer.strip():
        lines.append(answer.strip())
    ranked = sorted(results, key=lambda r: r.score, reverse=True)[:max_sources]
    if ranked:
        lines.append("")
        lines.append("Sources:")
        for r in ranked:
            snippet = " ".join(r.content.split())[:300]
            lines.append(f"- {r.title} ({r.url}): {snippet}")
    return "\n".join(lines).strip()


async def research(title: str, *, max_results: int = 5) -> str:
    """Search recent news for ``title`` and summarise what Tavily found."""
    if not settings.tavily_api_key:
        raise ProviderUnavailable("TAVILY_API_KEY is not configured", provider=PROVIDER)

    client = AsyncTavilyClient(api_key=settings.tavily_api_key)
    response = await client.search(
        query=f"{title.strip()} financial implications market trends recent news",
        search_depth="advanced",
        topic="news",
        max_results=max_results,
        include_answer=True,
    )
    if not isinstance(response, dict):
        raise ProviderError("Tavily returned a malformed response", provider=PROVIDER)

    answer = response.get("answer") or ""
    if not isinstance(answer, str):
        answer = ""
    return format_research(answer, _to_results(response), max_sources=max_results)
