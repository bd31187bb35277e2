from __future__ import annotations

from trendaware.config import settings
from trendaware.errors import ProviderUnavailable
from trendaware.tools import perplexity_research, tavily_research


def is_configured() -> bool:
    """Research is attempted only when the selected provider has credentials."""
    return settings.research_enabled


def provider_name() -> str:
    return settings.research_provider.lower().strip()


async def research(title: str) -> str:
    provider = provider_name()

    if provider == "perplexity":
        return await perplexity_research.research(title)
    if provider == "tavily":
        return await tavily_research.research(title)

    raise ProviderUnavailable(f"Unsupported RESEARCH_PROVIDER: {settings.research_provider}")
