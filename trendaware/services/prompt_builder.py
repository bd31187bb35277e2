from __future__ import annotations

import html
from dataclasses import dataclass

from trendaware.config import settings
from trendaware.models.schemas import Profile
from trendaware.services.prompt_store import render_prompt

TRUNCATION_MARKER = "..."


@dataclass(frozen=True, slots=True)
class SummaryPrompt:
    system: str
    user: str


def truncate_body(body: str, limit: int | None = None) -> str:
    """Send-time view of the body: first ``limit`` chars plus a marker."""
    limit = settings.body_max_chars if limit is None else limit
    if len(body) <= limit:
        return body
    return body[:limit] + TRUNCATION_MARKER


def _join(items: list[str], default: str) -> str:
    cleaned = [item.strip() for item in items if item and item.strip()]
    return ", ".join(cleaned) if cleaned else default


def build_system_prompt(profile: Profile | None) -> str:
    if profile is None:
        return render_prompt("summary.system.generic")
    return render_prompt(
        "summary.system.personalized",
        display_name=profile.display_name.strip() or "a user",
        job_title=profile.job_title.strip() or "a professional",
        industry=profile.industry.strip() or "financial",
        expertise=_join(profile.expertise, "not specified"),
        interests=_join(profile.interests, "not specified"),
        depth=profile.research_preferences.depth,
    )


def build_user_prompt(title: str, body: str, web_research: str | None) -> str:
    if web_research:
        research_section = render_prompt("summary.research_section", web_research=web_research)
        instruction = render_prompt("summary.research_instruction.with_research")
    else:
        research_section = ""
        instruction = render_prompt("summary.research_instruction.without_research")
    return render_prompt(
        "summary.user",
        title=title.strip(),
        body=truncate_body(body),
        research_section=research_section,
        research_instruction=instruction,
    )


def build_summary_prompt(
    title: str,
    body: str,
    profile: Profile | None,
    web_research: str | None,
) -> SummaryPrompt:
    return SummaryPrompt(
        system=build_system_prompt(profile),
        user=build_user_prompt(title, body, web_research),
    )


def fallback_summary(title: str, body: str, profile: Profile | None) -> str:
    """Deterministic placeholder used when no provider summary is available."""
    name = profile.display_name.strip() if profile else ""
    return render_prompt(
        "fallback.summary",
        title=html.escape(title.strip()),
        length=len(body),
        for_whom=f" for {html.escape(name)}" if name else "",
    )
