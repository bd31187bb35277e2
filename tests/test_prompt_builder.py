from __future__ import annotations

import pytest

from trendaware.models.schemas import Profile, ResearchPreferences
from trendaware.services.prompt_builder import (
    TRUNCATION_MARKER,
    build_summary_prompt,
    build_system_prompt,
    build_user_prompt,
    fallback_summary,
    truncate_body,
)
from trendaware.services.prompt_store import PromptCatalog, render_prompt


def test_truncate_body_keeps_first_4000_chars_and_marker():
    body = "a" * 3999 + "b" + "c" * 500

    sent = truncate_body(body, 4000)

    assert sent == "a" * 3999 + "b" + TRUNCATION_MARKER
    assert len(sent) == 4000 + len(TRUNCATION_MARKER)


@pytest.mark.parametrize("length", [0, 1, 3999, 4000])
def test_truncate_body_leaves_short_bodies_unchanged(length):
    body = "x" * length
    assert truncate_body(body, 4000) == body


def test_user_prompt_embeds_truncated_body_only():
    body = "y" * 4100

    prompt = build_user_prompt("Rates", body, None)

    assert "y" * 4000 + TRUNCATION_MARKER in prompt
    assert "y" * 4001 not in prompt


def test_generic_system_prompt_without_profile():
    prompt = build_system_prompt(None)
    assert "financial research assistant" in prompt
    assert "$" not in prompt


def test_personalized_system_prompt_uses_profile_fields():
    profile = Profile(
        display_name="Ada",
        job_title="Risk Analyst",
        industry="banking",
        interests=["payments", " "],
        expertise=["credit risk"],
        research_preferences=ResearchPreferences(depth="advanced"),
    )

    prompt = build_system_prompt(profile)

    assert "Ada" in prompt
    assert "Risk Analyst" in prompt
    assert "banking" in prompt
    assert "credit risk" in prompt
    assert "payments" in prompt
    assert "advanced" in prompt


def test_profile_accepts_camel_case_payload():
    profile = Profile.model_validate(
        {"displayName": "Lin", "jobTitle": "CFO", "researchPreferences": {"depth": "basic"}}
    )
    assert profile.display_name == "Lin"
    assert profile.research_preferences.depth == "basic"


def test_user_prompt_marks_web_research_when_present():
    with_research = build_user_prompt("Stablecoins", "notes", "Issuance hit a record in May.")
    without = build_user_prompt("Stablecoins", "notes", None)

    assert "Issuance hit a record in May." in with_research
    assert "recent and authoritative" in with_research
    assert "Additional Web Research" not in without
    assert "verification" in without


def test_prompts_are_deterministic():
    first = build_summary_prompt("T", "B", None, "R")
    second = build_summary_prompt("T", "B", None, "R")
    assert first == second


def test_fallback_summary_mentions_title_length_and_name():
    text = fallback_summary("CBDC <pilots>", "z" * 120, Profile(display_name="Ada"))

    assert "CBDC &lt;pilots&gt;" in text
    assert "120 characters" in text
    assert "for Ada" in text


def test_fallback_summary_without_profile():
    text = fallback_summary("CBDC", "body", None)
    assert "were received and will be" in text


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_catalog_reloads_when_file_changes(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text('{"greeting": "hello $name"}', encoding="utf-8")
    catalog = PromptCatalog(path)
    assert catalog.render("greeting", name="ada") == "hello ada"

    path.write_text('{"greeting": "bye $name"}', encoding="utf-8")
    catalog.reset()
    assert catalog.render("greeting", name="ada") == "bye ada"
