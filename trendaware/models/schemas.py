from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from trendaware.errors import ValidationError


class CamelModel(BaseModel):
    """Wire models use camelCase field names, Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Profile ---


class ResearchPreferences(CamelModel):
    depth: Literal["basic", "intermediate", "advanced"] = "intermediate"
    focus: list[str] = Field(default_factory=list)


class Profile(CamelModel):
    display_name: str = ""
    job_title: str = ""
    industry: str = ""
    interests: list[str] = Field(default_factory=list)
    expertise: list[str] = Field(default_factory=list)
    research_preferences: ResearchPreferences = Field(default_factory=ResearchPreferences)


# --- Requests ---


class SummaryRequest(CamelModel):
    title: str = ""
    # The original dashboard form posted the notes as "content".
    body: str = Field(default="", validation_alias=AliasChoices("body", "content"))
    profile: Profile | None = None

    def validated(self) -> "SummaryRequest":
        """Reject missing/blank fields before any provider call."""
        missing = [name for name in ("title", "body") if not getattr(self, name).strip()]
        if missing:
            raise ValidationError(details={"missing": missing})
        return self


class BatchSummaryRequest(SummaryRequest):
    web_research: str | None = None


class ResearchInitRequest(CamelModel):
    title: str
    request_id: str | None = None


# --- Responses ---


class SummaryResponse(CamelModel):
    summary: str
    web_research_used: bool = False
    fallback: bool = False


class ResearchInitResponse(CamelModel):
    status: Literal["initiated"] = "initiated"
    message: str = "Web research initiated"
    request_id: str


class ResearchStatusResponse(CamelModel):
    status: Literal["processing", "completed", "failed", "not_found"]
    research: str | None = None
    error: str | None = None


class ErrorResponse(CamelModel):
    error: str
    kind: str
    details: dict | list | str | None = None


# --- Provider payloads ---


class ChatMessagePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: str | None = None


class ChatChoicePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: ChatMessagePayload


class ChatCompletionPayload(BaseModel):
    """Minimal shape of an OpenAI-style chat completion JSON response."""

    model_config = ConfigDict(extra="ignore")

    choices: list[ChatChoicePayload] = Field(min_length=1)
