from __future__ import annotations

import asyncio

import pytest


class FakeSummarizer:
    """Stand-in for ``Summarizer`` with scripted stream and batch behaviour."""

    def __init__(
        self,
        fragments: list[str] | None = None,
        *,
        stream_error: Exception | None = None,
        batch_text: str = "",
        batch_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.fragments = fragments or []
        self.stream_error = stream_error
        self.batch_text = batch_text
        self.batch_error = batch_error
        self.delay = delay
        self.stream_calls = 0
        self.generate_calls = 0
        self.prompts = []

    async def stream(self, prompt):
        self.stream_calls += 1
        self.prompts.append(prompt)
        for fragment in self.fragments:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error

    async def generate(self, prompt):
        self.generate_calls += 1
        self.prompts.append(prompt)
        if self.batch_error is not None:
            raise self.batch_error
        return self.batch_text


@pytest.fixture
def fake_summarizer():
    return FakeSummarizer
