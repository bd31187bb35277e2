"""JSON prompt catalog rendered with ``string.Template``.

Keys are dotted paths into ``prompts/prompts.json``; the file is re-read when
its mtime changes so prompt tweaks do not need a restart.
"""
from __future__ import annotations

import json
from pathlib import Path
from string import Template
from typing import Any

PROMPTS_PATH = Path(__file__).resolve().parents[1] / "prompts" / "prompts.json"


class PromptCatalog:
    def __init__(self, path: Path = PROMPTS_PATH):
        self.path = path
        self._entries: dict[str, Any] | None = None
        self._mtime_ns: int | None = None

    def _entries_now(self) -> dict[str, Any]:
        mtime_ns = self.path.stat().st_mtime_ns
        if self._entries is None or self._mtime_ns != mtime_ns:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(payload, dict):
                raise ValueError(f"Prompt catalog {self.path} must be a JSON object")
            self._entries = payload
            self._mtime_ns = mtime_ns
        return self._entries

    def template(self, key: str) -> Template:
        node: Any = self._entries_now()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                raise KeyError(f"Prompt key not found: {key}")
            node = node[part]
        if not isinstance(node, str):
            raise TypeError(f"Prompt key {key} is a section, not a prompt")
        return Template(node)

    def render(self, key: str, **values: Any) -> str:
        try:
            return self.template(key).substitute(**values)
        except KeyError as exc:
            if str(exc.args[0]).startswith("Prompt key"):
                raise
            raise KeyError(f"Prompt {key} needs a value for '{exc.args[0]}'") from exc

    def reset(self) -> None:
        self._entries = None
        self._mtime_ns = None


catalog = PromptCatalog()


def render_prompt(key: str, **values: Any) -> str:
    return catalog.render(key, **values)
