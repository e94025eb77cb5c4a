"""Text and regular-expression search over strings and JSON values."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, replace
from typing import Any

_HIGHLIGHT_START = "\x1b[1;31m"
_HIGHLIGHT_END = "\x1b[0m"


class SearchEngine:
    """Matches a literal term or a regular expression, case-insensitive by default."""

    def __init__(self, pattern: str, case_sensitive: bool = False,
                 is_regex: bool = False) -> None:
        source = pattern if is_regex else re.escape(pattern)
        flags = 0 if case_sensitive else re.IGNORECASE
        self.pattern = re.compile(source, flags)
        self.case_sensitive = case_sensitive

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None

    def find_in_json(self, value: Any) -> bool:
        if isinstance(value, str):
            return self.matches(value)
        if isinstance(value, list):
            return any(self.find_in_json(v) for v in value)
        if isinstance(value, dict):
            return any(self.find_in_json(v) for v in value.values())
        return self.matches(json.dumps(value))

    def highlight(self, text: str) -> str:
        """Wrap each match in bold red terminal codes, unless NO_COLOR is set."""
        if "NO_COLOR" in os.environ:
            return text
        return self.pattern.sub(
            lambda m: f"{_HIGHLIGHT_START}{m.group(0)}{_HIGHLIGHT_END}", text
        )


@dataclass(frozen=True)
class SearchMatch:
    source: str
    content: str
    line_number: int | None = None
    context_before: list[str] = field(default_factory=list)
    context_after: list[str] = field(default_factory=list)

    def with_line(self, line: int) -> "SearchMatch":
        return replace(self, line_number=line)

    def with_context(self, before: list[str], after: list[str]) -> "SearchMatch":
        return replace(self, context_before=list(before), context_after=list(after))