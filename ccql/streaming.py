"""Reading JSON and JSON Lines data files."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, TypeVar

from .errors import DataFileNotFoundError, JsonParseError

T = TypeVar("T")

log = logging.getLogger(__name__)


def _existing(path: str | os.PathLike) -> Path:
    path = Path(path)
    if not path.exists():
        raise DataFileNotFoundError(str(path))
    return path


def read_jsonl(path: str | os.PathLike,
               factory: Callable[[Any], T] | None = None) -> list[T]:
    """Parse each non-blank line; lines that fail to parse or convert are skipped."""
    path = _existing(path)
    entries: list = []
    with path.open(encoding="utf-8") as handle:
        for line in handle:
            if not line.strip():
                continue
            try:
                value = json.loads(line)
                entries.append(factory(value) if factory is not None else value)
            except (ValueError, TypeError, KeyError) as exc:
                log.debug("Failed to parse line: %s", exc)
    return entries


def read_jsonl_raw(path: str | os.PathLike) -> list[Any]:
    return read_jsonl(path)


def read_json(path: str | os.PathLike) -> Any:
    path = _existing(path)
    content = path.read_text(encoding="utf-8")
    try:
        return json.loads(content)
    except json.JSONDecodeError as exc:
        raise JsonParseError(str(exc)) from exc