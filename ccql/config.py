"""Location of the Claude Code data directory and the files inside it."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidPathError


@dataclass(frozen=True)
class Config:
    """Paths to the data files, rooted at an existing data directory."""

    data_dir: Path

    def __post_init__(self) -> None:
        path = Path(os.fspath(self.data_dir))
        if not path.exists():
            raise InvalidPathError(f"Data directory does not exist: {path}")
        object.__setattr__(self, "data_dir", path)

    @staticmethod
    def default_data_dir() -> Path:
        try:
            return Path.home() / ".claude"
        except (RuntimeError, KeyError):
            return Path(".claude")

    def transcripts_dir(self) -> Path:
        return self.data_dir / "transcripts"

    def history_file(self) -> Path:
        return self.data_dir / "history.jsonl"

    def projects_dir(self) -> Path:
        return self.data_dir / "projects"

    def todos_dir(self) -> Path:
        return self.data_dir / "todos"

    def stats_file(self) -> Path:
        return self.data_dir / "stats-cache.json"