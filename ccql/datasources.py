"""Loaders for the history, statistics, todo and transcript data files."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from . import streaming
from .config import Config
from .errors import CcqlError, JsonParseError
from .models import HistoryEntry, StatsCache, TodoEntry, TodoFile, TodoStatus

log = logging.getLogger(__name__)


def _files_with_suffix(directory: Path, suffix: str) -> list[Path]:
    """Direct children of ``directory`` with the given suffix, sorted by name."""
    if not directory.exists():
        return []
    try:
        children = sorted(directory.iterdir())
    except OSError as exc:
        log.debug("Failed to read %s: %s", directory, exc)
        return []
    return [path for path in children if path.suffix == suffix]


class HistoryDataSource:
    """The prompt history file."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def load_all(self) -> list[HistoryEntry]:
        return streaming.read_jsonl(self.config.history_file(), HistoryEntry.from_json)

    def load_raw(self) -> list[Any]:
        return streaming.read_jsonl_raw(self.config.history_file())

    def filter_prompts(self) -> list[HistoryEntry]:
        return [entry for entry in self.load_all() if entry.is_user_prompt()]

    def filter_by_project(self, project: str) -> list[HistoryEntry]:
        return [
            entry for entry in self.load_all()
            if entry.project is not None and project in entry.project
        ]

    def filter_by_date_range(self, since: int | None = None,
                             until: int | None = None) -> list[HistoryEntry]:
        return [
            entry for entry in self.load_all()
            if (since is None or entry.timestamp >= since)
            and (until is None or entry.timestamp <= until)
        ]


class StatsDataSource:
    """The precomputed statistics file."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def load(self) -> StatsCache:
        return StatsCache.from_json(streaming.read_json(self.config.stats_file()))

    def load_raw(self) -> Any:
        return streaming.read_json(self.config.stats_file())


def _read_todo_list(path: Path) -> list[TodoEntry]:
    data = streaming.read_json(path)
    if not isinstance(data, list):
        raise JsonParseError("invalid type: expected a list of todos")
    return [TodoEntry.from_json(item) for item in data]


class TodoDataSource:
    """The per-agent todo files in the todos directory."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def load_all(self) -> list[TodoFile]:
        """Every non-empty todo file whose name has the workspace-agent form."""
        todo_files = []
        for path in _files_with_suffix(self.config.todos_dir(), ".json"):
            try:
                todos = _read_todo_list(path)
            except (CcqlError, OSError, ValueError) as exc:
                log.debug("Failed to parse %s: %s", path.name, exc)
                continue
            if not todos:
                continue
            todo_file = TodoFile.from_filename(path.name, todos)
            if todo_file is not None:
                todo_files.append(todo_file)
        return todo_files

    def filter_by_status(self, status: TodoStatus) -> list[TodoFile]:
        """Files reduced to their todos with ``status``; files left empty are dropped."""
        filtered = []
        for todo_file in self.load_all():
            matching = [todo for todo in todo_file.todos if todo.status == status]
            if matching:
                filtered.append(TodoFile(todo_file.workspace_id, todo_file.agent_id, matching))
        return filtered

    def all_todos_flat(self) -> list[tuple[str, str, TodoEntry]]:
        return [
            (todo_file.workspace_id, todo_file.agent_id, todo)
            for todo_file in self.load_all()
            for todo in todo_file.todos
        ]


@dataclass
class SessionInfo:
    session_id: str
    path: Path
    size_bytes: int = 0
    modified: float | None = None

    def formatted_time(self) -> str:
        if self.modified is None or self.modified < 0:
            return "unknown"
        try:
            moment = datetime.fromtimestamp(int(self.modified), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return "unknown"
        return moment.strftime("%Y-%m-%d %H:%M")

    def size_human(self) -> str:
        if self.size_bytes < 1024:
            return f"{self.size_bytes} B"
        if self.size_bytes < 1024 * 1024:
            return f"{self.size_bytes / 1024.0:.1f} KB"
        return f"{self.size_bytes / (1024.0 * 1024.0):.1f} MB"


@dataclass
class SearchResult:
    session_id: str
    entry_index: int
    entry: Any


def _newest_first(session: SessionInfo) -> tuple[bool, float]:
    return (session.modified is not None, session.modified or 0.0)


class TranscriptDataSource:
    """The session transcript files in the transcripts directory."""

    def __init__(self, config: Config) -> None:
        self.config = config

    def list_sessions(self) -> list[SessionInfo]:
        """Sessions with their size and modification time, newest first."""
        sessions = []
        for path in _files_with_suffix(self.config.transcripts_dir(), ".jsonl"):
            try:
                info = path.stat()
                size, modified = info.st_size, info.st_mtime
            except OSError:
                size, modified = 0, None
            sessions.append(SessionInfo(path.stem, path, size, modified))
        sessions.sort(key=_newest_first, reverse=True)
        return sessions

    def load_session(self, session_id: str) -> list[Any]:
        path = self.config.transcripts_dir() / f"{session_id}.jsonl"
        return streaming.read_jsonl_raw(path)

    def load_all_sessions(self) -> list[tuple[str, list[Any]]]:
        loaded = []
        for session in self.list_sessions():
            try:
                loaded.append((session.session_id, streaming.read_jsonl_raw(session.path)))
            except (CcqlError, OSError, ValueError) as exc:
                log.debug("Failed to load session %s: %s", session.session_id, exc)
        return loaded

    def search_in_sessions(self, pattern: str | re.Pattern[str]) -> list[SearchResult]:
        """Entries whose compact JSON text matches ``pattern``."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        results = []
        for session_id, entries in self.load_all_sessions():
            for index, entry in enumerate(entries):
                text = json.dumps(entry, separators=(",", ":"), ensure_ascii=False)
                if regex.search(text):
                    results.append(SearchResult(session_id, index, entry))
        return results