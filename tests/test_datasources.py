import json
import os
import re
from pathlib import Path

import pytest

from ccql.config import Config
from ccql.datasources import (
    HistoryDataSource,
    SessionInfo,
    StatsDataSource,
    TodoDataSource,
    TranscriptDataSource,
)
from ccql.errors import DataFileNotFoundError
from ccql.models import TodoStatus


@pytest.fixture
def config(tmp_path):
    return Config(tmp_path)


def _write_history(config):
    lines = [
        json.dumps({"display": "fix the login bug", "timestamp": 1000,
                    "project": "/home/dev/app", "sessionId": "s1"}),
        json.dumps({"display": "/help", "timestamp": 2000, "project": "/home/dev/app"}),
        json.dumps({"display": "", "timestamp": 3000}),
        "not json",
        "",
        json.dumps({"display": "write docs", "timestamp": 4000, "project": "/home/dev/site"}),
        json.dumps({"timestamp": 5000}),
    ]
    config.history_file().write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_history_load_all_skips_bad_lines(config):
    _write_history(config)
    entries = HistoryDataSource(config).load_all()
    assert [e.display for e in entries] == ["fix the login bug", "/help", "", "write docs"]


def test_history_load_raw_keeps_every_json_line(config):
    _write_history(config)
    raw = HistoryDataSource(config).load_raw()
    assert len(raw) == 5
    assert raw[-1] == {"timestamp": 5000}


def test_history_filter_prompts(config):
    _write_history(config)
    prompts = HistoryDataSource(config).filter_prompts()
    assert [e.display for e in prompts] == ["fix the login bug", "write docs"]


def test_history_filter_by_project(config):
    _write_history(config)
    entries = HistoryDataSource(config).filter_by_project("site")
    assert [e.display for e in entries] == ["write docs"]


def test_history_filter_by_date_range(config):
    _write_history(config)
    source = HistoryDataSource(config)
    assert [e.timestamp for e in source.filter_by_date_range(2000, 3000)] == [2000, 3000]
    assert [e.timestamp for e in source.filter_by_date_range(None, 1000)] == [1000]
    assert len(source.filter_by_date_range()) == 4


def test_history_missing_file_raises(config):
    with pytest.raises(DataFileNotFoundError):
        HistoryDataSource(config).load_all()


STATS = {
    "version": 2,
    "lastComputedDate": "2024-05-01",
    "dailyActivity": [
        {"date": "2024-04-30", "messageCount": 3, "sessionCount": 1, "toolCallCount": 2}
    ],
    "modelUsage": {"model-a": {"inputTokens": 10, "outputTokens": 5}},
    "totalMessages": 42,
    "totalSessions": 7,
    "firstSessionDate": "2024-01-01",
}


def test_stats_load(config):
    config.stats_file().write_text(json.dumps(STATS), encoding="utf-8")
    stats = StatsDataSource(config).load()
    assert stats.total_messages == 42
    assert stats.total_sessions == 7
    assert stats.model_usage["model-a"].input_tokens == 10


def test_stats_load_raw(config):
    config.stats_file().write_text(json.dumps(STATS), encoding="utf-8")
    assert StatsDataSource(config).load_raw() == STATS


def test_stats_missing_raises(config):
    with pytest.raises(DataFileNotFoundError):
        StatsDataSource(config).load()


def _todo(content, status):
    return {"content": content, "status": status, "activeForm": content + "ing"}


def _write_todos(config):
    todos = config.todos_dir()
    todos.mkdir()
    (todos / "ws1-agent-a1.json").write_text(
        json.dumps([_todo("write", "pending"), _todo("test", "completed")]), encoding="utf-8")
    (todos / "ws2-agent-a2.json").write_text(
        json.dumps([_todo("ship", "in_progress")]), encoding="utf-8")
    (todos / "simple.json").write_text(json.dumps([_todo("x", "pending")]), encoding="utf-8")
    (todos / "empty-agent-x.json").write_text("[]", encoding="utf-8")
    (todos / "broken-agent-y.json").write_text("{not json", encoding="utf-8")
    (todos / "notes.txt").write_text("ignored", encoding="utf-8")


def test_todos_without_directory(config):
    assert TodoDataSource(config).load_all() == []


def test_todos_load_all(config):
    _write_todos(config)
    files = TodoDataSource(config).load_all()
    assert [(f.workspace_id, f.agent_id) for f in files] == [("ws1", "a1"), ("ws2", "a2")]
    assert [t.content for t in files[0].todos] == ["write", "test"]


def test_todos_filter_by_status(config):
    _write_todos(config)
    files = TodoDataSource(config).filter_by_status(TodoStatus.PENDING)
    assert [(f.agent_id, [t.content for t in f.todos]) for f in files] == [("a1", ["write"])]


def test_todos_all_flat(config):
    _write_todos(config)
    flat = TodoDataSource(config).all_todos_flat()
    assert [(ws, agent, t.content) for ws, agent, t in flat] == [
        ("ws1", "a1", "write"),
        ("ws1", "a1", "test"),
        ("ws2", "a2", "ship"),
    ]


def _write_transcripts(config):
    directory = config.transcripts_dir()
    directory.mkdir()
    a = directory / "ses_a.jsonl"
    b = directory / "ses_b.jsonl"
    a.write_text('{"type":"user","content":"find the needle"}\n{"type":"tool_use"}\n',
                 encoding="utf-8")
    b.write_text('{"type":"user","content":"hello"}\n', encoding="utf-8")
    (directory / "readme.txt").write_text("not a session", encoding="utf-8")
    os.utime(a, (1000, 1000))
    os.utime(b, (2000, 2000))
    return a, b


def test_list_sessions_newest_first(config):
    a, b = _write_transcripts(config)
    sessions = TranscriptDataSource(config).list_sessions()
    assert [s.session_id for s in sessions] == ["ses_b", "ses_a"]
    assert sessions[1].size_bytes == a.stat().st_size
    assert sessions[0].path == b


def test_list_sessions_without_directory(config):
    assert TranscriptDataSource(config).list_sessions() == []


def test_load_session(config):
    _write_transcripts(config)
    entries = TranscriptDataSource(config).load_session("ses_a")
    assert entries == [{"type": "user", "content": "find the needle"}, {"type": "tool_use"}]


def test_load_session_missing(config):
    _write_transcripts(config)
    with pytest.raises(DataFileNotFoundError):
        TranscriptDataSource(config).load_session("nope")


def test_load_all_sessions(config):
    _write_transcripts(config)
    loaded = TranscriptDataSource(config).load_all_sessions()
    assert [(sid, len(entries)) for sid, entries in loaded] == [("ses_b", 1), ("ses_a", 2)]


def test_search_in_sessions(config):
    _write_transcripts(config)
    results = TranscriptDataSource(config).search_in_sessions(re.compile("needle"))
    assert [(r.session_id, r.entry_index) for r in results] == [("ses_a", 0)]
    assert results[0].entry["content"] == "find the needle"


def test_search_in_sessions_with_string_pattern(config):
    _write_transcripts(config)
    results = TranscriptDataSource(config).search_in_sessions('"type":"user"')
    assert sorted(r.session_id for r in results) == ["ses_a", "ses_b"]


def test_session_size_human():
    def info(size):
        return SessionInfo("s", Path("s.jsonl"), size, None)

    assert info(10).size_human() == "10 B"
    assert info(2048).size_human() == "2.0 KB"
    assert info(3 * 1024 * 1024).size_human() == "3.0 MB"


def test_session_formatted_time():
    assert SessionInfo("s", Path("s.jsonl"), 0, None).formatted_time() == "unknown"
    assert SessionInfo("s", Path("s.jsonl"), 0, 0.0).formatted_time() == "1970-01-01 00:00"
    assert SessionInfo("s", Path("s.jsonl"), 0, -5.0).formatted_time() == "unknown"