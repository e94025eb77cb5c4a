import io
import json
from datetime import datetime, timezone

import pytest

from ccql import commands
from ccql.config import Config
from ccql.errors import (
    DataFileNotFoundError,
    DataSourceError,
    QueryParseError,
    WriteNotAllowedError,
)
from ccql.models import TodoStatus
from ccql.output import OutputFormat


def _ms(year, month, day, hour=0):
    return int(datetime(year, month, day, hour, tzinfo=timezone.utc).timestamp()) * 1000


HISTORY = [
    {"display": "first prompt", "timestamp": _ms(2024, 1, 1, 10), "project": "/work/alpha",
     "sessionId": "sess-aaa"},
    {"display": "/help", "timestamp": _ms(2024, 1, 2, 10), "project": "/work/alpha"},
    {"display": "second prompt", "timestamp": _ms(2024, 1, 3, 10), "project": "/work/beta",
     "sessionId": "sess-bbb"},
    {"display": "third prompt", "timestamp": _ms(2024, 1, 5, 10), "project": "/work/alpha",
     "sessionId": "sess-aaa"},
]


def _write_jsonl(path, rows):
    path.write_text("".join(json.dumps(r) + "\n" for r in rows), encoding="utf-8")


@pytest.fixture
def config(tmp_path):
    _write_jsonl(tmp_path / "history.jsonl", HISTORY)
    transcripts = tmp_path / "transcripts"
    transcripts.mkdir()
    _write_jsonl(transcripts / "ses_one.jsonl", [
        {"type": "user", "content": "Explain the Parser module"},
        {"type": "tool_use", "tool_name": "Read"},
    ])
    _write_jsonl(transcripts / "ses_two.jsonl", [
        {"type": "user", "content": "something bigger here to make this file larger"},
        {"type": "tool_use", "tool_name": "Edit"},
        {"type": "tool_use", "tool_name": "Bash"},
    ])
    todos = tmp_path / "todos"
    todos.mkdir()
    (todos / "ws1-agent-agentA.json").write_text(json.dumps([
        {"content": "write docs", "status": "pending", "activeForm": "Writing docs"},
        {"content": "ship it", "status": "completed", "activeForm": "Shipping"},
    ]), encoding="utf-8")
    (todos / "ws2-agent-agentB.json").write_text(json.dumps([
        {"content": "fix tests", "status": "in_progress", "activeForm": "Fixing tests"},
    ]), encoding="utf-8")
    return Config(tmp_path)


def _json(out):
    return json.loads(out.getvalue())


def _jsonl(out):
    return [json.loads(line) for line in out.getvalue().splitlines() if line.strip()]


def test_prompts_json_newest_first_without_commands(config):
    out = io.StringIO()
    commands.prompts(config, fmt=OutputFormat.JSON, out=out)
    displays = [e["display"] for e in _json(out)]
    assert displays == ["third prompt", "second prompt", "first prompt"]


def test_prompts_limit_and_project_filter(config):
    out = io.StringIO()
    commands.prompts(config, project="alpha", limit=1, fmt=OutputFormat.JSON, out=out)
    data = _json(out)
    assert [e["display"] for e in data] == ["third prompt"]
    assert data[0]["sessionId"] == "sess-aaa"


def test_prompts_session_filter_jsonl(config):
    out = io.StringIO()
    commands.prompts(config, session="bbb", fmt=OutputFormat.JSONL, out=out)
    assert [e["display"] for e in _jsonl(out)] == ["second prompt"]


def test_prompts_date_range(config):
    out = io.StringIO()
    commands.prompts(config, since="2024-01-02", until="2024-01-03",
                     fmt=OutputFormat.JSON, out=out)
    assert [e["display"] for e in _json(out)] == ["second prompt"]


def test_prompts_invalid_date_is_ignored(config):
    out = io.StringIO()
    commands.prompts(config, since="not-a-date", fmt=OutputFormat.JSON, out=out)
    assert len(_json(out)) == 3


def test_prompts_table_total(config):
    out = io.StringIO()
    commands.prompts(config, fmt=OutputFormat.TABLE, out=out)
    assert "Total: 3 prompts" in out.getvalue()


def test_prompts_missing_history(tmp_path):
    with pytest.raises(DataFileNotFoundError):
        commands.prompts(Config(tmp_path), fmt=OutputFormat.JSON, out=io.StringIO())


def test_query_history_field(config):
    out = io.StringIO()
    commands.query(config, ".[].display", "history", fmt=OutputFormat.JSON, out=out)
    assert _json(out) == [e["display"] for e in HISTORY]


def test_query_transcripts_with_pattern(config):
    out = io.StringIO()
    commands.query(config, ".[].tool_name", "transcripts", file_pattern="two",
                   fmt=OutputFormat.JSONL, out=out)
    assert _jsonl(out) == [None, "Edit", "Bash"]


def test_query_todos_agent_ids(config):
    out = io.StringIO()
    commands.query(config, ".[].agent_id", "todos", fmt=OutputFormat.JSON, out=out)
    assert sorted(_json(out)) == ["agentA", "agentB"]


def test_query_unknown_source(config):
    with pytest.raises(DataSourceError) as info:
        commands.query(config, ".", "nowhere", fmt=OutputFormat.JSON, out=io.StringIO())
    assert "Unknown source: nowhere" in str(info.value)


def test_sessions_sorted_by_size(config):
    out = io.StringIO()
    commands.sessions(config, sort_by="size", fmt=OutputFormat.JSON, out=out)
    data = _json(out)
    assert [s["session_id"] for s in data] == ["ses_two", "ses_one"]
    assert data[0]["size"] >= data[1]["size"]


def test_sessions_table_total(config):
    out = io.StringIO()
    commands.sessions(config, fmt=OutputFormat.TABLE, out=out)
    assert "Total: 2 sessions" in out.getvalue()


STATS = {
    "version": 1,
    "lastComputedDate": "2024-02-01",
    "dailyActivity": [
        {"date": "2024-01-31", "messageCount": 3, "sessionCount": 1, "toolCallCount": 2},
    ],
    "modelUsage": {"model-x": {"inputTokens": 100, "outputTokens": 50}},
    "totalMessages": 5,
    "totalSessions": 2,
    "firstSessionDate": "2024-01-01",
    "longestSession": {"sessionId": "sess-long", "messageCount": 42},
}


def test_stats_json_round_trip(config):
    config.stats_file().write_text(json.dumps(STATS), encoding="utf-8")
    out = io.StringIO()
    commands.stats(config, fmt=OutputFormat.JSON, out=out)
    data = _json(out)
    assert data["totalMessages"] == STATS["totalMessages"]
    assert data["longestSession"]["sessionId"] == "sess-long"


def test_stats_table(config):
    config.stats_file().write_text(json.dumps(STATS), encoding="utf-8")
    out = io.StringIO()
    commands.stats(config, group_by="date", fmt=OutputFormat.TABLE, out=out)
    text = out.getvalue()
    assert "Total Messages: 5" in text
    assert "Total Tokens: 150" in text
    assert "Longest Session: sess-long (42 messages)" in text
    assert "--- Daily Activity (last 10 days) ---" in text


def test_search_all_scopes_case_insensitive(config):
    out = io.StringIO()
    commands.search(config, "PARSER", fmt=OutputFormat.JSON, out=out)
    data = _json(out)
    assert [r["source"] for r in data] == ["transcript"]
    assert data[0]["session_id"] == "ses_one"
    assert data[0]["entry_index"] == 0


def test_search_prompts_scope(config):
    out = io.StringIO()
    commands.search(config, "prompt", scope="prompts", fmt=OutputFormat.JSONL, out=out)
    assert [r["content"] for r in _jsonl(out)] == ["first prompt", "second prompt",
                                                   "third prompt"]


def test_search_case_sensitive_misses(config):
    out = io.StringIO()
    commands.search(config, "PARSER", case_sensitive=True, fmt=OutputFormat.JSON, out=out)
    assert _json(out) == []


def test_search_invalid_regex(config):
    with pytest.raises(QueryParseError):
        commands.search(config, "(", is_regex=True, fmt=OutputFormat.JSON, out=io.StringIO())


def test_search_table_count(config):
    out = io.StringIO()
    commands.search(config, "prompt", scope="prompts", fmt=OutputFormat.TABLE, out=out)
    assert "Found: 3 matches" in out.getvalue()


def test_todos_agent_filter(config):
    out = io.StringIO()
    commands.todos(config, agent="agentB", fmt=OutputFormat.JSON, out=out)
    data = _json(out)
    assert [f["workspace_id"] for f in data] == ["ws2"]
    assert data[0]["todos"][0]["content"] == "fix tests"


def test_todos_table_status_filter(config):
    out = io.StringIO()
    commands.todos(config, status=TodoStatus.PENDING, fmt=OutputFormat.TABLE, out=out)
    assert "Total: 1 todos" in out.getvalue()


def test_duplicates_clusters(tmp_path):
    rows = [{"display": "fix the bug", "timestamp": t} for t in (1000, 2000, 3000)]
    rows.append({"display": "fix the bugs", "timestamp": 5000})
    rows.append({"display": "hello world", "timestamp": 4000})
    _write_jsonl(tmp_path / "history.jsonl", rows)
    out = io.StringIO()
    commands.duplicates(Config(tmp_path), fmt=OutputFormat.JSON, out=out)
    data = _json(out)
    assert len(data) == 1
    assert data[0]["prompt"] == "fix the bug"
    assert data[0]["count"] == 4
    assert data[0]["latest"] == 5000
    assert data[0]["variants"] == ["fix the bug", "fix the bugs"]


def test_duplicates_table_footer(tmp_path):
    _write_jsonl(tmp_path / "history.jsonl",
                 [{"display": "run the tests", "timestamp": t} for t in (1, 2)])
    out = io.StringIO()
    commands.duplicates(Config(tmp_path), sort="latest", show_variants=True,
                        fmt=OutputFormat.TABLE, out=out)
    assert ("Showing 1 clusters (min count: 2, min length: 4 chars, threshold: 80%, "
            "sort: latest)") in out.getvalue()


def test_sql_select_json(config):
    out = io.StringIO()
    commands.sql(config, "SELECT display FROM history", fmt=OutputFormat.JSON, out=out)
    assert [r["display"] for r in _json(out)] == [e["display"] for e in HISTORY]


def test_sql_empty_table_output(config):
    out = io.StringIO()
    commands.sql(config, "SELECT display FROM history WHERE display = 'zzz'",
                 fmt=OutputFormat.TABLE, out=out)
    assert out.getvalue().strip() == "No results."


def test_sql_table_row_count(config):
    out = io.StringIO()
    commands.sql(config, "SELECT display, project FROM history", fmt=OutputFormat.TABLE,
                 out=out)
    assert "4 row(s)" in out.getvalue()


def test_sql_write_requires_flag(config):
    with pytest.raises(WriteNotAllowedError):
        commands.sql(config, "DELETE FROM history WHERE timestamp < 0",
                     fmt=OutputFormat.JSON, out=io.StringIO())


def test_sql_dry_run_leaves_data(config):
    before = config.history_file().read_text(encoding="utf-8")
    statement = "DELETE FROM history WHERE timestamp < 0"
    out = io.StringIO()
    commands.sql(config, statement, dry_run=True, fmt=OutputFormat.TABLE, out=out)
    lines = out.getvalue().splitlines()
    assert lines[0] == "[DRY RUN] Would execute:"
    assert lines[1] == statement
    assert config.history_file().read_text(encoding="utf-8") == before