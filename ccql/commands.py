"""The ccql subcommands: each loads data, filters it and writes it in the chosen format."""

from __future__ import annotations

import json
import re
import sys
from datetime import date, datetime, time, timezone
from typing import Any, Iterable, TextIO

from .config import Config
from .datasources import (
    HistoryDataSource,
    StatsDataSource,
    TodoDataSource,
    TranscriptDataSource,
)
from .dedup import FuzzyDeduper
from .errors import DataSourceError, QueryParseError
from .models import TodoStatus
from .output import OutputFormat, OutputWriter, create_table, truncate_string
from .query import QueryEngine
from .search import SearchEngine
from .sqlengine import SqlEngine, SqlOptions, is_write_operation


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _pretty(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def _writer(fmt: OutputFormat | str, out: TextIO | None) -> tuple[OutputFormat, OutputWriter]:
    fmt = OutputFormat(fmt)
    return fmt, OutputWriter(out if out is not None else sys.stdout, fmt)


def _write_records(writer: OutputWriter, fmt: OutputFormat, records: list[Any]) -> bool:
    """Write records as JSON or JSON lines; False when the format is a table."""
    if fmt is OutputFormat.JSON:
        writer.write_json(records)
        return True
    if fmt in (OutputFormat.RAW, OutputFormat.JSONL):
        for record in records:
            writer.write_json(record)
        return True
    return False


def _day_bound_ms(text: str | None, bound: time) -> int | None:
    if text is None:
        return None
    try:
        day = datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None
    moment = datetime.combine(day, bound, tzinfo=timezone.utc)
    return int(moment.timestamp()) * 1000


def prompts(config: Config, session: str | None = None, project: str | None = None,
            since: str | None = None, until: str | None = None, limit: int | None = None,
            fmt: OutputFormat | str = OutputFormat.TABLE, out: TextIO | None = None) -> None:
    """List user prompts from the history, newest first."""
    entries = HistoryDataSource(config).filter_prompts()

    if project is not None:
        entries = [e for e in entries if e.project is not None and project in e.project]
    if session is not None:
        entries = [e for e in entries if e.session_id is not None and session in e.session_id]

    since_ts = _day_bound_ms(since, time(0, 0, 0))
    if since_ts is not None:
        entries = [e for e in entries if e.timestamp >= since_ts]
    until_ts = _day_bound_ms(until, time(23, 59, 59))
    if until_ts is not None:
        entries = [e for e in entries if e.timestamp <= until_ts]

    entries.sort(key=lambda e: e.timestamp, reverse=True)
    if limit is not None:
        entries = entries[:limit]

    fmt, writer = _writer(fmt, out)
    if _write_records(writer, fmt, [e.to_json() for e in entries]):
        return

    table = create_table()
    table.set_header(["Time", "Project", "Prompt"])
    for entry in entries:
        name = entry.project_name()
        table.add_row([
            entry.formatted_time(),
            name if name is not None else "-",
            truncate_string(entry.display, 80),
        ])
    writer.write_table(table)
    writer.writeln(f"\nTotal: {len(entries)} prompts")


def _query_source(config: Config, source: str, file_pattern: str | None) -> list[Any]:
    if source == "history":
        return HistoryDataSource(config).load_raw()
    if source == "transcripts":
        return [
            entry
            for session_id, entries in TranscriptDataSource(config).load_all_sessions()
            if file_pattern is None or file_pattern in session_id
            for entry in entries
        ]
    if source == "stats":
        return [StatsDataSource(config).load_raw()]
    if source == "todos":
        return [f.to_json() for f in TodoDataSource(config).load_all()]
    raise DataSourceError(
        f"Unknown source: {source}. Use: history, transcripts, stats, todos"
    )


def query(config: Config, query_str: str, source: str, file_pattern: str | None = None,
          fmt: OutputFormat | str = OutputFormat.TABLE, out: TextIO | None = None) -> None:
    """Run a jq-style query over the raw records of one data source."""
    data = _query_source(config, source, file_pattern)
    results = QueryEngine().execute_on_array(query_str, data)

    fmt, writer = _writer(fmt, out)
    if _write_records(writer, fmt, results):
        return
    for result in results:
        writer.writeln(_pretty(result))


def sessions(config: Config, detailed: bool = False, project: str | None = None,
             sort_by: str = "time", fmt: OutputFormat | str = OutputFormat.TABLE,
             out: TextIO | None = None) -> None:
    """List transcript sessions, sorted by modification time or size."""
    found = TranscriptDataSource(config).list_sessions()
    if sort_by == "time":
        found.sort(key=lambda s: (s.modified is not None, s.modified or 0.0), reverse=True)
    elif sort_by == "size":
        found.sort(key=lambda s: s.size_bytes, reverse=True)

    fmt, writer = _writer(fmt, out)
    records = [
        {"session_id": s.session_id, "size": s.size_bytes, "modified": s.formatted_time()}
        for s in found
    ]
    if _write_records(writer, fmt, records):
        return

    table = create_table()
    table.set_header(["Session ID", "Size", "Modified"])
    for s in found:
        table.add_row([s.session_id, s.size_human(), s.formatted_time()])
    writer.write_table(table)
    writer.writeln(f"\nTotal: {len(found)} sessions")


def stats(config: Config, group_by: str = "model", since: str | None = None,
          until: str | None = None, fmt: OutputFormat | str = OutputFormat.TABLE,
          out: TextIO | None = None) -> None:
    """Show the precomputed usage statistics."""
    cache = StatsDataSource(config).load()

    fmt, writer = _writer(fmt, out)
    if fmt is not OutputFormat.TABLE:
        writer.write_json(cache.to_json())
        return

    writer.writeln("=== Claude Code Usage Statistics ===\n")
    writer.writeln(f"Total Messages: {cache.total_messages}")
    writer.writeln(f"Total Sessions: {cache.total_sessions}")
    writer.writeln(f"Total Tokens: {cache.total_tokens()}")
    writer.writeln(f"First Session: {cache.first_session_date}")
    writer.writeln(f"Last Computed: {cache.last_computed_date}")

    longest = cache.longest_session
    if longest is not None:
        writer.writeln(
            f"\nLongest Session: {longest.session_id} ({longest.message_count} messages)"
        )

    writer.writeln("\n--- Model Usage ---")
    model_table = create_table()
    model_table.set_header(["Model", "Input Tokens", "Output Tokens"])
    for model, usage in cache.model_usage.items():
        model_table.add_row([model, str(usage.input_tokens), str(usage.output_tokens)])
    writer.write_table(model_table)

    if group_by == "date":
        writer.writeln("\n--- Daily Activity (last 10 days) ---")
        daily_table = create_table()
        daily_table.set_header(["Date", "Messages", "Sessions", "Tool Calls"])
        for activity in list(reversed(cache.daily_activity))[:10]:
            daily_table.add_row([
                activity.date,
                str(activity.message_count),
                str(activity.session_count),
                str(activity.tool_call_count),
            ])
        writer.write_table(daily_table)


def search(config: Config, term: str, scope: str = "all", case_sensitive: bool = False,
           is_regex: bool = False, before_context: int = 0, after_context: int = 0,
           fmt: OutputFormat | str = OutputFormat.TABLE, out: TextIO | None = None) -> None:
    """Search prompts and transcript entries for a term or pattern."""
    try:
        engine = SearchEngine(term, case_sensitive, is_regex)
    except re.error as exc:
        raise QueryParseError(f"Regex error: {exc}") from exc

    results: list[dict[str, Any]] = []

    if scope in ("all", "prompts"):
        for entry in HistoryDataSource(config).load_all():
            if engine.matches(entry.display):
                results.append({
                    "source": "history",
                    "timestamp": entry.timestamp,
                    "project": entry.project,
                    "content": entry.display,
                })

    if scope in ("all", "transcripts"):
        for session_id, entries in TranscriptDataSource(config).load_all_sessions():
            for index, entry in enumerate(entries):
                if engine.find_in_json(entry):
                    results.append({
                        "source": "transcript",
                        "session_id": session_id,
                        "entry_index": index,
                        "content": entry,
                    })

    fmt, writer = _writer(fmt, out)
    if _write_records(writer, fmt, results):
        return

    table = create_table()
    table.set_header(["Source", "Location", "Match"])
    for result in results:
        source = result["source"]
        if source == "history":
            project = result["project"]
            location = project if isinstance(project, str) else "-"
            content = result["content"]
        else:
            location = f"{result['session_id']}:{result['entry_index']}"
            content = truncate_string(_compact(result["content"]), 60)
        table.add_row([source, location, truncate_string(content, 60)])
    writer.write_table(table)
    writer.writeln(f"\nFound: {len(results)} matches")


def todos(config: Config, status: TodoStatus | None = None, agent: str | None = None,
          fmt: OutputFormat | str = OutputFormat.TABLE, out: TextIO | None = None) -> None:
    """List todo files; the table view can be narrowed to one status."""
    files = TodoDataSource(config).load_all()
    if agent is not None:
        files = [f for f in files if agent in f.agent_id]

    fmt, writer = _writer(fmt, out)
    if _write_records(writer, fmt, [f.to_json() for f in files]):
        return

    table = create_table()
    table.set_header(["Agent", "Status", "Task"])
    total = 0
    for todo_file in files:
        for todo in todo_file.todos:
            if status is not None and todo.status != status:
                continue
            total += 1
            table.add_row([
                truncate_string(todo_file.agent_id, 12),
                str(todo.status),
                truncate_string(todo.content, 60),
            ])
    writer.write_table(table)
    writer.writeln(f"\nTotal: {total} todos")


def _minute_time(ms: int) -> str:
    try:
        moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return "-"
    return moment.strftime("%Y-%m-%d %H:%M")


def _variants_text(canonical: str, variants: Iterable[str]) -> str:
    variants = list(variants)
    if len(variants) <= 1:
        return "-"
    return ", ".join([v for v in variants if v != canonical][:3])


def duplicates(config: Config, threshold: float = 0.8, min_count: int = 2, limit: int = 50,
               show_variants: bool = False, sort: str = "count", min_length: int = 4,
               fmt: OutputFormat | str = OutputFormat.TABLE,
               out: TextIO | None = None) -> None:
    """Show clusters of repeated or near-identical prompts."""
    entries = HistoryDataSource(config).filter_prompts()
    pairs = [(e.display, e.timestamp) for e in entries]

    clusters = FuzzyDeduper(threshold, min_length).cluster(pairs)
    if sort == "latest":
        FuzzyDeduper.sort_by_latest(clusters)
    else:
        FuzzyDeduper.sort_by_count(clusters)

    filtered = [c for c in clusters if c.count >= min_count][:limit]

    fmt, writer = _writer(fmt, out)
    records = [
        {
            "prompt": c.canonical,
            "count": c.count,
            "latest": c.latest_timestamp,
            "variants": list(c.variants),
        }
        for c in filtered
    ]
    if _write_records(writer, fmt, records):
        return

    by_latest = sort == "latest"
    header = ["Count", "Prompt"]
    if by_latest:
        header.insert(0, "Last Used")
    if show_variants:
        header.append("Variants")
    table = create_table()
    table.set_header(header)

    for cluster in filtered:
        variants = _variants_text(cluster.canonical, cluster.variants)
        count = str(cluster.count)
        if by_latest:
            when = _minute_time(cluster.latest_timestamp)
            if show_variants:
                row = [when, count, truncate_string(cluster.canonical, 40),
                       truncate_string(variants, 30)]
            else:
                row = [when, count, truncate_string(cluster.canonical, 60)]
        elif show_variants:
            row = [count, truncate_string(cluster.canonical, 50),
                   truncate_string(variants, 40)]
        else:
            row = [count, truncate_string(cluster.canonical, 70)]
        table.add_row(row)

    writer.write_table(table)
    writer.writeln(
        f"\nShowing {len(filtered)} clusters (min count: {min_count}, "
        f"min length: {min_length} chars, threshold: {threshold * 100.0:.0f}%, sort: {sort})"
    )


def _cell(value: Any) -> str:
    if isinstance(value, str):
        return truncate_string(value, 50)
    if value is None:
        return "-"
    return truncate_string(_compact(value), 50)


def sql(config: Config, query_str: str, write_enabled: bool = False, dry_run: bool = False,
        fmt: OutputFormat | str = OutputFormat.TABLE, out: TextIO | None = None) -> None:
    """Run a SQL statement over the data files."""
    options = SqlOptions(write_enabled=write_enabled, dry_run=dry_run)
    fmt, writer = _writer(fmt, out)

    with SqlEngine(config, options) as engine:
        if dry_run and is_write_operation(query_str):
            writer.writeln("[DRY RUN] Would execute:")
            writer.writeln(query_str)
            writer.writeln("\nNo changes made. Remove --dry-run to execute.")
            return
        results = engine.execute(query_str)

    if _write_records(writer, fmt, results):
        return

    if not results:
        writer.writeln("No results.")
        return

    first = results[0]
    if not isinstance(first, dict):
        for result in results:
            writer.writeln(_pretty(result))
        return

    headers = list(first)
    table = create_table()
    table.set_header(headers)
    for result in results:
        if isinstance(result, dict):
            table.add_row([_cell(result.get(h)) for h in headers])
    writer.write_table(table)
    writer.writeln(f"\n{len(results)} row(s)")