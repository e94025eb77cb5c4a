"""Command-line entry point for ccql."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Sequence, TextIO

from . import commands
from .config import Config
from .errors import CcqlError
from .models import TodoStatus
from .output import OutputFormat

VERSION = "0.1.0"

LONG_ABOUT = """SQL query engine for Claude Code data.

Tables: history, transcripts, todos  (run 'ccql tables' for schemas)

QUICK START
═══════════════════════════════════════════════════════════════════════════════

  ccql "SELECT display FROM history LIMIT 5"
  ccql "SELECT * FROM todos WHERE status='pending'"
  ccql "SELECT tool_name, COUNT(*) FROM transcripts WHERE type='tool_use' GROUP BY tool_name"

  ccql tables              # Show table schemas
  ccql -f json "..."       # Output as JSON
  ccql --help              # More examples"""

AFTER_LONG_HELP = """
TABLES
═══════════════════════════════════════════════════════════════════════════════

history        User prompts (display, timestamp, project, pastedContents)
transcripts    Logs (_session_id, type, content, tool_name, tool_input, tool_output)
todos          Tasks (_workspace_id, content, status, activeForm)

EXAMPLES
═══════════════════════════════════════════════════════════════════════════════

  ccql "SELECT display FROM history WHERE display LIKE '%error%'"
  ccql "SELECT tool_name, COUNT(*) as n FROM transcripts WHERE type='tool_use' GROUP BY tool_name"
  ccql "SELECT _session_id, COUNT(*) as n FROM transcripts GROUP BY _session_id ORDER BY n DESC LIMIT 5"
  ccql "SELECT status, COUNT(*) FROM todos GROUP BY status"

OUTPUT FORMATS: -f table | json | jsonl | raw

WRITE MODE: --dry-run to preview, --write to execute (auto-backup)"""

_RULE = "═" * 79
_COMMANDS = frozenset({
    "sql", "q", "prompts", "query", "sessions", "stats", "search",
    "todos", "duplicates", "tables", "examples",
})
_VALUE_OPTIONS = frozenset({"--data-dir", "-f", "--format"})


def _global_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument("--data-dir", type=Path, default=argparse.SUPPRESS,
                        help="Path to Claude data directory (default: ~/.claude)")
    parent.add_argument("-f", "--format", default=argparse.SUPPRESS,
                        choices=[member.value for member in OutputFormat],
                        help="Output format: table, json, jsonl, raw")
    parent.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
                        help="Enable verbose/debug output")
    return parent


def _run_sql(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.sql(config, args.query, args.write or args.sub_write,
                 args.dry_run or args.sub_dry_run, fmt)


def _run_prompts(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.prompts(config, args.session, args.project, args.since, args.until,
                     args.limit, fmt)


def _run_query(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.query(config, args.query, args.source, args.file_pattern, fmt)


def _run_sessions(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.sessions(config, args.detailed, args.project, args.sort_by, fmt)


def _run_stats(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.stats(config, args.group_by, args.since, args.until, fmt)


def _run_search(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.search(config, args.term, args.scope, args.case_sensitive, args.regex,
                    args.before_context, args.after_context, fmt)


def _parse_status(text: str | None) -> TodoStatus | None:
    if text is None:
        return None
    return next((status for status in TodoStatus if str(status) == text), None)


def _run_todos(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.todos(config, _parse_status(args.status), args.agent, fmt)


def _run_duplicates(config: Config, args: argparse.Namespace, fmt: str) -> None:
    commands.duplicates(config, args.threshold, args.min_count, args.limit,
                        args.show_variants, args.sort, args.min_length, fmt)


def _run_tables(config: Config, args: argparse.Namespace, fmt: str) -> None:
    print_tables_info(config)


def _run_examples(config: Config, args: argparse.Namespace, fmt: str) -> None:
    print_examples()


Handler = Callable[[Config, argparse.Namespace, str], None]


def build_parser() -> argparse.ArgumentParser:
    """The argument parser for every ccql command."""
    parent = _global_options()
    parser = argparse.ArgumentParser(
        prog="ccql",
        usage="ccql [OPTIONS] [QUERY] [COMMAND]",
        description=LONG_ABOUT,
        epilog=AFTER_LONG_HELP,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        parents=[parent],
    )
    parser.add_argument("--version", action="version", version=f"ccql {VERSION}")
    parser.add_argument("--write", action="store_true",
                        help="Enable write operations (INSERT, UPDATE, DELETE)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Preview what would be modified without making changes")
    parser.set_defaults(handler=None, sub_write=False, sub_dry_run=False)

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("sql", aliases=["q"], parents=[parent],
                       help="Execute SQL query (explicit)")
    p.add_argument("query", help="SQL query to execute")
    p.add_argument("--write", dest="sub_write", action="store_true",
                   help="Enable write operations (INSERT, UPDATE, DELETE)")
    p.add_argument("--dry-run", dest="sub_dry_run", action="store_true",
                   help="Preview what would be modified without making changes")
    p.set_defaults(handler=_run_sql)

    p = sub.add_parser("prompts", parents=[parent], help="Extract user prompts with filtering")
    p.add_argument("--session", help="Filter by session ID")
    p.add_argument("--project", help="Filter by project path")
    p.add_argument("--since", help="Filter by date range start (YYYY-MM-DD)")
    p.add_argument("--until", help="Filter by date range end (YYYY-MM-DD)")
    p.add_argument("-l", "--limit", type=int, help="Limit number of results")
    p.set_defaults(handler=_run_prompts)

    p = sub.add_parser("query", parents=[parent], help="Execute jq-style queries on raw data")
    p.add_argument("query", help="jq-style query expression")
    p.add_argument("source", help="Data source: history, transcripts, stats, todos")
    p.add_argument("--file-pattern", help="Filter by file pattern (for transcripts)")
    p.set_defaults(handler=_run_query)

    p = sub.add_parser("sessions", parents=[parent], help="List and browse sessions")
    p.add_argument("-d", "--detailed", action="store_true", help="Show detailed session info")
    p.add_argument("--project", help="Filter by project path")
    p.add_argument("--sort-by", default="time", help="Sort by: time, size")
    p.set_defaults(handler=_run_sessions)

    p = sub.add_parser("stats", parents=[parent], help="Display usage statistics")
    p.add_argument("--group-by", default="model", help="Group by: model, date")
    p.add_argument("--since", help="Filter by date range start")
    p.add_argument("--until", help="Filter by date range end")
    p.set_defaults(handler=_run_stats)

    p = sub.add_parser("search", parents=[parent], help="Full-text search across all data")
    p.add_argument("term", help="Search term or regex pattern")
    p.add_argument("--scope", default="all", help="Search scope: all, prompts, transcripts")
    p.add_argument("-c", "--case-sensitive", action="store_true", help="Case-sensitive search")
    p.add_argument("-r", "--regex", action="store_true", help="Use regex pattern")
    p.add_argument("-B", "--before-context", type=int, default=0,
                   help="Lines of context before match")
    p.add_argument("-A", "--after-context", type=int, default=0,
                   help="Lines of context after match")
    p.set_defaults(handler=_run_search)

    p = sub.add_parser("todos", parents=[parent], help="List todos with filtering")
    p.add_argument("--status", help="Filter by status: pending, in_progress, completed")
    p.add_argument("--agent", help="Filter by agent ID")
    p.set_defaults(handler=_run_todos)

    p = sub.add_parser("duplicates", parents=[parent], help="Find repeated/similar prompts")
    p.add_argument("-t", "--threshold", type=float, default=0.8,
                   help="Similarity threshold (0.0-1.0)")
    p.add_argument("-m", "--min-count", type=int, default=2, help="Minimum count to show")
    p.add_argument("-l", "--limit", type=int, default=50, help="Maximum clusters to show")
    p.add_argument("--show-variants", action="store_true", help="Show variants in each cluster")
    p.add_argument("-s", "--sort", default="count", help="Sort by: count, latest")
    p.add_argument("--min-length", type=int, default=4,
                   help="Minimum prompt length in characters")
    p.set_defaults(handler=_run_duplicates)

    p = sub.add_parser("tables", parents=[parent],
                       help="Show available tables and their schemas")
    p.set_defaults(handler=_run_tables)

    p = sub.add_parser("examples", parents=[parent], help="Show useful query examples")
    p.set_defaults(handler=_run_examples)

    return parser


def _with_default_command(argv: Sequence[str]) -> list[str]:
    """Insert the 'sql' command before a bare query that names no command."""
    argv = list(argv)
    index = 0
    while index < len(argv):
        token = argv[index]
        if token == "--":
            break
        if token in _VALUE_OPTIONS:
            index += 2
            continue
        if token.startswith("-") and len(token) > 1:
            index += 1
            continue
        if token in _COMMANDS:
            return argv
        return argv[:index] + ["sql"] + argv[index:]
    return argv


def print_tables_info(config: Config, out: TextIO | None = None) -> None:
    """Describe each table, whether its data exists, and where it lives."""
    out = out if out is not None else sys.stdout

    def line(text: str = "") -> None:
        print(text, file=out)

    def mark(path: Path) -> str:
        return "✓" if path.exists() else "✗"

    line("TABLES")
    line("═" * 78 + "\n")

    history = config.history_file()
    line(f"{mark(history)} history                       {history}")
    line("  ├── display        TEXT         The prompt text you typed")
    line("  ├── timestamp      INTEGER      Unix timestamp (milliseconds)")
    line("  ├── project        TEXT         Project directory path")
    line("  └── pastedContents OBJECT       Pasted content (JSON)\n")

    transcripts = config.transcripts_dir()
    line(f"{mark(transcripts)} transcripts                   {transcripts}")
    line("  ├── _source_file   TEXT         Source file (ses_xxx.jsonl)")
    line("  ├── _session_id    TEXT         Session ID")
    line("  ├── type           TEXT         'user' | 'tool_use' | 'tool_result'")
    line("  ├── timestamp      TEXT         ISO 8601 timestamp")
    line("  ├── content        TEXT         Message text (type='user')")
    line("  ├── tool_name      TEXT         Tool name (type='tool_*')")
    line("  ├── tool_input     OBJECT       Tool parameters")
    line("  └── tool_output    OBJECT       Tool response (type='tool_result')\n")

    todos = config.todos_dir()
    line(f"{mark(todos)} todos                         {todos}")
    line("  ├── _source_file   TEXT         Source filename")
    line("  ├── _workspace_id  TEXT         Workspace ID")
    line("  ├── _agent_id      TEXT         Agent ID")
    line("  ├── content        TEXT         Todo description")
    line("  ├── status         TEXT         'pending' | 'in_progress' | 'completed'")
    line("  └── activeForm     TEXT         Display text when active\n")

    line("Run 'ccql examples' for more query examples.")
    line(f"\nData directory: {config.data_dir}")


def print_examples(out: TextIO | None = None) -> None:
    """Print a catalogue of useful queries."""
    out = out if out is not None else sys.stdout

    def section(title: str) -> None:
        print(title, file=out)
        print(_RULE + "\n", file=out)

    def lines(*texts: str) -> None:
        for text in texts:
            print(text, file=out)

    section("FILTER BY CURRENT PROJECT")
    lines(
        "  # Only prompts from current folder",
        "  ccql \"SELECT display FROM history WHERE project = '$(pwd)' LIMIT 10\"\n",
        "  # Transcripts from current project (via session join)",
        "  ccql \"SELECT t.tool_name, COUNT(*) as n FROM transcripts t",
        "        JOIN history h ON t._session_id = h.session_id",
        "        WHERE h.project = '$(pwd)' AND t.type='tool_use'",
        "        GROUP BY t.tool_name ORDER BY n DESC\"\n",
    )

    section("HISTORY QUERIES")
    lines(
        "  # Recent prompts",
        "  ccql \"SELECT display FROM history ORDER BY timestamp DESC LIMIT 10\"\n",
        "  # Search prompts",
        "  ccql \"SELECT display FROM history WHERE display LIKE '%error%'\"\n",
        "  # Prompts by project",
        "  ccql \"SELECT project, COUNT(*) as n FROM history GROUP BY project ORDER BY n DESC\"\n",
        "  # Long prompts (likely pasted code)",
        "  ccql \"SELECT LENGTH(display) as len, SUBSTR(display, 1, 60) as preview",
        "        FROM history ORDER BY len DESC LIMIT 10\"\n",
    )

    section("TRANSCRIPT QUERIES")
    lines(
        "  # Tool usage stats",
        "  ccql \"SELECT tool_name, COUNT(*) as n FROM transcripts",
        "        WHERE type='tool_use' GROUP BY tool_name ORDER BY n DESC\"\n",
        "  # Most active sessions",
        "  ccql \"SELECT _session_id, COUNT(*) as n FROM transcripts",
        "        GROUP BY _session_id ORDER BY n DESC LIMIT 10\"\n",
        "  # Recent tool calls",
        "  ccql \"SELECT tool_name, timestamp FROM transcripts",
        "        WHERE type='tool_use' ORDER BY timestamp DESC LIMIT 20\"\n",
        "  # All messages in a session",
        "  ccql \"SELECT type, SUBSTR(COALESCE(content, tool_name), 1, 50) as preview",
        "        FROM transcripts WHERE _session_id='SESSION_ID'\"\n",
        "  # Find sessions mentioning a topic",
        "  ccql \"SELECT DISTINCT _session_id FROM transcripts",
        "        WHERE content LIKE '%authentication%'\"\n",
    )

    section("TODO QUERIES")
    lines(
        "  # Pending todos",
        "  ccql \"SELECT content FROM todos WHERE status='pending'\"\n",
        "  # Todo counts by status",
        "  ccql \"SELECT status, COUNT(*) as n FROM todos GROUP BY status\"\n",
        "  # Todos by workspace",
        "  ccql \"SELECT _workspace_id, COUNT(*) as n FROM todos",
        "        GROUP BY _workspace_id ORDER BY n DESC\"\n",
    )

    section("OUTPUT FORMATS")
    lines(
        "  ccql -f json \"SELECT ...\"     # JSON array",
        "  ccql -f jsonl \"SELECT ...\"    # JSON lines (one per row)",
        "  ccql -f table \"SELECT ...\"    # Pretty table (default)",
        "  ccql -f raw \"SELECT ...\"      # Raw output\n",
    )

    section("WRITE OPERATIONS")
    lines(
        "  # Preview what would be deleted",
        "  ccql --dry-run \"DELETE FROM history WHERE timestamp < 1700000000000\"\n",
        "  # Execute deletion (creates backup first)",
        "  ccql --write \"DELETE FROM history WHERE timestamp < 1700000000000\"",
    )


def main(argv: Sequence[str] | None = None) -> int:
    """Run ccql with ``argv`` (default: the process arguments); return the exit status."""
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(_with_default_command(argv))

    if getattr(args, "verbose", False):
        logging.basicConfig(level=logging.WARNING)
        logging.getLogger("ccql").setLevel(logging.DEBUG)

    data_dir = getattr(args, "data_dir", None)
    if data_dir is None:
        env_dir = os.environ.get("CLAUDE_DATA_DIR")
        data_dir = Path(env_dir) if env_dir else Config.default_data_dir()
    fmt = getattr(args, "format", OutputFormat.TABLE.value)

    try:
        config = Config(data_dir)
        handler: Handler | None = args.handler
        if handler is None:
            parser.print_help()
            return 0
        handler(config, args, fmt)
    except (CcqlError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())