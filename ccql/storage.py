"""Loading the data directory into SQLite tables and writing file tables back.

Every ``*.jsonl`` or ``*.json`` file directly inside the data directory is a
table named after the file (``stats-cache.json`` is the ``stats`` table).
``transcripts`` and ``todos`` are read-only virtual tables that merge every
file of their directory and add metadata columns naming where each row came
from.
"""

from __future__ import annotations

import base64
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from .config import Config
from .errors import SqlError

log = logging.getLogger(__name__)

_VIRTUAL_TABLES = ("transcripts", "todos")
_TABLE_SUFFIXES = (".jsonl", ".json")
_STATS_TABLE = "stats"
_TRANSCRIPT_META = ("_source_file", "_session_id")
_TODO_META = ("_source_file", "_workspace_id", "_agent_id")
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

Row = dict[str, Any]


def parse_todo_filename(filename: str) -> tuple[str, str]:
    """Split '<workspace>-agent-<agent>.json' into its ids; the agent is 'unknown' if absent."""
    name = filename[: -len(".json")] if filename.endswith(".json") else filename
    workspace, sep, agent = name.partition("-agent-")
    if not sep:
        return name, "unknown"
    return workspace, agent


def json_value_to_sql(value: Any) -> Any:
    """Convert a decoded JSON value to a value SQLite can store.

    Integers outside the 64-bit signed range become floats; arrays and objects
    are stored as compact JSON text.
    """
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, int):
        return value if _I64_MIN <= value <= _I64_MAX else float(value)
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _sorted_children(directory: Path) -> list[Path]:
    try:
        return sorted(directory.iterdir())
    except OSError as exc:
        raise SqlError(f"Failed to read {directory.name} dir: {exc}") from exc


def _with_meta(meta: Row, value: Any) -> Row:
    row = dict(meta)
    if isinstance(value, dict):
        row.update(value)
    return row


class CompositeStorage:
    """File-backed tables of the data directory plus the virtual multi-file tables."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self._kinds: dict[str, dict[str, set[str]]] = {}
        self._loaded: set[str] = set()
        self._single_object: set[str] = set()

    def is_virtual_table(self, table_name: str) -> bool:
        return table_name in _VIRTUAL_TABLES

    def file_tables(self) -> dict[str, Path]:
        """Table name to file for every JSON or JSON Lines file in the data directory."""
        stats_file = self.config.stats_file()
        chosen: dict[str, tuple[int, Path]] = {}
        for path in _sorted_children(self.config.data_dir):
            if path.suffix not in _TABLE_SUFFIXES or not path.is_file():
                continue
            if path == stats_file:
                name, rank = _STATS_TABLE, 2
            else:
                name, rank = path.stem, 1 if path.suffix == ".jsonl" else 0
            if self.is_virtual_table(name):
                continue
            current = chosen.get(name)
            if current is None or rank > current[0]:
                chosen[name] = (rank, path)
        return {name: path for name, (_, path) in chosen.items()}

    def table_names(self) -> list[str]:
        names = list(self.file_tables())
        if self.config.transcripts_dir().exists():
            names.append("transcripts")
        if self.config.todos_dir().exists():
            names.append("todos")
        return names

    def scan_transcripts(self) -> list[tuple[int, Row]]:
        """One row per parsable line of every transcript file."""
        directory = self.config.transcripts_dir()
        if not directory.exists():
            return []
        rows: list[tuple[int, Row]] = []
        for path in _sorted_children(directory):
            if path.suffix != ".jsonl":
                continue
            source_file = path.name
            if source_file.startswith("ses_"):
                session_id = source_file[len("ses_"): -len(".jsonl")]
            else:
                session_id = source_file
            meta = {"_source_file": source_file, "_session_id": session_id}
            try:
                with path.open(encoding="utf-8") as handle:
                    for line in handle:
                        try:
                            value = json.loads(line)
                        except ValueError:
                            continue
                        rows.append((len(rows), _with_meta(meta, value)))
            except (OSError, UnicodeDecodeError) as exc:
                log.debug("Stopped reading %s: %s", source_file, exc)
        return rows

    def scan_todos(self) -> list[tuple[int, Row]]:
        """One row per todo item of every todo file."""
        directory = self.config.todos_dir()
        if not directory.exists():
            return []
        rows: list[tuple[int, Row]] = []
        for path in _sorted_children(directory):
            if path.suffix != ".json":
                continue
            source_file = path.name
            workspace_id, agent_id = parse_todo_filename(source_file)
            meta = {
                "_source_file": source_file,
                "_workspace_id": workspace_id,
                "_agent_id": agent_id,
            }
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                log.debug("Failed to read %s: %s", source_file, exc)
                continue
            if isinstance(data, list):
                items = data
            elif isinstance(data, dict):
                items = [data]
            else:
                items = []
            for item in items:
                rows.append((len(rows), _with_meta(meta, item)))
        return rows

    def scan_data(self, table_name: str) -> list[tuple[int, Row]]:
        """All rows of a table, keyed by their position."""
        if table_name == "transcripts":
            return self.scan_transcripts()
        if table_name == "todos":
            return self.scan_todos()
        path = self.file_tables().get(table_name)
        if path is None:
            raise SqlError(f"table not found: {table_name}")
        return list(enumerate(self._read_file_table(table_name, path)))

    def _read_file_table(self, table_name: str, path: Path) -> list[Row]:
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise SqlError(f"Failed to read {path}: {exc}") from exc
        try:
            if path.suffix == ".jsonl":
                values = [json.loads(line) for line in content.splitlines() if line.strip()]
            else:
                data = json.loads(content)
                if isinstance(data, dict):
                    self._single_object.add(table_name)
                    values = [data]
                elif isinstance(data, list):
                    values = data
                else:
                    raise SqlError(f"{path.name}: expected a JSON array or object")
        except ValueError as exc:
            raise SqlError(f"Failed to parse {path.name}: {exc}") from exc
        for value in values:
            if not isinstance(value, dict):
                raise SqlError(f"{path.name}: every row must be a JSON object")
        return values

    def load_into(self, conn: sqlite3.Connection) -> list[str]:
        """Create and fill a table in ``conn`` for every table; return their names."""
        loaded = []
        for name, path in self.file_tables().items():
            if self._create_and_fill(conn, name, self._read_file_table(name, path), ()):
                loaded.append(name)
        for name, meta in (("transcripts", _TRANSCRIPT_META), ("todos", _TODO_META)):
            rows = [row for _, row in self.scan_data(name)]
            if self._create_and_fill(conn, name, rows, meta):
                loaded.append(name)
        return loaded

    def _create_and_fill(self, conn: sqlite3.Connection, name: str,
                         rows: list[Row], base_columns: tuple[str, ...]) -> bool:
        columns = list(base_columns)
        canonical = {column.lower(): column for column in columns}
        kinds: dict[str, set[str]] = {}
        records = []
        for row in rows:
            record: Row = {}
            for key, value in row.items():
                column = canonical.get(key.lower())
                if column is None:
                    column = canonical[key.lower()] = key
                    columns.append(key)
                if isinstance(value, bool):
                    kinds.setdefault(column, set()).add("bool")
                elif isinstance(value, (list, dict)):
                    kinds.setdefault(column, set()).add("json")
                record[column] = json_value_to_sql(value)
            records.append(record)
        if not columns:
            log.debug("Table %s has no rows and no columns; not created", name)
            return False
        quoted = _quote(name)
        conn.execute(f"DROP TABLE IF EXISTS {quoted}")
        conn.execute(f"CREATE TABLE {quoted} ({', '.join(_quote(c) for c in columns)})")
        placeholders = ", ".join("?" for _ in columns)
        conn.executemany(
            f"INSERT INTO {quoted} VALUES ({placeholders})",
            [tuple(record.get(column) for column in columns) for record in records],
        )
        self._kinds[name] = kinds
        self._loaded.add(name)
        return True

    def _restore_value(self, table_name: str, column: str, value: Any) -> Any:
        kinds = self._kinds.get(table_name, {}).get(column, set())
        if isinstance(value, bytes):
            return base64.b64encode(value).decode("ascii")
        if "json" in kinds and isinstance(value, str):
            try:
                parsed = json.loads(value)
            except ValueError:
                return value
            return parsed if isinstance(parsed, (list, dict)) else value
        if "bool" in kinds and isinstance(value, int) and value in (0, 1):
            return bool(value)
        return value

    def save_table(self, conn: sqlite3.Connection, table_name: str) -> Path | None:
        """Write a file table from ``conn`` back to its file.

        A loaded table that no longer exists in ``conn`` has its file removed;
        the path written is returned, or None when nothing was written.
        """
        if self.is_virtual_table(table_name):
            raise SqlError("Write operations on virtual multi-file tables not yet supported")
        path = self.file_tables().get(table_name, self.config.data_dir / f"{table_name}.jsonl")
        present = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,)
        ).fetchone()
        if present is None:
            if table_name in self._loaded and path.exists():
                path.unlink()
                self._loaded.discard(table_name)
            return None
        cursor = conn.execute(f"SELECT * FROM {_quote(table_name)}")
        names = [description[0] for description in cursor.description]
        rows = [
            {
                name: self._restore_value(table_name, name, value)
                for name, value in zip(names, values)
                if value is not None
            }
            for values in cursor.fetchall()
        ]
        try:
            if path.suffix == ".json":
                data: Any = rows
                if table_name in self._single_object and len(rows) == 1:
                    data = rows[0]
                path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n",
                                encoding="utf-8")
            else:
                lines = [json.dumps(row, separators=(",", ":"), ensure_ascii=False)
                         for row in rows]
                path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        except OSError as exc:
            raise SqlError(f"Failed to write {path}: {exc}") from exc
        return path