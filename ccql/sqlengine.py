"""SQL queries over the Claude Code data files, backed by an in-memory SQLite database."""

from __future__ import annotations

import base64
import math
import re
import sqlite3
import sys
from dataclasses import dataclass
from typing import Any

from .config import Config
from .errors import CcqlError, DangerousOperationError, SqlError, WriteNotAllowedError
from .safety import SafetyGuard, extract_table_name, normalize_sql
from .storage import CompositeStorage

_WRITE_KEYWORDS = ("INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER", "TRUNCATE")
_DDL_TARGET = re.compile(
    r"\s*(?:DROP|ALTER|CREATE)\s+TABLE\s+(?:IF\s+(?:NOT\s+)?EXISTS\s+)?[\"`\[]?(\w+)",
    re.IGNORECASE,
)
_VIRTUAL_WRITE = "Write operations on virtual multi-file tables not yet supported"


def is_write_operation(sql: str) -> bool:
    """True when the statement starts with a keyword that modifies data or schema."""
    return sql.strip().upper().startswith(_WRITE_KEYWORDS)


@dataclass
class SqlOptions:
    write_enabled: bool = False
    dry_run: bool = False


def _to_json(value: Any) -> Any:
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _write_target(sql: str) -> str | None:
    name = extract_table_name(sql)
    if name is None:
        match = _DDL_TARGET.match(sql)
        if match:
            name = match.group(1).lower()
    return name


def _table_set(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {name for (name,) in rows}


class SqlEngine:
    """Runs SQL against the data directory, guarding and persisting write operations."""

    def __init__(self, config: Config, options: SqlOptions | None = None) -> None:
        self.config = config
        self.options = options or SqlOptions()
        self.write_enabled = self.options.write_enabled
        self.safety_guard = SafetyGuard(config)
        self.storage = CompositeStorage(config)
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> "SqlEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            conn = sqlite3.connect(":memory:")
            try:
                self.storage.load_into(conn)
            except (CcqlError, sqlite3.Error, OSError) as exc:
                conn.close()
                detail = exc.detail if isinstance(exc, CcqlError) else exc
                raise SqlError(f"Failed to initialize storage: {detail}") from exc
            self._conn = conn
        return self._conn

    def _backup(self, table_name: str) -> None:
        try:
            backup = self.safety_guard.backup_table(table_name)
        except (CcqlError, OSError):
            return
        if backup is not None:
            print(f"Backup created: {backup}", file=sys.stderr)

    def execute(self, sql: str) -> list[Any]:
        """Run one statement and return its rows, or a summary of what it changed."""
        is_write = is_write_operation(sql)
        if is_write and not self.write_enabled:
            raise WriteNotAllowedError(
                "Write operations require --write flag. Use --dry-run to preview changes."
            )

        target = None
        if is_write:
            check = self.safety_guard.check_query(sql)
            if check.is_dangerous:
                raise DangerousOperationError(check.reason)
            backup_name = extract_table_name(sql)
            if backup_name is not None:
                self._backup(backup_name)
            target = _write_target(sql)
            if target is not None and self.storage.is_virtual_table(target):
                raise SqlError(_VIRTUAL_WRITE)

        conn = self._connection()
        before = _table_set(conn)
        try:
            cursor = conn.execute(sql)
            labels = [d[0] for d in cursor.description] if cursor.description else None
            rows = cursor.fetchall() if labels is not None else []
            affected = max(cursor.rowcount, 0)
            conn.commit()
        except (sqlite3.Error, sqlite3.Warning) as exc:
            conn.rollback()
            raise SqlError(f"SQL execution error: {exc}") from exc

        after = _table_set(conn)
        if is_write:
            self._persist(conn, target, before, after)

        if labels is not None:
            return [
                {label: _to_json(value) for label, value in zip(labels, row)}
                for row in rows
            ]
        return [self._summary(sql, affected, before, after)]

    def _persist(self, conn: sqlite3.Connection, target: str | None,
                 before: set[str], after: set[str]) -> None:
        changed = before ^ after
        if target is not None:
            by_lower = {name.lower(): name for name in after}
            if target.lower() in by_lower:
                changed.add(by_lower[target.lower()])
        for name in sorted(changed):
            if not self.storage.is_virtual_table(name):
                self.storage.save_table(conn, name)

    @staticmethod
    def _summary(sql: str, affected: int, before: set[str], after: set[str]) -> dict:
        keyword = normalize_sql(sql).split(" ", 1)[0]
        if keyword in ("INSERT", "UPDATE", "DELETE"):
            return {"operation": keyword, "rows_affected": affected}
        if keyword == "CREATE":
            return {"operation": "CREATE", "success": True}
        if keyword == "DROP":
            return {"operation": "DROP", "tables_dropped": len(before - after)}
        return {"result": "ok"}

    def list_tables(self) -> list[str]:
        tables = []
        if self.config.history_file().exists():
            tables.append("history")
        if self.config.stats_file().exists():
            tables.append("stats")
        if self.config.transcripts_dir().exists():
            tables.append("transcripts")
        if self.config.todos_dir().exists():
            tables.append("todos")
        return tables