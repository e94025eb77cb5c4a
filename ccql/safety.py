"""Guards for SQL write operations: rejecting dangerous statements and backing up files."""

from __future__ import annotations

import os
import shutil
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .errors import BackupFailedError, SqlError

_DELETE_WITHOUT_WHERE = (
    "DELETE without WHERE clause would delete all rows. "
    "Use 'DELETE FROM table WHERE 1=1' if you really want to delete everything."
)
_UPDATE_WITHOUT_WHERE = (
    "UPDATE without WHERE clause would modify all rows. "
    "Use 'UPDATE table SET ... WHERE 1=1' if you really want to update everything."
)
_TRUNCATE = "TRUNCATE would delete all rows. Use DELETE with explicit WHERE clause instead."

_TABLE_KEYWORDS = ("DELETE FROM ", "UPDATE ", "INSERT INTO ", "TRUNCATE ")


@dataclass(frozen=True)
class SafetyCheckResult:
    """Outcome of a safety check: safe, or dangerous with the reason why."""

    reason: str | None = None

    @classmethod
    def safe(cls) -> "SafetyCheckResult":
        return cls()

    @classmethod
    def dangerous(cls, reason: str) -> "SafetyCheckResult":
        return cls(reason)

    @property
    def is_safe(self) -> bool:
        return self.reason is None

    @property
    def is_dangerous(self) -> bool:
        return self.reason is not None


class SafetyGuard:
    """Rejects statements that touch every row and backs up table files before writes."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.backup_enabled = True

    def disable_backups(self) -> None:
        self.backup_enabled = False

    def check_query(self, sql: str) -> SafetyCheckResult:
        normalized = normalize_sql(sql)
        if is_delete_without_where(normalized):
            return SafetyCheckResult.dangerous(_DELETE_WITHOUT_WHERE)
        if is_update_without_where(normalized):
            return SafetyCheckResult.dangerous(_UPDATE_WITHOUT_WHERE)
        if is_truncate(normalized):
            return SafetyCheckResult.dangerous(_TRUNCATE)
        return SafetyCheckResult.safe()

    def backup_table(self, table_name: str) -> Path | None:
        """Copy the table's file next to it; return the copy, or None if nothing was copied."""
        if not self.backup_enabled:
            return None
        source = self._table_path(table_name)
        if not source.exists():
            return None
        backup = create_backup_path(source)
        try:
            shutil.copyfile(source, backup)
        except OSError as exc:
            raise BackupFailedError(
                f"Failed to backup {source} to {backup}: {exc}"
            ) from exc
        return backup

    def restore_from_backup(self, table_name: str) -> bool:
        """Copy the backup over the table's file; False if there is no backup."""
        source = self._table_path(table_name)
        backup = create_backup_path(source)
        if not backup.exists():
            return False
        try:
            shutil.copyfile(backup, source)
        except OSError as exc:
            raise BackupFailedError(
                f"Failed to restore {source} from {backup}: {exc}"
            ) from exc
        return True

    def _table_path(self, table_name: str) -> Path:
        if table_name == "history":
            return self.config.history_file()
        if table_name == "stats":
            return self.config.stats_file()
        for suffix in (".jsonl", ".json"):
            candidate = self.config.data_dir / f"{table_name}{suffix}"
            if candidate.exists():
                return candidate
        raise SqlError(f"Cannot determine file path for table: {table_name}")


def normalize_sql(sql: str) -> str:
    """Collapse whitespace to single spaces and upper-case the statement."""
    return " ".join(sql.split()).upper()


def _extract_identifier(text: str) -> str | None:
    text = text.strip()
    end = len(text)
    for index, ch in enumerate(text):
        if not (ch.isalnum() or ch == "_"):
            end = index
            break
    return text[:end].lower() if end > 0 else None


def extract_table_name(sql: str) -> str | None:
    """The table a DELETE, UPDATE, INSERT or TRUNCATE statement modifies, lower-cased."""
    normalized = normalize_sql(sql)
    for keyword in _TABLE_KEYWORDS:
        position = normalized.find(keyword)
        if position != -1:
            return _extract_identifier(normalized[position + len(keyword):])
    return None


def is_delete_without_where(sql_normalized: str) -> bool:
    return sql_normalized.startswith("DELETE ") and " WHERE " not in sql_normalized


def is_update_without_where(sql_normalized: str) -> bool:
    return sql_normalized.startswith("UPDATE ") and " WHERE " not in sql_normalized


def is_truncate(sql_normalized: str) -> bool:
    return sql_normalized.startswith("TRUNCATE ")


def create_backup_path(original: str | os.PathLike) -> Path:
    """The backup location of a file: its name with '.bak' appended."""
    original = Path(original)
    return original.with_name(f"{original.name}.bak")