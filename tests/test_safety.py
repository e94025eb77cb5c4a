from pathlib import Path

import pytest

from ccql.config import Config
from ccql.errors import SqlError
from ccql.safety import (
    SafetyCheckResult,
    SafetyGuard,
    create_backup_path,
    extract_table_name,
    is_delete_without_where,
    is_truncate,
    is_update_without_where,
    normalize_sql,
)


@pytest.fixture
def config(tmp_path):
    return Config(tmp_path)


@pytest.fixture
def guard(config):
    return SafetyGuard(config)


def test_is_delete_without_where():
    assert is_delete_without_where(normalize_sql("DELETE FROM history"))
    assert not is_delete_without_where(normalize_sql("DELETE FROM history WHERE id = 1"))
    assert is_delete_without_where(normalize_sql("  delete from history  "))


def test_is_update_without_where():
    assert is_update_without_where(normalize_sql("UPDATE history SET status = 'done'"))
    assert not is_update_without_where(
        normalize_sql("UPDATE history SET status = 'done' WHERE id = 1")
    )


def test_extract_table_name():
    assert extract_table_name("DELETE FROM history WHERE id = 1") == "history"
    assert extract_table_name("UPDATE todos SET status = 'done'") == "todos"
    assert extract_table_name("INSERT INTO history (col) VALUES (1)") == "history"
    assert extract_table_name("SELECT * FROM foo") is None


def test_extract_table_name_truncate_and_case():
    assert extract_table_name("truncate My_Table") == "my_table"


def test_create_backup_path():
    assert create_backup_path(Path("/data/history.jsonl")) == Path("/data/history.jsonl.bak")
    assert create_backup_path(Path("/data/stats.json")) == Path("/data/stats.json.bak")


def test_create_backup_path_without_extension():
    assert create_backup_path(Path("/data/notes")) == Path("/data/notes.bak")


def test_normalize_sql_collapses_whitespace():
    assert normalize_sql("  select *\n\tfrom  x ") == "SELECT * FROM X"


def test_is_truncate():
    assert is_truncate(normalize_sql("truncate history"))
    assert not is_truncate(normalize_sql("DELETE FROM history"))


def test_check_query_delete_without_where(guard):
    result = guard.check_query("DELETE FROM history")
    assert result.is_dangerous
    assert result.reason.startswith("DELETE without WHERE clause")


def test_check_query_update_without_where(guard):
    result = guard.check_query("update history set display = 'x'")
    assert result.is_dangerous
    assert result.reason.startswith("UPDATE without WHERE clause")


def test_check_query_truncate(guard):
    result = guard.check_query("TRUNCATE history")
    assert result.reason.startswith("TRUNCATE would delete all rows")


def test_check_query_safe(guard):
    assert guard.check_query("DELETE FROM history WHERE timestamp < 5") == SafetyCheckResult()
    assert guard.check_query("SELECT * FROM history").is_safe


def test_backup_table_copies_history(config, guard):
    config.history_file().write_text('{"display":"a","timestamp":1}\n', encoding="utf-8")
    backup = guard.backup_table("history")
    assert backup == config.data_dir / "history.jsonl.bak"
    assert backup.read_text(encoding="utf-8") == '{"display":"a","timestamp":1}\n'


def test_backup_table_missing_file_returns_none(config, guard):
    assert guard.backup_table("history") is None
    assert not (config.data_dir / "history.jsonl.bak").exists()


def test_backup_table_disabled(config, guard):
    config.history_file().write_text("{}\n", encoding="utf-8")
    guard.disable_backups()
    assert guard.backup_table("history") is None
    assert not (config.data_dir / "history.jsonl.bak").exists()


def test_backup_table_custom_json_table(config, guard):
    (config.data_dir / "notes.json").write_text("[]", encoding="utf-8")
    assert guard.backup_table("notes") == config.data_dir / "notes.json.bak"


def test_backup_table_unknown_table_raises(guard):
    with pytest.raises(SqlError, match="Cannot determine file path for table: nothing"):
        guard.backup_table("nothing")


def test_restore_from_backup(config, guard):
    history = config.history_file()
    history.write_text("original\n", encoding="utf-8")
    guard.backup_table("history")
    history.write_text("changed\n", encoding="utf-8")
    assert guard.restore_from_backup("history") is True
    assert history.read_text(encoding="utf-8") == "original\n"


def test_restore_without_backup_returns_false(config, guard):
    config.history_file().write_text("x\n", encoding="utf-8")
    assert guard.restore_from_backup("history") is False