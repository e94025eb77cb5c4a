from pathlib import Path

import pytest

from ccql.config import Config
from ccql.errors import InvalidPathError


def test_paths_are_under_data_dir(tmp_path):
    config = Config(tmp_path)
    assert config.history_file() == tmp_path / "history.jsonl"
    assert config.transcripts_dir() == tmp_path / "transcripts"
    assert config.todos_dir() == tmp_path / "todos"
    assert config.projects_dir() == tmp_path / "projects"
    assert config.stats_file() == tmp_path / "stats-cache.json"


def test_accepts_string_path(tmp_path):
    config = Config(str(tmp_path))
    assert config.data_dir == tmp_path


def test_missing_directory_rejected(tmp_path):
    missing = tmp_path / "nope"
    with pytest.raises(InvalidPathError) as info:
        Config(missing)
    assert "Data directory does not exist" in str(info.value)


def test_default_data_dir_uses_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    assert Config.default_data_dir() == Path(tmp_path) / ".claude"