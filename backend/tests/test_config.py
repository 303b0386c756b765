"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from nexus.core.config import Settings, get_settings


def test_yaml_and_env_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "config.yaml"
    config.write_text(
        "storage:\n"
        "  db_path: /ignored/index.db\n"
        "  archives_dir: ~/nexus-archives\n"
        "home:\n"
        "  archive: ''\n"
        "index:\n"
        "  follow_on_open: false\n"
        "logging:\n"
        "  level: DEBUG\n"
        "  json: false\n"
    )
    monkeypatch.setenv("NEXUS_CONFIG", str(config))
    monkeypatch.delenv("NEXUS_ARCHIVES_DIR", raising=False)
    monkeypatch.delenv("NEXUS_FOLLOW_ON_OPEN", raising=False)

    settings = Settings.from_yaml()
    assert settings.db_path == tmp_path / "index.db"
    assert settings.archives_dir == Path.home() / "nexus-archives"
    assert settings.home_archive is None
    assert settings.follow_on_open is False
    assert settings.log_level == "DEBUG"
    assert settings.log_json is False


def test_get_settings_is_cached(tmp_path: Path) -> None:
    first = get_settings()
    assert get_settings() is first
    assert first.watch_archives is False
    assert first.archives_dir == tmp_path / "archives"


def test_locations_default_under_data_dir(tmp_path: Path) -> None:
    missing = tmp_path / "missing.yaml"
    settings = Settings.from_yaml(missing, environ={"NEXUS_DATA_DIR": str(tmp_path / "data")})
    assert settings.db_path == tmp_path / "data" / "index.db"
    assert settings.archives_dir == tmp_path / "data" / "archives"

    settings = Settings.from_yaml(missing, environ={"NEXUS_DATA_DIR": str(tmp_path), "NEXUS_DB_PATH": str(tmp_path / "x.db")})
    assert settings.db_path == tmp_path / "x.db"
    assert settings.archives_dir == tmp_path / "archives"


def test_home_archive_key_and_log_level_are_normalized(tmp_path: Path) -> None:
    key = "AB" * 32
    settings = Settings.from_yaml(
        path=tmp_path / "missing.yaml",
        environ={"NEXUS_HOME_ARCHIVE": f" {key} ", "NEXUS_LOG_LEVEL": "warning", "NEXUS_HOST": "http://x"},
    )
    assert settings.home_archive == "dat://" + "ab" * 32
    assert settings.log_level == "WARNING"
    with pytest.raises(ValueError):
        Settings.from_yaml(path=tmp_path / "missing.yaml", environ={"NEXUS_LOG_LEVEL": "chatty"})


def test_unknown_yaml_sections_are_ignored(tmp_path: Path) -> None:
    config = tmp_path / "config.yaml"
    config.write_text("retrieval:\n  top_k: 3\nwatch_archives: false\nhome: not-a-section\n")
    settings = Settings.from_yaml(path=config, environ={})
    assert settings.watch_archives is False
    assert settings.home_archive is None
