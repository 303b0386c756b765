"""Settings for the index: database and archive locations, the home archive, watching and logging.

Values come from three layers, later ones winning: field defaults, the YAML
file (``$NEXUS_CONFIG`` or ``~/.config/nexus/config.yaml``), then
``NEXUS_*`` environment variables. ``db_path`` and ``archives_dir`` default
to locations under ``data_dir``.
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from nexus.utils.ids import is_archive_key

ENV_PREFIX = "NEXUS_"
DEFAULT_CONFIG_PATH = Path("~/.config/nexus/config.yaml")
DEFAULT_DATA_DIR = Path("~/.nexus")

# YAML section -> {key in section: Settings field}
_SECTIONS: Mapping[str, Mapping[str, str]] = {
    "storage": {"data_dir": "data_dir", "db_path": "db_path", "archives_dir": "archives_dir"},
    "index": {"watch_archives": "watch_archives", "follow_on_open": "follow_on_open"},
    "home": {"archive": "home_archive"},
    "logging": {"level": "log_level", "json": "log_json"},
}


class Settings(BaseModel):
    """Runtime configuration for a ``Nexus`` handle and the HTTP app."""

    data_dir: Path = Field(default=DEFAULT_DATA_DIR)
    db_path: Path
    archives_dir: Path
    home_archive: str | None = None
    watch_archives: bool = True
    follow_on_open: bool = True
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @model_validator(mode="before")
    @classmethod
    def _locations_under_data_dir(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        filled = dict(data)
        base = Path(filled.get("data_dir") or DEFAULT_DATA_DIR).expanduser()
        filled.setdefault("db_path", base / "index.db")
        filled.setdefault("archives_dir", base / "archives")
        return filled

    @field_validator("data_dir", "db_path", "archives_dir", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("paths must be a path or string")

    @field_validator("home_archive", mode="before")
    @classmethod
    def _home_archive_url(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        value = value.strip()
        if not value:
            return None
        if is_archive_key(value.lower()):
            return f"dat://{value.lower()}"
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _known_level(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @classmethod
    def from_yaml(cls, path: Path | None = None, environ: Mapping[str, str] | None = None) -> "Settings":
        """Read the config file (if any), overlay the environment, validate."""
        environ = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        config_path = _resolve_config_path(path, environ)
        if config_path is not None and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                data.update(_from_file(yaml.safe_load(fh) or {}))
        data.update(_from_env(environ))
        return cls(**data)


def _resolve_config_path(path: Path | None, environ: Mapping[str, str]) -> Path | None:
    if path is not None:
        return path.expanduser()
    env_path = environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    default = DEFAULT_CONFIG_PATH.expanduser()
    return default if default.exists() else None


def _from_file(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Pick Settings fields out of the YAML document.

    Known sections are mapped key by key; top-level keys that already name a
    field are taken as-is. Anything else is ignored.
    """
    values: dict[str, Any] = {}
    for key, value in raw.items():
        section = _SECTIONS.get(key)
        if section is not None and isinstance(value, Mapping):
            for name, field_name in section.items():
                if name in value:
                    values[field_name] = value[name]
        elif key in Settings.model_fields:
            values[key] = value
    return values


def _from_env(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for key, value in environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            values[field_name] = value
    return values


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "DEFAULT_CONFIG_PATH", "DEFAULT_DATA_DIR"]
