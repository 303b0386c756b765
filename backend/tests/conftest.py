"""Test fixtures for Nexus."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest
import pytest_asyncio

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("NEXUS_DB_PATH", str(tmp_path / "index.db"))
    monkeypatch.setenv("NEXUS_ARCHIVES_DIR", str(tmp_path / "archives"))
    monkeypatch.setenv("NEXUS_WATCH_ARCHIVES", "false")
    monkeypatch.setenv("NEXUS_FOLLOW_ON_OPEN", "false")
    monkeypatch.delenv("NEXUS_HOME_ARCHIVE", raising=False)
    monkeypatch.delenv("NEXUS_CONFIG", raising=False)
    monkeypatch.delenv("NEXUS_DATA_DIR", raising=False)

    from nexus.api import dependencies as deps
    from nexus.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._NEXUS = None
    yield
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._NEXUS = None


@pytest.fixture
def archives_dir(tmp_path: Path) -> Path:
    path = tmp_path / "archives"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest_asyncio.fixture
async def nexus(archives_dir: Path, tmp_path: Path):
    """An open index with no home archive."""
    from nexus import Nexus

    handle = await Nexus.open(tmp_path / "db")
    yield handle
    await handle.close()


@pytest_asyncio.fixture
async def alice(nexus, archives_dir: Path):
    from nexus.archive import LocalArchive

    archive = await LocalArchive.create(title="Alice", root=archives_dir)
    await nexus.add_archive(archive)
    return archive


@pytest_asyncio.fixture
async def bob(nexus, archives_dir: Path):
    from nexus.archive import LocalArchive

    archive = await LocalArchive.create(title="Bob", root=archives_dir)
    await nexus.add_archive(archive)
    return archive
