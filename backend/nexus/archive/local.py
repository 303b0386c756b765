"""Archives stored as plain folders under the configured archives directory."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import orjson

from nexus.archive.base import Archive, ArchiveInfo, ArchiveStat
from nexus.core.config import get_settings
from nexus.core.errors import ArchiveNotFoundError, ArchiveNotWritableError
from nexus.core.logging import get_logger
from nexus.utils.ids import is_archive_key, new_archive_key

logger = get_logger(__name__)

MANIFEST_NAME = "dat.json"
URL_SCHEME = "dat"


def archive_key(url: str) -> str:
    """Extract the hex key from ``dat://<key>`` (or a bare key)."""
    candidate = url.strip()
    if "://" in candidate:
        candidate = urlsplit(candidate).netloc
    candidate = candidate.split("+", 1)[0].lower()
    if not is_archive_key(candidate):
        raise ArchiveNotFoundError(f"Not a local archive URL: {url}")
    return candidate


class LocalArchive(Archive):
    """Folder-backed archive; ``dat.json`` holds its title, description and type."""

    def __init__(self, key: str, root: Path, writable: bool = True) -> None:
        self.key = key
        self.root = root.expanduser()
        self.writable = writable
        self.url = f"{URL_SCHEME}://{key}"

    @property
    def local_path(self) -> Path:
        return self.root / self.key

    @classmethod
    async def create(
        cls,
        title: str | None = None,
        description: str | None = None,
        type: list[str] | None = None,
        root: Path | None = None,
    ) -> "LocalArchive":
        archive = cls(new_archive_key(), root or get_settings().archives_dir)
        await asyncio.to_thread(archive.local_path.mkdir, parents=True, exist_ok=False)
        await archive._write_manifest({"url": archive.url, "title": title, "description": description, "type": type or []})
        logger.info("Created archive %s", archive.url)
        return archive

    @classmethod
    async def load(cls, url: str, root: Path | None = None, writable: bool = True) -> "LocalArchive":
        archive = cls(archive_key(url), root or get_settings().archives_dir, writable=writable)
        if not await asyncio.to_thread(archive.local_path.is_dir):
            raise ArchiveNotFoundError(f"No archive found for {url}")
        return archive

    # File operations -------------------------------------------------

    async def read_file(self, path: str, encoding: str | None = "utf-8") -> str | bytes:
        target = self._resolve(path)
        if encoding is None:
            return await asyncio.to_thread(target.read_bytes)
        return await asyncio.to_thread(target.read_text, encoding)

    async def write_file(self, path: str, data: str | bytes) -> None:
        self._check_writable()
        target = self._resolve(path)
        payload = data.encode("utf-8") if isinstance(data, str) else data
        await asyncio.to_thread(_atomic_write, target, payload)

    async def unlink(self, path: str) -> None:
        self._check_writable()
        await asyncio.to_thread(self._resolve(path).unlink)

    async def mkdir(self, path: str) -> None:
        self._check_writable()
        await asyncio.to_thread(self._resolve(path).mkdir, parents=True, exist_ok=True)

    async def stat(self, path: str) -> ArchiveStat:
        target = self._resolve(path)
        result = await asyncio.to_thread(target.stat)
        return ArchiveStat(
            path=_archive_path(path),
            is_directory=target.is_dir(),
            size=result.st_size,
            mtime_ms=int(result.st_mtime * 1000),
        )

    async def readdir(self, path: str) -> list[str]:
        target = self._resolve(path)
        if not await asyncio.to_thread(target.is_dir):
            return []
        names = await asyncio.to_thread(lambda: sorted(entry.name for entry in target.iterdir()))
        return names

    # Manifest --------------------------------------------------------

    async def configure(
        self,
        title: str | None = None,
        description: str | None = None,
        type: list[str] | None = None,
    ) -> None:
        self._check_writable()
        manifest = await self._read_manifest()
        if title is not None:
            manifest["title"] = title
        if description is not None:
            manifest["description"] = description
        if type is not None:
            manifest["type"] = list(type)
        await self._write_manifest(manifest)

    async def get_info(self) -> ArchiveInfo:
        manifest = await self._read_manifest()
        kinds = manifest.get("type") or []
        if isinstance(kinds, str):
            kinds = [kinds]
        return ArchiveInfo(
            url=self.url,
            title=manifest.get("title"),
            description=manifest.get("description"),
            type=[kind for kind in kinds if isinstance(kind, str)],
            writable=self.writable,
        )

    async def _read_manifest(self) -> dict[str, Any]:
        try:
            raw = await self.read_file(f"/{MANIFEST_NAME}", encoding=None)
        except FileNotFoundError:
            return {}
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Ignoring malformed manifest in %s", self.url)
            return {}
        return data if isinstance(data, dict) else {}

    async def _write_manifest(self, manifest: dict[str, Any]) -> None:
        payload = orjson.dumps(manifest, option=orjson.OPT_INDENT_2)
        await asyncio.to_thread(_atomic_write, self.local_path / MANIFEST_NAME, payload)

    # Helpers ---------------------------------------------------------

    def _check_writable(self) -> None:
        if not self.writable:
            raise ArchiveNotWritableError(f"Archive {self.url} is not writable")

    def _resolve(self, path: str) -> Path:
        base = self.local_path.resolve()
        target = (base / path.lstrip("/")).resolve()
        if target != base and base not in target.parents:
            raise ValueError(f"Path escapes archive: {path}")
        return target


def _archive_path(path: str) -> str:
    return "/" + path.lstrip("/")


def _atomic_write(target: Path, payload: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.tmp")
    tmp.write_bytes(payload)
    tmp.replace(target)


__all__ = ["LocalArchive", "archive_key", "MANIFEST_NAME"]
