"""Coercion of untrusted field values into their canonical form.

Every function takes the raw value plus ``required``. Absent or malformed
values become ``None`` (or an empty list), unless ``required`` is set, in
which case a ``ValidationError`` is raised.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

from nexus.core.errors import ValidationError
from nexus.utils.urls import normalize_url, url_slug

DEFAULT_ARCHIVE_SCHEME = "dat"


def string(value: Any, required: bool = False) -> str | None:
    if isinstance(value, bool):
        value = None
    elif isinstance(value, (int, float)):
        value = str(value)
    if isinstance(value, str):
        return value
    if required:
        raise ValidationError("Missing field (string)")
    return None


def number(value: Any, required: bool = False) -> int | float | None:
    result: int | float | None = None
    if isinstance(value, bool):
        result = None
    elif isinstance(value, (int, float)):
        result = value
    elif isinstance(value, str) and value.strip():
        try:
            result = float(value.strip())
        except ValueError:
            result = None
    if isinstance(result, float):
        if math.isnan(result):
            result = None
        elif result.is_integer():
            result = int(result)
    if result is None and required:
        raise ValidationError("Invalid field, must be a number")
    return result


def mapping(value: Any, required: bool = False) -> dict[str, Any] | None:
    if isinstance(value, Mapping):
        return dict(value)
    if required:
        raise ValidationError("Missing field (object)")
    return None


def path(value: Any) -> str | None:
    result = string(value)
    if result and not result.startswith("/"):
        result = "/" + result
    return result


def url(value: Any, required: bool = False) -> str | None:
    result = string(value, required=required)
    if not result:
        if required:
            raise ValidationError("Missing field (url)")
        return None
    try:
        return normalize_url(result)
    except ValueError as exc:
        raise ValidationError(f"Invalid URL: {result}") from exc


def vote(value: Any) -> int:
    """Clamp any numeric input to its sign: 1, -1 or 0."""
    result = number(value) or 0
    if result > 0:
        return 1
    if result < 0:
        return -1
    return 0


def archive_url(value: Any, required: bool = True) -> str | None:
    """Resolve an archive reference (URL string, bare key, or object with ``.url``)."""
    raw: Any = value
    if raw is not None and not isinstance(raw, str):
        if isinstance(raw, Mapping):
            raw = raw.get("url")
        else:
            raw = getattr(raw, "url", None)
    if isinstance(raw, str) and raw.strip():
        candidate = raw.strip()
        if "://" not in candidate:
            candidate = f"{DEFAULT_ARCHIVE_SCHEME}://{candidate}"
        parts = urlsplit(candidate)
        if parts.netloc:
            return f"{parts.scheme.lower()}://{parts.netloc.lower()}"
    if required:
        raise ValidationError("Not a valid archive")
    return None


def record_url(value: Any, required: bool = True) -> str | None:
    """Resolve a record reference (URL string, or a record carrying ``_url``)."""
    if isinstance(value, str) and value:
        return value
    if isinstance(value, Mapping) and isinstance(value.get("_url"), str):
        return value["_url"]
    accessor = getattr(value, "record_url", None)
    if isinstance(accessor, str):
        return accessor
    if required:
        raise ValidationError("Not a valid record")
    return None


def subject_url(value: Any, required: bool = True) -> str | None:
    """Normalize a vote/comment subject.

    Accepted shapes: a bare URL string, a mapping, or an object. A mapping
    with a ``url`` resolves through it, so a published-archive entry names
    the archive it points at; other records resolve through ``_url``. Objects
    resolve through ``record_url``, then ``url`` (archive handles). The result
    is URL-normalized.
    """
    raw: Any = None
    if isinstance(value, str):
        raw = value
    elif isinstance(value, Mapping):
        raw = value.get("url") or value.get("_url")
    elif value is not None:
        raw = getattr(value, "record_url", None) or getattr(value, "url", None)
    if not isinstance(raw, str) or not raw:
        if required:
            raise ValidationError("Subject is required")
        return None
    return url(raw, required=required)


def slug(value: Any) -> str:
    raw = string(value, required=True)
    try:
        return url_slug(raw)
    except ValueError as exc:
        raise ValidationError(f"Cannot derive an id from {raw!r}") from exc


def string_array(value: Any) -> list[str]:
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    return [item for item in items if isinstance(item, str)]


def follows(value: Any) -> list[dict[str, Any]]:
    """Normalize follow entries to ``{"url", "name"}`` dicts, dropping invalid ones."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    result: list[dict[str, Any]] = []
    for item in items:
        if not item:
            continue
        if isinstance(item, str):
            target = archive_url(item, required=False)
            name = None
        elif isinstance(item, Mapping) and isinstance(item.get("url"), str):
            target = archive_url(item["url"], required=False)
            name = string(item.get("name"))
        else:
            continue
        if target:
            result.append({"url": target, "name": name})
    return result


__all__ = [
    "string",
    "number",
    "mapping",
    "path",
    "url",
    "vote",
    "archive_url",
    "record_url",
    "subject_url",
    "slug",
    "string_array",
    "follows",
]
