"""URL normalization and slug helpers."""

from __future__ import annotations

import hashlib
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}
_DUPLICATE_SLASHES = re.compile(r"/{2,}")
_SLUG_SEPARATORS = re.compile(r"[/:?#&=]+")
_SLUG_UNSAFE = re.compile(r"[^A-Za-z0-9._\-!]+")
SLUG_MAX_LENGTH = 100


def normalize_url(value: str) -> str:
    """Canonicalize a URL so equivalent spellings compare equal.

    Lowercases scheme and host, drops default ports, duplicate and trailing
    slashes, and sorts the query string. The fragment, the ``www.`` prefix
    and every query parameter are kept.
    """
    url = value.strip()
    if url.startswith("//"):
        url = "http:" + url
    elif "://" not in url:
        url = "http://" + url

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").rstrip(".")
    if ":" in host:
        host = f"[{host}]"
    userinfo = ""
    if "@" in parts.netloc:
        userinfo = parts.netloc.rsplit("@", 1)[0] + "@"
    port = parts.port
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"

    path = _DUPLICATE_SLASHES.sub("/", parts.path).rstrip("/")
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, userinfo + host, path, query, parts.fragment))


def url_slug(value: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Map a URL onto a storage-safe identifier.

    The scheme is kept (``dat!`` and ``https!`` never collide). Slugs longer
    than ``max_length`` are truncated and suffixed with a digest of the
    full URL.
    """
    url = normalize_url(value)
    slug = _SLUG_SEPARATORS.sub("!", url)
    slug = _SLUG_UNSAFE.sub("_", slug).strip("!")
    if len(slug) > max_length:
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()[:16]
        slug = f"{slug[: max_length - len(digest) - 1]}-{digest}"
    return slug


__all__ = ["normalize_url", "url_slug", "SLUG_MAX_LENGTH"]
