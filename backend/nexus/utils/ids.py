"""ID helpers."""

from __future__ import annotations

import re
import secrets

ARCHIVE_KEY_RE = re.compile(r"^[0-9a-f]{64}$")


def new_archive_key() -> str:
    """Generate a random 32-byte archive key as lowercase hex."""
    return secrets.token_hex(32)


def is_archive_key(value: str) -> bool:
    return bool(ARCHIVE_KEY_RE.match(value))
