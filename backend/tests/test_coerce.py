"""Tests for value coercion and URL helpers."""

from __future__ import annotations

import pytest

from nexus.core.errors import ValidationError
from nexus.schema import coerce
from nexus.utils.urls import normalize_url, url_slug

KEY = "ab" * 32


def test_normalize_url_canonical_forms() -> None:
    assert normalize_url("HTTP://Example.com:80//a//b/?b=2&a=1#frag") == "http://example.com/a/b?a=1&b=2#frag"
    assert normalize_url("https://x.com/") == normalize_url("https://x.com")
    assert normalize_url("beakerbrowser.com/docs/") == "http://beakerbrowser.com/docs"
    assert normalize_url("https://www.example.com:8443/") == "https://www.example.com:8443"


def test_url_slug_keeps_scheme() -> None:
    assert url_slug("https://beakerbrowser.com/docs") == "https!beakerbrowser.com!docs"
    assert url_slug("dat://beakerbrowser.com/docs") != url_slug("https://beakerbrowser.com/docs")


def test_url_slug_truncates_long_urls() -> None:
    first = url_slug("https://example.com/" + "a" * 300)
    second = url_slug("https://example.com/" + "a" * 299 + "b")
    assert len(first) <= 100
    assert first != second


def test_string_and_number() -> None:
    assert coerce.string(5) == "5"
    assert coerce.string(True) is None
    assert coerce.number("12") == 12
    assert coerce.number("1.5") == 1.5
    assert coerce.number("nope") is None
    with pytest.raises(ValidationError):
        coerce.number(None, required=True)
    with pytest.raises(ValidationError):
        coerce.string(None, required=True)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(2, 1), (1, 1), (0, 0), (-0.2, -1), (-7, -1), ("x", 0), (None, 0)],
)
def test_vote_is_clamped_to_sign(raw, expected) -> None:
    assert coerce.vote(raw) == expected


def test_archive_url_accepts_references() -> None:
    class Handle:
        url = f"dat://{KEY}/"

    assert coerce.archive_url(KEY) == f"dat://{KEY}"
    assert coerce.archive_url(f"DAT://{KEY.upper()}/profile.json") == f"dat://{KEY}"
    assert coerce.archive_url({"url": f"dat://{KEY}"}) == f"dat://{KEY}"
    assert coerce.archive_url(Handle()) == f"dat://{KEY}"
    assert coerce.archive_url(None, required=False) is None
    with pytest.raises(ValidationError):
        coerce.archive_url("")


def test_record_and_subject_urls() -> None:
    record = {"_url": f"dat://{KEY}/posts/1.json", "text": "hi"}
    assert coerce.record_url(record) == f"dat://{KEY}/posts/1.json"
    assert coerce.subject_url(record) == f"dat://{KEY}/posts/1.json"
    entry = {"_url": f"dat://{KEY}/published-archives/x.json", "url": "dat://" + "ab" * 32}
    assert coerce.record_url(entry) == f"dat://{KEY}/published-archives/x.json"
    assert coerce.subject_url(entry) == "dat://" + "ab" * 32
    assert coerce.subject_url({"url": "https://x.com/"}) == "https://x.com"
    assert coerce.subject_url("HTTPS://X.com") == "https://x.com"
    with pytest.raises(ValidationError):
        coerce.subject_url(None)
    with pytest.raises(ValidationError):
        coerce.record_url(42)


def test_string_array_and_follows() -> None:
    assert coerce.string_array("solo") == ["solo"]
    assert coerce.string_array(["a", 3, "b"]) == ["a", "b"]
    assert coerce.string_array(None) == []
    follows = coerce.follows([f"dat://{KEY.upper()}", {"url": "cd" * 32, "name": "Bob"}, {"bad": 1}, ""])
    assert follows == [
        {"url": f"dat://{KEY}", "name": None},
        {"url": f"dat://{'cd' * 32}", "name": "Bob"},
    ]
