from __future__ import annotations

import logging

import orjson

from nexus.core.logging import JsonFormatter, PlainFormatter, log_context


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("nexus.index", logging.INFO, __file__, 1, "Indexed source %s", ("dat://a",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_log_context_skips_missing_values():
    assert log_context(source="dat://a", collection=None, records=3) == {"ctx_source": "dat://a", "ctx_records": 3}


def test_json_formatter_emits_context_fields():
    line = JsonFormatter().format(_record(**log_context(source="dat://a", records=2)))
    payload = orjson.loads(line)
    assert payload["message"] == "Indexed source dat://a"
    assert payload["level"] == "INFO"
    assert payload["source"] == "dat://a"
    assert payload["records"] == 2


def test_plain_formatter_appends_context():
    line = PlainFormatter().format(_record(**log_context(collection="posts")))
    assert "Indexed source dat://a" in line
    assert line.endswith("collection=posts")


def test_plain_formatter_without_context():
    line = PlainFormatter().format(_record())
    assert line.endswith("Indexed source dat://a")
