from __future__ import annotations

import json
import logging
import sys

from batch_mutator.utils.logging import _json_formatter

EXPECTED_ROWS = 100
EXPECTED_CHUNK = 3


def _record() -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="hello",
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.rows = EXPECTED_ROWS
    record.chunk = EXPECTED_CHUNK

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["rows"] == EXPECTED_ROWS
    assert payload["chunk"] == EXPECTED_CHUNK
    assert "pathname" not in payload


def test_json_formatter_supports_legacy_nested_extra_field() -> None:
    record = _record()
    record.extra = {"batch_size": EXPECTED_ROWS}

    payload = json.loads(_json_formatter(record))

    assert payload["batch_size"] == EXPECTED_ROWS


def test_json_formatter_renders_exceptions_and_non_json_values() -> None:
    record = _record()
    try:
        raise ValueError("boom")
    except ValueError:
        record.exc_info = sys.exc_info()
    record.result = {"chunk_sizes": (1, 2)}
    record.when = object()

    payload = json.loads(_json_formatter(record))

    assert "ValueError: boom" in payload["exc_info"]
    assert payload["result"] == {"chunk_sizes": [1, 2]}
    assert isinstance(payload["when"], str)
