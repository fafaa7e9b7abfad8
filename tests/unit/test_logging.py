"""Tests for the JSON logger and its redaction rules."""

import io
import json

from webmail.utils.logging import REDACTED, JsonLogger, get_logger


def _lines(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_payload_carries_canonical_fields():
    stream = io.StringIO()
    JsonLogger(stream=stream, component="webmail.test").info("hello", account_id="abc")

    (entry,) = _lines(stream)
    assert entry["msg"] == "hello"
    assert entry["lvl"] == "INFO"
    assert entry["component"] == "webmail.test"
    assert entry["account_id"] == "abc"
    assert "ts" in entry


def test_sensitive_keys_are_redacted_recursively():
    stream = io.StringIO()
    logger = JsonLogger(stream=stream)
    logger.warning(
        "context",
        password="hunter22",
        request={"token": "abc.def", "headers": {"imap_pass": "x"}, "folder": "INBOX"},
    )

    (entry,) = _lines(stream)
    assert entry["lvl"] == "WARN"
    assert entry["password"] == REDACTED
    assert entry["request"]["token"] == REDACTED
    assert entry["request"]["headers"]["imap_pass"] == REDACTED
    assert entry["request"]["folder"] == "INBOX"


def test_default_stream_is_resolved_at_write_time(capsys):
    get_logger("webmail.test").error("boom", uid=7)

    captured = capsys.readouterr().out.strip()
    entry = json.loads(captured)
    assert entry == {**entry, "msg": "boom", "lvl": "ERROR", "uid": 7}


def test_non_serialisable_values_are_stringified():
    stream = io.StringIO()
    JsonLogger(stream=stream).debug("value", folders={"INBOX"})

    (entry,) = _lines(stream)
    assert entry["lvl"] == "DEBUG"
    assert entry["folders"] == str({"INBOX"})
