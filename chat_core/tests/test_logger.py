import json
import logging
import sys

from chat_core.infrastructure.logging.logger import JsonFormatter


def _record(msg, extra=None, exc_info=None):
    record = logging.LogRecord("chat_core", logging.INFO, __file__, 1, msg, None, exc_info)
    if extra is not None:
        record.extra = extra
    return record


def test_json_formatter_merges_extra():
    line = JsonFormatter().format(_record("Completed send", {"send_id": "sd-1", "bytes": 12}))
    payload = json.loads(line)
    assert payload["level"] == "INFO"
    assert payload["name"] == "chat_core"
    assert payload["msg"] == "Completed send"
    assert payload["send_id"] == "sd-1"
    assert payload["bytes"] == 12
    assert payload["ts"].endswith("Z")


def test_json_formatter_includes_exception():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record("failed", exc_info=sys.exc_info())
    payload = json.loads(JsonFormatter().format(record))
    assert "RuntimeError: boom" in payload["exc"]
