"""
Tests for the log formatters.
"""

import json
import logging

from backend.app.logging_config import JSONFormatter, TextFormatter


def make_record(**extra):
    record = logging.LogRecord("backend.app.core.orchestrator", logging.INFO, __file__, 1,
                               "[%s] Completed", ("batch_1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_context():
    line = JSONFormatter().format(make_record(batch_id="batch_1", contact_id="contact-9"))

    entry = json.loads(line)
    assert entry["message"] == "[batch_1] Completed"
    assert entry["level"] == "INFO"
    assert entry["batch_id"] == "batch_1"
    assert entry["contact_id"] == "contact-9"
    assert "channel" not in entry


def test_text_formatter():
    line = TextFormatter().format(make_record())
    assert "[backend.app.core.orchestrator] INFO: [batch_1] Completed" in line
