import json
import logging

from app.core.logging import JsonFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("app.services.worker_state", logging.INFO, __file__, 42, "Worker state transition", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_carries_extra_fields():
    line = JsonFormatter().format(_record(assignment_id=7, to_status="shift_ended"))
    payload = json.loads(line)

    assert payload["message"] == "Worker state transition"
    assert payload["level"] == "INFO"
    assert payload["service"] == "shift_timesheets"
    assert payload["extra"] == {"assignment_id": 7, "to_status": "shift_ended"}


def test_json_formatter_omits_empty_extra():
    payload = json.loads(JsonFormatter().format(_record()))
    assert "extra" not in payload
    assert payload["location"].endswith(":42")
