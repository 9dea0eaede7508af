"""
Tests for structured logging formatters
"""

import json
import logging

from core.logging import SERVICE_NAME, JSONFormatter, TextFormatter, log_context


def _record(message="Trained readiness model", **fields):
    record = logging.LogRecord(
        name="services.readiness_model",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in log_context(**fields).items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:

    def test_envelope_and_fields(self):
        payload = json.loads(JSONFormatter().format(_record(example_count=15, path="/v1/readiness/retrain")))

        assert payload["service"] == SERVICE_NAME
        assert payload["level"] == "INFO"
        assert payload["message"] == "Trained readiness model"
        assert payload["example_count"] == 15
        assert payload["path"] == "/v1/readiness/retrain"

    def test_fields_do_not_overwrite_envelope(self):
        payload = json.loads(JSONFormatter().format(_record(message="real", level="fake")))

        assert payload["message"] == "real"
        assert payload["level"] == "INFO"

    def test_unserializable_values_are_stringified(self):
        payload = json.loads(JSONFormatter().format(_record(weights=(0.5, 1.5), when=object)))

        assert payload["weights"] == [0.5, 1.5]
        assert isinstance(payload["when"], str)


class TestTextFormatter:

    def test_appends_fields(self):
        line = TextFormatter().format(_record(status_code=409, error_code="CONFLICT"))

        assert line.endswith("Trained readiness model | status_code=409 error_code=CONFLICT")

    def test_plain_line_without_fields(self):
        line = TextFormatter().format(_record())

        assert line.endswith("INFO - Trained readiness model")
