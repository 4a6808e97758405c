"""Unit tests for logging configuration and application settings."""

import json
import logging
import sys

import pytest
from pydantic import ValidationError

from app.config import Settings
from app.logging_config import (
    DevelopmentFormatter,
    JSONFormatter,
    RequestContextFilter,
    request_id_var,
)


def make_record(message="Response stored", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="app.services.submission",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    """Tests for JSON and development formatters."""

    def test_json_formatter_includes_context(self):
        """Test context fields and extras appear as top-level keys."""
        record = make_record(survey_id="s1", response_id="r1", client_ip="10.0.0.1")

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "app.services.submission"
        assert data["message"] == "Response stored"
        assert data["survey_id"] == "s1"
        assert data["response_id"] == "r1"
        assert data["client_ip"] == "10.0.0.1"
        assert "user_id" not in data

    def test_json_formatter_exception(self):
        """Test exceptions are rendered into the document."""
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))
        assert "ValueError: boom" in data["exception"]

    def test_development_formatter(self):
        """Test development output appends context fields."""
        output = DevelopmentFormatter().format(make_record(survey_id="s1"))

        assert "Response stored" in output
        assert "[survey_id=s1]" in output


class TestRequestContextFilter:
    """Tests for RequestContextFilter."""

    def test_uses_context_variable(self):
        """Test the current request ID is copied onto records."""
        token = request_id_var.set("req-1")
        try:
            record = make_record()
            assert RequestContextFilter().filter(record) is True
            assert record.request_id == "req-1"
        finally:
            request_id_var.reset(token)

    def test_existing_request_id_kept(self):
        """Test explicit request IDs are not overwritten."""
        record = make_record(request_id="explicit")
        RequestContextFilter(request_id="fixed").filter(record)
        assert record.request_id == "explicit"

    def test_no_request(self):
        """Test records outside a request get no request ID."""
        record = make_record()
        RequestContextFilter().filter(record)
        assert getattr(record, "request_id", None) is None


class TestSettings:
    """Tests for Settings validation."""

    def test_normalizes_values(self):
        """Test environment and log level are normalized."""
        settings = Settings(database_url="sqlite://", environment="Production", log_level="debug")

        assert settings.environment == "production"
        assert settings.is_production
        assert settings.log_level == "DEBUG"

    def test_rejects_unknown_environment(self):
        """Test unknown environments are rejected."""
        with pytest.raises(ValidationError, match="Environment must be one of"):
            Settings(database_url="sqlite://", environment="qa")

    def test_rejects_unsafe_export_filename(self):
        """Test header-breaking export file names are rejected."""
        with pytest.raises(ValidationError, match="plain file name"):
            Settings(database_url="sqlite://", export_filename='a"b.csv')

    def test_allowed_origins_list(self):
        """Test CORS origins are split and trimmed."""
        settings = Settings(database_url="sqlite://", allowed_origins="https://a.test, https://b.test,")
        assert settings.get_allowed_origins_list() == ["https://a.test", "https://b.test"]
