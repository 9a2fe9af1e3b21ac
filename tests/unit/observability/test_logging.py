"""Tests for structured logging."""

import json

import pytest

from conductor.observability.logging import (
    PIIRedactor,
    bound_context,
    get_logger,
    setup_logging,
)


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Should write one JSON object per event to stderr."""
        setup_logging(level="INFO", format="json", redact_pii=False)
        get_logger("test.json").info("run_started", agent_id="assistant")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["event"] == "run_started"
        assert payload["agent_id"] == "assistant"
        assert payload["level"] == "info"

    def test_level_filters_lower_events(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Events below the configured level are dropped."""
        setup_logging(level="WARNING", format="json", redact_pii=False)
        get_logger("test.level").info("quiet_event")

        assert "quiet_event" not in capsys.readouterr().err

    def test_console_format(self) -> None:
        """Should configure console format for development."""
        setup_logging(level="DEBUG", format="console", redact_pii=False)
        get_logger("test.console").debug("test_message")


class TestBoundContext:
    """Tests for bound_context."""

    def test_values_appear_and_are_removed(self, capsys: pytest.CaptureFixture[str]) -> None:
        """Bound values are attached inside the block only."""
        setup_logging(level="INFO", format="json", redact_pii=False)
        logger = get_logger("test.context")

        with bound_context(run_id="run-1"):
            logger.info("inside")
        logger.info("outside")

        lines = [json.loads(line) for line in capsys.readouterr().err.strip().splitlines()]
        inside = next(line for line in lines if line["event"] == "inside")
        outside = next(line for line in lines if line["event"] == "outside")
        assert inside["run_id"] == "run-1"
        assert "run_id" not in outside


class TestPIIRedactor:
    """Tests for PII redaction."""

    @pytest.fixture
    def redactor(self) -> PIIRedactor:
        return PIIRedactor()

    def test_redacts_sensitive_keys(self, redactor: PIIRedactor) -> None:
        """Values of sensitive keys are replaced."""
        result = redactor(None, None, {"api_key": "k-123", "tool_name": "search"})  # type: ignore
        assert result["api_key"] == "[REDACTED]"
        assert result["tool_name"] == "search"

    def test_redacts_email_in_user_message(self, redactor: PIIRedactor) -> None:
        """Email addresses inside string values are masked."""
        result = redactor(None, None, {"message": "mail me at jo@example.com"})  # type: ignore
        assert result["message"] == "mail me at [EMAIL]"

    def test_redacts_phone_number(self, redactor: PIIRedactor) -> None:
        """Phone numbers inside string values are masked."""
        result = redactor(None, None, {"message": "call +1-555-123-4567 now"})  # type: ignore
        assert "[PHONE]" in result["message"]
        assert "555" not in result["message"]

    def test_handles_nested_values(self, redactor: PIIRedactor) -> None:
        """Nested dicts and lists are redacted recursively."""
        result = redactor(
            None,
            None,
            {"arguments": {"token": "t", "to": ["a@example.com", 3]}},
        )  # type: ignore
        assert result["arguments"]["token"] == "[REDACTED]"
        assert result["arguments"]["to"] == ["[EMAIL]", 3]
