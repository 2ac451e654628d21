# tests/unit/core/test_logging.py
"""Tests for structured logging configuration."""

import io
import json
import logging

import pytest


class TestLoggingConfig:
    def test_get_logger_returns_logger(self) -> None:
        from agenttrace.core.logging import get_logger

        logger = get_logger("test")
        assert hasattr(logger, "info")
        assert hasattr(logger, "bind")

    def test_json_output(self) -> None:
        from agenttrace.core.logging import configure_logging, get_logger

        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        get_logger("test").info("unit_closed", unit_id="u1")

        data = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert data["event"] == "unit_closed"
        assert data["unit_id"] == "u1"
        assert data["level"] == "info"
        assert "_record" not in data
        assert "_from_structlog" not in data

    def test_console_output(self) -> None:
        from agenttrace.core.logging import configure_logging, get_logger

        stream = io.StringIO()
        configure_logging(json_output=False, stream=stream)
        get_logger("test").info("sweep_reaped_records", units=2)

        output = stream.getvalue()
        assert "sweep_reaped_records" in output
        assert "units=2" in output

    def test_defaults_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        from agenttrace.core.logging import configure_logging, get_logger

        configure_logging(json_output=True)
        get_logger("test").warning("host_event_rejected")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "host_event_rejected" in captured.err

    def test_stdlib_records_share_format(self) -> None:
        from agenttrace.core.logging import configure_logging

        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        logging.getLogger("some.library").warning("plain stdlib message")

        data = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert data["event"] == "plain stdlib message"

    def test_level_filters_debug(self) -> None:
        from agenttrace.core.logging import configure_logging, get_logger

        stream = io.StringIO()
        configure_logging(json_output=True, level="INFO", stream=stream)
        get_logger("test").debug("hidden")
        assert stream.getvalue() == ""

    def test_noisy_loggers_silenced_in_debug(self) -> None:
        from agenttrace.core.logging import configure_logging

        configure_logging(level="DEBUG", stream=io.StringIO())
        assert logging.getLogger("opentelemetry").level == logging.WARNING
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestCredentialRedaction:
    def test_top_level_api_key_masked(self) -> None:
        from agenttrace.core.logging import REDACTED, configure_logging, get_logger

        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        get_logger("test").info("settings_loaded", api_key="hcaik_secret", dataset="agents")

        data = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert data["api_key"] == REDACTED
        assert data["dataset"] == "agents"
        assert "hcaik_secret" not in stream.getvalue()

    def test_nested_header_masked(self) -> None:
        from agenttrace.core.logging import REDACTED, redact_credentials

        event = redact_credentials(
            None,
            "info",
            {"event": "exporter_configured", "headers": {"x-honeycomb-team": "secret", "x-honeycomb-dataset": "d"}},
        )

        assert event["headers"] == {"x-honeycomb-team": REDACTED, "x-honeycomb-dataset": "d"}

    def test_initial_context_bound(self) -> None:
        from agenttrace.core.logging import configure_logging, get_logger

        stream = io.StringIO()
        configure_logging(json_output=True, stream=stream)
        get_logger("test", unit_id="u1").info("unit_opened")

        data = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert data["unit_id"] == "u1"
        assert data["logger"] == "test"
