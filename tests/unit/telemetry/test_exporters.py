"""Unit tests for the built-in OTLP and console exporter plugins.

Tests cover:
- Configuration validation (protocol, endpoint, timeout, output)
- Backend header derivation and option overrides
- SpanExporter construction for each transport
- Protocol compliance (name property, configure, create_span_exporter)
"""

import sys
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace.export import ConsoleSpanExporter

from agenttrace.core.config import TracingSettings
from agenttrace.telemetry.errors import TelemetryExporterError
from agenttrace.telemetry.exporters.console import ConsoleExporter, _one_line
from agenttrace.telemetry.exporters.otlp import OTLPExporter
from agenttrace.telemetry.protocols import ExporterProtocol

HTTP_EXPORTER_PATCH = "opentelemetry.exporter.otlp.proto.http.trace_exporter.OTLPSpanExporter"
GRPC_MODULE = "opentelemetry.exporter.otlp.proto.grpc.trace_exporter"


@pytest.fixture
def settings() -> TracingSettings:
    return TracingSettings(api_key="team-key", dataset="agents-dev", exporters=())


class TestProtocolCompliance:
    @pytest.mark.parametrize("exporter_class", [OTLPExporter, ConsoleExporter])
    def test_satisfies_exporter_protocol(self, exporter_class):
        assert isinstance(exporter_class(), ExporterProtocol)

    def test_names(self):
        assert OTLPExporter().name == "otlp"
        assert ConsoleExporter().name == "console"


class TestOTLPExporterConfiguration:
    def test_defaults_to_settings_endpoint_and_backend_headers(self, settings):
        exporter = OTLPExporter()
        exporter.configure({}, settings)

        assert exporter.endpoint == settings.endpoint
        assert exporter.headers == {
            "x-honeycomb-team": "team-key",
            "x-honeycomb-dataset": "agents-dev",
        }

    def test_option_headers_override_backend_headers(self, settings):
        exporter = OTLPExporter()
        exporter.configure(
            {"headers": {"x-honeycomb-dataset": "override", "x-extra": "1"}},
            settings,
        )

        assert exporter.headers["x-honeycomb-dataset"] == "override"
        assert exporter.headers["x-extra"] == "1"
        assert exporter.headers["x-honeycomb-team"] == "team-key"

    def test_endpoint_option_wins(self, settings):
        exporter = OTLPExporter()
        exporter.configure({"endpoint": "http://localhost:4318/v1/traces"}, settings)

        assert exporter.endpoint == "http://localhost:4318/v1/traces"

    def test_unknown_protocol_rejected(self, settings):
        with pytest.raises(TelemetryExporterError, match="protocol must be one of"):
            OTLPExporter().configure({"protocol": "thrift"}, settings)

    def test_empty_endpoint_rejected(self, settings):
        with pytest.raises(TelemetryExporterError, match="requires an endpoint"):
            OTLPExporter().configure({"endpoint": ""}, settings)

    @pytest.mark.parametrize("timeout", [0, -5])
    def test_non_positive_timeout_rejected(self, settings, timeout):
        with pytest.raises(TelemetryExporterError, match="timeout must be > 0"):
            OTLPExporter().configure({"timeout": timeout}, settings)

    def test_create_before_configure_rejected(self):
        with pytest.raises(TelemetryExporterError, match="before configure"):
            OTLPExporter().create_span_exporter()


class TestOTLPExporterCreation:
    def test_http_exporter_built_with_resolved_options(self, settings):
        exporter = OTLPExporter()
        exporter.configure({"timeout": 3}, settings)

        with patch(HTTP_EXPORTER_PATCH) as mock_http:
            span_exporter = exporter.create_span_exporter()

        assert span_exporter is mock_http.return_value
        mock_http.assert_called_once_with(
            endpoint=settings.endpoint,
            headers=exporter.headers,
            timeout=3,
        )

    def test_grpc_missing_raises_install_hint(self, settings):
        exporter = OTLPExporter()
        exporter.configure({"protocol": "grpc", "endpoint": "api.honeycomb.io:443"}, settings)

        # A None entry makes the import fail even when the extra is installed
        with (
            patch.dict(sys.modules, {GRPC_MODULE: None}),
            pytest.raises(TelemetryExporterError, match=r"agenttrace\[grpc\]"),
        ):
            exporter.create_span_exporter()


class TestConsoleExporter:
    def test_default_output_is_stderr(self, settings):
        exporter = ConsoleExporter()
        exporter.configure({}, settings)

        span_exporter = exporter.create_span_exporter()

        assert isinstance(span_exporter, ConsoleSpanExporter)
        assert span_exporter.out is sys.stderr

    def test_stdout_output(self, settings):
        exporter = ConsoleExporter()
        exporter.configure({"output": "stdout"}, settings)

        assert exporter.create_span_exporter().out is sys.stdout

    def test_compact_uses_single_line_formatter(self, settings):
        exporter = ConsoleExporter()
        exporter.configure({"compact": True}, settings)

        assert exporter.create_span_exporter().formatter is _one_line

    def test_non_boolean_compact_rejected(self, settings):
        with pytest.raises(TelemetryExporterError, match="compact must be a boolean"):
            ConsoleExporter().configure({"compact": "yes"}, settings)

    @pytest.mark.parametrize("output", ["file", 42, None])
    def test_invalid_output_rejected(self, settings, output):
        with pytest.raises(TelemetryExporterError, match="Invalid output"):
            ConsoleExporter().configure({"output": output}, settings)
