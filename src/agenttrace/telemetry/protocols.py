# src/agenttrace/telemetry/protocols.py
"""Protocol definitions for span exporters."""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.sdk.trace.export import SpanExporter

    from agenttrace.core.config import TracingSettings


@runtime_checkable
class ExporterProtocol(Protocol):
    """Protocol for span exporter plugins.

    An exporter plugin does not ship spans itself: it builds an
    OpenTelemetry SpanExporter that the factory wraps in a
    BatchSpanProcessor, so export always runs off the host's thread.

    Lifecycle:
        1. Discovery: agenttrace_get_exporters hook returns exporter classes
        2. Instantiation: the factory creates instances
        3. Configuration: configure() called with the exporter's options
        4. create_span_exporter() called once

    Error handling:
        - configure() MUST raise TelemetryExporterError on invalid config
        - create_span_exporter() MUST raise TelemetryExporterError when
          the backing OpenTelemetry package is missing
    """

    @property
    def name(self) -> str:
        """Exporter name matched against TracingSettings.exporters."""
        ...

    def configure(self, options: dict[str, Any], settings: "TracingSettings") -> None:
        """Configure from exporter options and global tracing settings.

        Raises:
            TelemetryExporterError: If configuration is invalid or incomplete
        """
        ...

    def create_span_exporter(self) -> "SpanExporter":
        """Build the OpenTelemetry SpanExporter for this configuration."""
        ...
