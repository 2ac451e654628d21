# src/agenttrace/telemetry/errors.py
"""Telemetry-specific exceptions.

These are raised while building the tracer provider at startup only.
Span export failures at runtime are logged by the OpenTelemetry batch
processor and never reach the engine.
"""

from agenttrace.contracts.errors import AgentTraceError


class TelemetryExporterError(AgentTraceError):
    """Raised when an exporter cannot be discovered or configured.

    Attributes:
        exporter_name: Name of the exporter that failed
        message: Human-readable error description
    """

    def __init__(self, exporter_name: str, message: str) -> None:
        self.exporter_name = exporter_name
        self.message = message
        super().__init__(f"Exporter '{exporter_name}' failed: {message}")
