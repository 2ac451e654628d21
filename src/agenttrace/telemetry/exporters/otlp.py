# src/agenttrace/telemetry/exporters/otlp.py
"""OTLP span exporter plugin.

Ships finished spans to any OTLP-compatible backend. The default target is
Honeycomb over OTLP/HTTP, authenticated with the team and dataset headers
derived from TracingSettings. gRPC transport is available when the
opentelemetry-exporter-otlp-proto-grpc extra is installed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from agenttrace.telemetry.errors import TelemetryExporterError

if TYPE_CHECKING:
    from opentelemetry.sdk.trace.export import SpanExporter

    from agenttrace.core.config import TracingSettings

logger = structlog.get_logger(__name__)

_PROTOCOLS = frozenset({"http/protobuf", "grpc"})


class OTLPExporter:
    """Build an OTLP SpanExporter from settings.

    Configuration options:
        protocol: "http/protobuf" (default) or "grpc"
        endpoint: Overrides TracingSettings.endpoint
        headers: Extra headers merged over the backend headers
        timeout: Export timeout in seconds (default: 10)

    Example configuration:
        exporters:
          - name: otlp
            options:
              protocol: grpc
              endpoint: api.honeycomb.io:443
    """

    _name = "otlp"

    def __init__(self) -> None:
        self._protocol: str = "http/protobuf"
        self._endpoint: str | None = None
        self._headers: dict[str, str] = {}
        self._timeout: float = 10.0
        self._configured = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def configure(self, options: dict[str, Any], settings: TracingSettings) -> None:
        """Resolve endpoint, headers and transport.

        Raises:
            TelemetryExporterError: If the protocol is unknown, the endpoint
                is empty, or the timeout is not positive
        """
        protocol = options.get("protocol", "http/protobuf")
        if protocol not in _PROTOCOLS:
            raise TelemetryExporterError(
                self._name,
                f"protocol must be one of {sorted(_PROTOCOLS)}, got {protocol!r}",
            )

        endpoint = options.get("endpoint", settings.endpoint)
        if not endpoint:
            raise TelemetryExporterError(self._name, "OTLP exporter requires an endpoint")

        timeout = float(options.get("timeout", 10.0))
        if timeout <= 0:
            raise TelemetryExporterError(self._name, f"timeout must be > 0, got {timeout}")

        self._protocol = protocol
        self._endpoint = endpoint
        self._headers = {**settings.backend_headers(), **options.get("headers", {})}
        self._timeout = timeout
        self._configured = True

        logger.debug(
            "otlp_exporter_configured",
            protocol=self._protocol,
            endpoint=self._endpoint,
            headers_count=len(self._headers),
        )

    def create_span_exporter(self) -> SpanExporter:
        if not self._configured:
            raise TelemetryExporterError(self._name, "create_span_exporter() called before configure()")

        if self._protocol == "grpc":
            try:
                from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
                    OTLPSpanExporter as GrpcSpanExporter,
                )
            except ImportError as e:
                raise TelemetryExporterError(
                    self._name,
                    f"OTLP gRPC exporter not installed: {e}. Install with: pip install 'agenttrace[grpc]'",
                ) from e
            return GrpcSpanExporter(
                endpoint=self._endpoint,
                headers=tuple(self._headers.items()) if self._headers else None,
                timeout=int(self._timeout),
            )

        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(
            endpoint=self._endpoint,
            headers=self._headers or None,
            timeout=int(self._timeout),
        )
