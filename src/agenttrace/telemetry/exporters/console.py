# src/agenttrace/telemetry/exporters/console.py
"""Console span exporter plugin.

Prints finished spans as JSON for local debugging, no backend needed.
Defaults to stderr: the host may speak a protocol over stdout.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TextIO

from opentelemetry.sdk.trace.export import ConsoleSpanExporter

from agenttrace.telemetry.errors import TelemetryExporterError

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan

    from agenttrace.core.config import TracingSettings

_STREAMS: dict[str, Callable[[], TextIO]] = {
    "stdout": lambda: sys.stdout,
    "stderr": lambda: sys.stderr,
}


def _one_line(span: ReadableSpan) -> str:
    return span.to_json(indent=None) + os.linesep


class ConsoleExporter:
    """Write spans to stdout or stderr.

    Options:
        output: "stderr" (default) or "stdout"
        compact: One JSON object per line instead of indented JSON (default: False)
    """

    _name = "console"

    def __init__(self) -> None:
        self._output = "stderr"
        self._compact = False
        self._service_name: str | None = None

    @property
    def name(self) -> str:
        return self._name

    def configure(self, options: dict[str, Any], settings: TracingSettings) -> None:
        output = options.get("output", "stderr")
        if not isinstance(output, str) or output not in _STREAMS:
            raise TelemetryExporterError(
                self._name,
                f"Invalid output {output!r}. Must be one of: {sorted(_STREAMS)}",
            )
        compact = options.get("compact", False)
        if not isinstance(compact, bool):
            raise TelemetryExporterError(self._name, f"compact must be a boolean, got {compact!r}")

        self._output = output
        self._compact = compact
        self._service_name = settings.service_name

    def create_span_exporter(self) -> ConsoleSpanExporter:
        if self._compact:
            return ConsoleSpanExporter(
                service_name=self._service_name,
                out=_STREAMS[self._output](),
                formatter=_one_line,
            )
        return ConsoleSpanExporter(service_name=self._service_name, out=_STREAMS[self._output]())
