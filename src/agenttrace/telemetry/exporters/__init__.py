# src/agenttrace/telemetry/exporters/__init__.py
"""Built-in span exporter plugins.

Available exporters:
- OTLPExporter: Export to OTLP backends (Honeycomb by default)
- ConsoleExporter: Write spans to stdout/stderr for local debugging

Plugin registration:
    Exporters are registered via the agenttrace_get_exporters hook.
    The BuiltinExportersPlugin in this module registers both.
"""

from agenttrace.telemetry.exporters.console import ConsoleExporter
from agenttrace.telemetry.exporters.otlp import OTLPExporter
from agenttrace.telemetry.hookspecs import hookimpl


class BuiltinExportersPlugin:
    """Plugin that registers built-in span exporters."""

    @hookimpl
    def agenttrace_get_exporters(self) -> list[type]:
        """Return built-in exporter classes."""
        return [OTLPExporter, ConsoleExporter]


__all__ = [
    "BuiltinExportersPlugin",
    "ConsoleExporter",
    "OTLPExporter",
]
