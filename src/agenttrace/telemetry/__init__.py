# src/agenttrace/telemetry/__init__.py
"""Host plugin, hook specifications and tracer provider construction.

Usage:
    import pluggy
    from agenttrace.telemetry import PROJECT_NAME, AgentTraceHostSpec, create_tracing_plugin

    pm = pluggy.PluginManager(PROJECT_NAME)
    pm.add_hookspecs(AgentTraceHostSpec)
    plugin = create_tracing_plugin()
    if plugin is not None:
        pm.register(plugin)
"""

from agenttrace.telemetry.errors import TelemetryExporterError
from agenttrace.telemetry.factory import create_tracer_provider, discover_exporters
from agenttrace.telemetry.hookspecs import (
    PROJECT_NAME,
    AgentTraceExporterSpec,
    AgentTraceHostSpec,
    hookimpl,
    hookspec,
)
from agenttrace.telemetry.plugin import TracingPlugin, create_tracing_plugin
from agenttrace.telemetry.protocols import ExporterProtocol

__all__ = [
    "PROJECT_NAME",
    "AgentTraceExporterSpec",
    "AgentTraceHostSpec",
    "ExporterProtocol",
    "TelemetryExporterError",
    "TracingPlugin",
    "create_tracer_provider",
    "create_tracing_plugin",
    "discover_exporters",
    "hookimpl",
    "hookspec",
]
