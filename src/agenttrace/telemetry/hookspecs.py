# src/agenttrace/telemetry/hookspecs.py
"""pluggy hook specifications.

Two groups of hooks share the "agenttrace" project name:

- Host hooks: the agent host calls these for every lifecycle event and
  around every tool invocation. TracingPlugin implements them.
- Exporter hooks: span exporter plugins register themselves through
  agenttrace_get_exporters; the tracer provider factory discovers them.

Usage (host side):
    pm = pluggy.PluginManager(PROJECT_NAME)
    pm.add_hookspecs(AgentTraceHostSpec)
    pm.register(tracing_plugin)
    pm.hook.agenttrace_event(event={"type": "session.idle", "properties": {...}})

Usage (implementing an exporter plugin):
    from agenttrace.telemetry.hookspecs import hookimpl

    class MyExporterPlugin:
        @hookimpl
        def agenttrace_get_exporters(self):
            return [MyExporter]
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import pluggy

if TYPE_CHECKING:
    from agenttrace.telemetry.protocols import ExporterProtocol

PROJECT_NAME = "agenttrace"

# Hook specification marker
hookspec = pluggy.HookspecMarker(PROJECT_NAME)

# Hook implementation marker
hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class AgentTraceHostSpec:
    """Hooks the agent host calls into."""

    @hookspec
    def agenttrace_event(self, event: Mapping[str, Any]) -> None:
        """Receive one raw host event.

        Args:
            event: Payload shaped {"type": "session.created", "properties": {...}}
        """

    @hookspec
    def agenttrace_tool_before(
        self,
        session_id: str,
        call_id: str,
        tool: str,
        args: Mapping[str, Any] | None,
    ) -> None:
        """Called immediately before a tool invocation runs."""

    @hookspec
    def agenttrace_tool_after(self, call_id: str, tool: str, title: str | None, output: Any) -> None:
        """Called after a tool invocation completes successfully."""


class AgentTraceExporterSpec:
    """Hook specifications for span exporter plugins."""

    @hookspec
    def agenttrace_get_exporters(self) -> list[type["ExporterProtocol"]]:  # type: ignore[empty-body]
        """Return span exporter classes.

        Called while the tracer provider is built. Exporters are then
        instantiated and configured from TracingSettings.exporters.

        Returns:
            List of exporter classes (not instances) that implement
            ExporterProtocol
        """
