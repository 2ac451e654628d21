# tests/integration/test_host_scenarios.py
"""End-to-end host scenarios driven through the pluggy hook surface.

Each test plays a host event sequence into a registered TracingPlugin and
inspects the exported spans: naming, parentage, aggregates and cleanup.
"""

from __future__ import annotations

import pluggy
import pytest
from opentelemetry.trace import StatusCode

from agenttrace.core.identifiers import GitContext
from agenttrace.telemetry.hookspecs import PROJECT_NAME, AgentTraceHostSpec
from agenttrace.telemetry.plugin import TracingPlugin

EMPTY_TABLES = {"units": 0, "phases": 0, "handoffs": 0, "executions": 0}


class Host:
    """Minimal stand-in for an agent host emitting events through pluggy."""

    def __init__(self, pm: pluggy.PluginManager) -> None:
        self._hook = pm.hook
        self._calls = 0

    def create(self, unit_id: str, *, parent_id: str | None = None, title: str = "") -> None:
        info = {"id": unit_id, "title": title, "projectID": "proj-1", "directory": "/repo"}
        if parent_id is not None:
            info["parentID"] = parent_id
        self._hook.agenttrace_event(event={"type": "session.created", "properties": {"info": info}})

    def idle(self, unit_id: str) -> None:
        self._hook.agenttrace_event(event={"type": "session.idle", "properties": {"sessionID": unit_id}})

    def fail(self, unit_id: str, name: str, message: str) -> None:
        self._hook.agenttrace_event(
            event={
                "type": "session.error",
                "properties": {"sessionID": unit_id, "error": {"name": name, "data": {"message": message}}},
            }
        )

    def assistant_message(self, unit_id: str, input_tokens: int, output_tokens: int) -> None:
        self._hook.agenttrace_event(
            event={
                "type": "message.updated",
                "properties": {
                    "info": {
                        "sessionID": unit_id,
                        "role": "assistant",
                        "modelID": "claude-sonnet",
                        "providerID": "anthropic",
                        "tokens": {"input": input_tokens, "output": output_tokens},
                    }
                },
            }
        )

    def tool(self, unit_id: str, tool: str, args: dict | None = None, output: str = "") -> str:
        self._calls += 1
        call_id = f"call-{self._calls}"
        self._hook.agenttrace_tool_before(session_id=unit_id, call_id=call_id, tool=tool, args=args)
        self._hook.agenttrace_tool_after(call_id=call_id, tool=tool, title=None, output=output)
        return call_id

    def tool_started(self, unit_id: str, tool: str, args: dict | None = None) -> str:
        self._calls += 1
        call_id = f"call-{self._calls}"
        self._hook.agenttrace_tool_before(session_id=unit_id, call_id=call_id, tool=tool, args=args)
        return call_id


@pytest.fixture
def plugin(tracing_settings, tracer_provider, clock):
    plugin = TracingPlugin(
        tracing_settings,
        tracer_provider=tracer_provider,
        clock=clock,
        git_context=GitContext(branch="main", commit="abc1234"),
        sweep_interval_seconds=3600,
    )
    yield plugin
    plugin.shutdown()


@pytest.fixture
def host(plugin) -> Host:
    pm = pluggy.PluginManager(PROJECT_NAME)
    pm.add_hookspecs(AgentTraceHostSpec)
    pm.register(plugin)
    return Host(pm)


class TestSingleUnit:
    def test_one_read_then_idle(self, host, plugin, clock, finished) -> None:
        host.create("u1")
        clock.advance(0.5)
        host.tool("u1", "read", {"filePath": "/repo/README.md"}, output="hello")
        clock.advance(2.5)
        host.idle("u1")

        span = finished.named("session:main")
        assert span.parent is None
        assert span.status.status_code == StatusCode.OK
        assert span.attributes["session.success"] is True
        assert span.attributes["tools.total_count"] == 1
        assert span.attributes["tools.summary"] == "read:1"
        assert span.attributes["session.duration_ms"] == 3000.0
        assert finished.event_names(span) == ["tool.read.start", "tool.read.end"]
        assert plugin.registry.table_sizes == EMPTY_TABLES

    def test_token_usage_accumulates(self, host, finished) -> None:
        host.create("u1")
        host.assistant_message("u1", 100, 40)
        host.assistant_message("u1", 50, 10)
        host.idle("u1")

        span = finished.named("session:main")
        assert span.attributes["session.message_count"] == 2
        assert span.attributes["session.cumulative_input_tokens"] == 150
        assert span.attributes["session.cumulative_output_tokens"] == 50
        assert span.attributes["model.id"] == "claude-sonnet"

    def test_error_closes_with_error_status(self, host, finished) -> None:
        host.create("u1")
        host.fail("u1", "ProviderAuthError", "invalid key")

        span = finished.named("session:main")
        assert span.status.status_code == StatusCode.ERROR
        assert span.status.description == "invalid key"
        assert span.attributes["error.name"] == "ProviderAuthError"


class TestDelegation:
    def test_delegated_unit_nests_under_dispatcher(self, host, plugin, finished) -> None:
        host.create("u1")
        host.tool_started("u1", "task", {"subagent_type": "worker", "description": "do X"})
        host.create("u2", parent_id="u1")

        assert plugin.registry.get_handoff("u1") is None

        host.idle("u2")
        host.idle("u1")

        root = finished.named("session:main")
        phase = finished.named("phase:work")
        agent = finished.named("agent:worker")

        assert phase.context.trace_id == root.context.trace_id
        assert agent.context.trace_id == root.context.trace_id
        assert phase.parent.span_id == root.context.span_id
        assert agent.parent.span_id == phase.context.span_id

        assert phase.attributes["correlation.strategy"] == "parent_id"
        assert phase.attributes["correlation.handoff_consumed"] is True
        assert agent.attributes["session.task_description"] == "do X"
        assert agent.attributes["session.parent_id"] == "u1"
        assert "handoff.stored" in finished.event_names(root)

    def test_title_only_delegate_attaches_to_live_root(self, host, finished) -> None:
        host.create("u1")
        host.create("u2", title="@planner subagent bd-a1b2")
        host.idle("u2")
        host.idle("u1")

        root = finished.named("session:main")
        phase = finished.named("phase:planning")
        assert phase.parent.span_id == root.context.span_id
        assert phase.attributes["correlation.strategy"] == "title"
        assert phase.attributes["beads.task_id"] == "bd-a1b2"

    def test_delegate_with_unseen_parent_gets_lazy_root(self, host, plugin, finished) -> None:
        host.create("u2", parent_id="ghost", title="@builder subagent")
        host.idle("u2")

        lazy = finished.named("session:main")
        phase = finished.named("phase:implementation")
        assert lazy.attributes["session.lazy_created"] is True
        assert lazy.attributes["session.cleanup_reason"] == "lazy_parent_released"
        assert phase.parent.span_id == lazy.context.span_id
        assert plugin.registry.table_sizes == EMPTY_TABLES


class TestExpiry:
    def test_silent_unit_expires(self, host, plugin, clock, finished) -> None:
        host.create("u3")
        clock.advance(31 * 60)

        plugin.sweep()

        span = finished.named("session:main")
        assert span.status.status_code == StatusCode.ERROR
        assert span.attributes["session.cleanup_reason"] == "ttl_expired"
        assert span.attributes["session.success"] is False
        assert plugin.registry.get_unit("u3") is None

    def test_unit_within_ttl_survives_sweep(self, host, plugin, clock, finished) -> None:
        host.create("u3")
        clock.advance(29 * 60)

        report = plugin.sweep()

        assert report.total == 0
        assert finished.all() == []
        assert plugin.registry.get_unit("u3") is not None
