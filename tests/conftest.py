# tests/conftest.py
"""Shared test fixtures.

Tracing Fixtures:
- clock: FakeClock injected into the registry so span durations are exact
- span_exporter / tracer_provider / tracer: a LOCAL TracerProvider with a
  SimpleSpanProcessor feeding an InMemorySpanExporter. Never call
  trace.set_tracer_provider() in tests - global provider state leaks
  between tests.
- registry / correlation / recorder / dispatcher: the engine wired the
  same way TracingPlugin wires it
- finished: lookup helper over exported spans

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

import logging
import os
from collections.abc import Iterator
from typing import Any

import pytest
import structlog
from hypothesis import Phase, Verbosity, settings
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from agenttrace.core.config import TracingSettings
from agenttrace.engine.correlation import CorrelationEngine
from agenttrace.engine.dispatcher import EventDispatcher
from agenttrace.engine.registry import SpanRegistry
from agenttrace.engine.tool_activity import ToolActivityRecorder

START_TIME = 1_700_000_000.0

STATIC_ATTRIBUTES = {
    "git.branch": "main",
    "git.commit": "abc1234",
    "plugin.version": "test",
}


class FakeClock:
    """Manually advanced wall clock, in seconds."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FinishedSpans:
    """Query helper over spans captured by the in-memory exporter."""

    def __init__(self, exporter: InMemorySpanExporter) -> None:
        self._exporter = exporter

    def all(self) -> list[ReadableSpan]:
        return list(self._exporter.get_finished_spans())

    def named(self, name: str) -> ReadableSpan:
        matches = [span for span in self.all() if span.name == name]
        assert len(matches) == 1, f"expected exactly one span {name!r}, got {[s.name for s in self.all()]}"
        return matches[0]

    def for_session(self, unit_id: str, name_prefix: str = "") -> ReadableSpan:
        matches = [
            span
            for span in self.all()
            if span.attributes is not None
            and span.attributes.get("session.id") == unit_id
            and span.name.startswith(name_prefix)
        ]
        assert len(matches) == 1, f"expected exactly one span for session {unit_id!r}, got {len(matches)}"
        return matches[0]

    def event_names(self, span: ReadableSpan) -> list[str]:
        return [event.name for event in span.events]

    def event(self, span: ReadableSpan, name: str) -> dict[str, Any]:
        for event in span.events:
            if event.name == name:
                return dict(event.attributes or {})
        raise AssertionError(f"span {span.name!r} has no event {name!r}: {self.event_names(span)}")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture
def tracer_provider(span_exporter: InMemorySpanExporter) -> Iterator[TracerProvider]:
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider
    provider.shutdown()


@pytest.fixture
def tracer(tracer_provider: TracerProvider):
    return tracer_provider.get_tracer("agenttrace-tests")


@pytest.fixture
def finished(span_exporter: InMemorySpanExporter) -> FinishedSpans:
    return FinishedSpans(span_exporter)


@pytest.fixture
def registry(tracer, clock: FakeClock) -> SpanRegistry:
    return SpanRegistry(tracer, clock=clock, static_attributes=STATIC_ATTRIBUTES)


@pytest.fixture
def correlation(registry: SpanRegistry) -> CorrelationEngine:
    return CorrelationEngine(registry)


@pytest.fixture
def recorder(registry: SpanRegistry, correlation: CorrelationEngine) -> ToolActivityRecorder:
    return ToolActivityRecorder(registry, correlation)


@pytest.fixture
def dispatcher(
    registry: SpanRegistry,
    correlation: CorrelationEngine,
    recorder: ToolActivityRecorder,
) -> EventDispatcher:
    return EventDispatcher(registry, correlation, recorder)


@pytest.fixture
def tracing_settings() -> TracingSettings:
    return TracingSettings(api_key="test-key", exporters=())


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    """Undo configure_logging() calls made by a test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers = handlers
    root.setLevel(level)


# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))
