# src/agenttrace/engine/records.py
"""Live records held by the SpanRegistry.

Each record owns the OpenTelemetry span it describes (where it has one)
and the Context used to parent children under that span. Records are
mutable: message and tool events update them in place until the
registry finalizes and evicts them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agenttrace.contracts.enums import UnitOutcome
from agenttrace.engine.aggregate import ToolAggregate

if TYPE_CHECKING:
    from opentelemetry.context import Context
    from opentelemetry.trace import Span, SpanContext


@dataclass(slots=True)
class UnitRecord:
    """One executing session.

    Attributes:
        unit_id: Host session id
        span: Live span for the session (root, or child of its phase)
        context: Context with span set as current, used to parent children
        created_at: Clock reading when the record was opened (seconds)
        parent_id: Resolved parent session id for delegated units
        phase: Phase name for delegated units
        delegate_type: Delegated-unit type (planner, builder, ...)
        work_ticket: Work-ticket tag extracted from title or task description
        lazy: True when synthesized without a creation event
        lazy_children: Delegated units attached under a synthesized parent
    """

    unit_id: str
    span: Span
    context: Context
    created_at: float
    parent_id: str | None = None
    phase: str | None = None
    delegate_type: str | None = None
    work_ticket: str | None = None
    agent_mode: str | None = None
    model_id: str | None = None
    provider_id: str | None = None
    lazy: bool = False
    lazy_children: set[str] = field(default_factory=set)
    tools: ToolAggregate = field(default_factory=ToolAggregate)
    message_count: int = 0
    cumulative_input_tokens: int = 0
    cumulative_output_tokens: int = 0

    @property
    def is_delegated(self) -> bool:
        return self.delegate_type is not None


@dataclass(slots=True)
class PhaseRecord:
    """Workflow stage span wrapping one delegated unit, keyed by that unit's id."""

    unit_id: str
    span: Span
    context: Context
    created_at: float
    phase: str
    delegate_type: str


@dataclass(frozen=True, slots=True)
class HandoffRecord:
    """Bridge from a delegate-work tool call to the delegate's creation.

    Keyed by the dispatching unit's id and consumed exactly once.

    Attributes:
        parent_unit_id: Unit that issued the delegate-work call
        delegate_type: Requested delegated-unit type
        task_description: Free-text description of the delegated work
        parent_span_context: Snapshot of the dispatcher's span context
        created_at: Clock reading when the call was observed (seconds)
    """

    parent_unit_id: str
    delegate_type: str
    task_description: str
    parent_span_context: SpanContext
    created_at: float


@dataclass(frozen=True, slots=True)
class ToolExecutionRecord:
    """In-flight tool invocation, keyed by call id."""

    tool: str
    call_id: str
    started_at: float
    sequence_number: int
    unit_id: str
    args_preview: str


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    """Failure description attached to a closing unit."""

    name: str
    message: str
    detailed: bool = True


@dataclass(frozen=True, slots=True)
class UnitStats:
    """Summary returned when a unit closes."""

    unit_id: str
    outcome: UnitOutcome
    duration_ms: float
    tools_summary: str
    total_tool_count: int
    error_count: int
    total_tool_duration_ms: float
    executions: int
