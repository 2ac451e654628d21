# src/agenttrace/engine/registry.py
"""Span registry: the four live-record tables and their lifecycle.

Tables (all keyed by a host identifier):
- units: session id -> UnitRecord
- phases: delegated session id -> PhaseRecord (1:1 with its unit)
- handoffs: dispatching session id -> HandoffRecord
- executions: tool call id -> ToolExecutionRecord

Span Hierarchy:
    session:main                  (root unit)
    └── phase:{phase}             (one per delegated unit)
        └── agent:{type}          (delegated unit)
            └── tool events       (span events, never spans)

Every mutation is a single-key insert or pop, so whichever caller pops a
record owns its finalization; a second caller simply finds nothing.
Absence from a table is normal given asynchronous arrival and is never an
error.

Thread Safety:
    NOT thread-safe. The TracingPlugin serialises all handlers and sweeps
    behind one lock.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import Status, StatusCode

from agenttrace.contracts.enums import CleanupReason, UnitOutcome
from agenttrace.engine.aggregate import ToolAggregate
from agenttrace.engine.records import (
    ErrorInfo,
    HandoffRecord,
    PhaseRecord,
    ToolExecutionRecord,
    UnitRecord,
    UnitStats,
)

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer

logger = structlog.get_logger(__name__)

Clock = Callable[[], float]

_STATUS_MESSAGES: dict[CleanupReason, str] = {
    CleanupReason.TTL_EXPIRED: "Session TTL expired",
    CleanupReason.SHUTDOWN: "Session still open at shutdown",
    CleanupReason.ORPHANED: "Orphaned span",
    CleanupReason.LAZY_PARENT_RELEASED: "Synthesized parent released",
}

_PHASE_STATUS_MESSAGES: dict[CleanupReason, str] = {
    CleanupReason.TTL_EXPIRED: "Phase TTL expired",
    CleanupReason.SHUTDOWN: "Phase still open at shutdown",
}


def to_nanos(seconds: float) -> int:
    """Convert a clock reading in seconds to OpenTelemetry nanoseconds.

    Rounded to whole microseconds; float epoch seconds carry no more
    precision than that.
    """
    return round(seconds * 1_000_000) * 1_000


class SpanRegistry:
    """Owns every live record and the spans they carry.

    Example:
        registry = SpanRegistry(tracer, static_attributes={"plugin.version": "0.1.0"})
        root = registry.open_unit("u1", "session:main", {"session.id": "u1"})
        stats = registry.close_unit("u1", UnitOutcome.SUCCESS)
    """

    def __init__(
        self,
        tracer: Tracer,
        *,
        clock: Clock = time.time,
        static_attributes: Mapping[str, Any] | None = None,
    ) -> None:
        """Initialize empty tables.

        Args:
            tracer: OpenTelemetry tracer used to start every span
            clock: Wall clock in seconds; injected by tests
            static_attributes: Attributes stamped on every trace-segment
                start (root units and phases), e.g. git and plugin version
        """
        self._tracer = tracer
        self._clock = clock
        self._static_attributes = dict(static_attributes or {})
        self._units: dict[str, UnitRecord] = {}
        self._phases: dict[str, PhaseRecord] = {}
        self._handoffs: dict[str, HandoffRecord] = {}
        self._executions: dict[str, ToolExecutionRecord] = {}

    def now(self) -> float:
        return self._clock()

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_unit(self, unit_id: str) -> UnitRecord | None:
        return self._units.get(unit_id)

    def get_phase(self, unit_id: str) -> PhaseRecord | None:
        return self._phases.get(unit_id)

    def get_handoff(self, unit_id: str) -> HandoffRecord | None:
        return self._handoffs.get(unit_id)

    def get_execution(self, call_id: str) -> ToolExecutionRecord | None:
        return self._executions.get(call_id)

    def live_units(self) -> list[UnitRecord]:
        """Snapshot of live units, oldest first."""
        return list(self._units.values())

    def live_phases(self) -> list[PhaseRecord]:
        return list(self._phases.values())

    def pending_handoffs(self) -> list[HandoffRecord]:
        return list(self._handoffs.values())

    def pending_executions(self) -> list[ToolExecutionRecord]:
        return list(self._executions.values())

    @property
    def table_sizes(self) -> dict[str, int]:
        return {
            "units": len(self._units),
            "phases": len(self._phases),
            "handoffs": len(self._handoffs),
            "executions": len(self._executions),
        }

    # =========================================================================
    # Opening
    # =========================================================================

    def open_unit(
        self,
        unit_id: str,
        span_name: str,
        attributes: Mapping[str, Any],
        parent_context: Context | None = None,
        *,
        parent_id: str | None = None,
        phase: str | None = None,
        delegate_type: str | None = None,
        work_ticket: str | None = None,
        lazy: bool = False,
    ) -> UnitRecord:
        """Start a unit span and register its record.

        Without parent_context the span starts a new trace; the empty
        Context keeps whatever span the host has active from leaking in as
        an accidental parent. Opening an id that is already live returns
        the existing record and starts nothing.
        """
        existing = self._units.get(unit_id)
        if existing is not None:
            logger.debug("unit_already_open", unit_id=unit_id)
            return existing

        now = self._clock()
        span_attributes = dict(attributes)
        if parent_context is None:
            span_attributes = {**self._static_attributes, **span_attributes}
            parent_context = Context()
        if work_ticket:
            span_attributes["beads.task_id"] = work_ticket

        span = self._tracer.start_span(
            span_name,
            context=parent_context,
            attributes=span_attributes,
            start_time=to_nanos(now),
        )
        record = UnitRecord(
            unit_id=unit_id,
            span=span,
            context=trace.set_span_in_context(span, parent_context),
            created_at=now,
            parent_id=parent_id,
            phase=phase,
            delegate_type=delegate_type,
            work_ticket=work_ticket,
            lazy=lazy,
        )
        self._units[unit_id] = record
        logger.debug("unit_opened", unit_id=unit_id, span_name=span_name, lazy=lazy, root=parent_id is None)
        return record

    def open_phase(
        self,
        unit_id: str,
        phase: str,
        delegate_type: str,
        attributes: Mapping[str, Any],
        parent_context: Context,
    ) -> PhaseRecord:
        """Start a phase span under an explicit parent context.

        There is no root phase: a phase always descends from the context
        of the unit (or handoff snapshot) that dispatched the work.
        """
        existing = self._phases.get(unit_id)
        if existing is not None:
            return existing

        now = self._clock()
        span = self._tracer.start_span(
            f"phase:{phase}",
            context=parent_context,
            attributes={**self._static_attributes, **attributes},
            start_time=to_nanos(now),
        )
        record = PhaseRecord(
            unit_id=unit_id,
            span=span,
            context=trace.set_span_in_context(span, parent_context),
            created_at=now,
            phase=phase,
            delegate_type=delegate_type,
        )
        self._phases[unit_id] = record
        return record

    # =========================================================================
    # Annotation
    # =========================================================================

    def annotate(self, unit_id: str, name: str, attributes: Mapping[str, Any]) -> bool:
        """Add a point-in-time marker to a live unit span.

        Returns:
            False when the unit is not live and nothing was recorded.
        """
        record = self._units.get(unit_id)
        if record is None:
            return False
        record.span.add_event(name, attributes=dict(attributes), timestamp=to_nanos(self._clock()))
        return True

    # =========================================================================
    # Handoffs and tool executions
    # =========================================================================

    def store_handoff(self, handoff: HandoffRecord) -> HandoffRecord | None:
        """Store a handoff, returning any unconsumed one it replaces."""
        previous = self._handoffs.get(handoff.parent_unit_id)
        self._handoffs[handoff.parent_unit_id] = handoff
        return previous

    def take_handoff(self, unit_id: str) -> HandoffRecord | None:
        """Consume the handoff keyed by a dispatching unit (read once, then gone)."""
        return self._handoffs.pop(unit_id, None)

    def drop_handoff(self, unit_id: str) -> HandoffRecord | None:
        """Evict an unconsumed handoff without handing it to a delegate."""
        handoff = self._handoffs.pop(unit_id, None)
        if handoff is not None:
            logger.debug("handoff_dropped", unit_id=unit_id, delegate_type=handoff.delegate_type)
        return handoff

    def store_execution(self, execution: ToolExecutionRecord) -> None:
        self._executions[execution.call_id] = execution

    def take_execution(self, call_id: str) -> ToolExecutionRecord | None:
        return self._executions.pop(call_id, None)

    def drop_execution(self, call_id: str) -> ToolExecutionRecord | None:
        """Evict a tool execution that never reported completion."""
        execution = self._executions.pop(call_id, None)
        if execution is not None:
            logger.debug("execution_dropped", call_id=call_id, tool=execution.tool)
        return execution

    # =========================================================================
    # Closing
    # =========================================================================

    def close_unit(
        self,
        unit_id: str,
        outcome: UnitOutcome,
        error: ErrorInfo | None = None,
        *,
        cleanup_reason: CleanupReason | None = None,
        ttl_seconds: float | None = None,
    ) -> UnitStats | None:
        """Finalize and evict a unit, closing its phase first.

        The phase wraps the unit span, so it is ended before the unit to
        preserve containment. Any handoff the unit left unconsumed is
        discarded with it; a delegate arriving later attaches to a lazily
        synthesized parent instead.

        Args:
            unit_id: Session to close
            outcome: SUCCESS for idle, ERROR for failures and force-closes
            error: Host-reported failure, if any
            cleanup_reason: Set when the engine, not the host, ends the unit
            ttl_seconds: TTL that was exceeded, for the expiry marker

        Returns:
            Flushed tool statistics, or None if the unit was already closed.
        """
        record = self._units.pop(unit_id, None)
        if record is None:
            logger.debug("unit_already_closed", unit_id=unit_id)
            return None

        now = self._clock()
        age_seconds = now - record.created_at
        duration_ms = age_seconds * 1000
        success = outcome == UnitOutcome.SUCCESS
        aggregate = record.tools

        phase = self._phases.pop(unit_id, None)
        if phase is not None:
            self._end_phase(
                phase,
                success=success,
                error_message=None if success else self._status_message(error, cleanup_reason),
                aggregate=aggregate,
                cleanup_reason=cleanup_reason,
                ttl_seconds=ttl_seconds,
                now=now,
            )

        span = record.span
        discarded = self._handoffs.pop(unit_id, None)
        if discarded is not None:
            span.add_event(
                "handoff.discarded",
                attributes={"handoff.subagent_type": discarded.delegate_type},
                timestamp=to_nanos(now),
            )

        span.set_attributes(
            {
                "session.duration_ms": duration_ms,
                "session.success": success,
                "session.message_count": record.message_count,
                "session.cumulative_input_tokens": record.cumulative_input_tokens,
                "session.cumulative_output_tokens": record.cumulative_output_tokens,
                **aggregate.as_attributes(),
            }
        )
        if cleanup_reason is not None:
            self._mark_cleanup(span, "session", cleanup_reason, age_seconds, ttl_seconds, now)
        if error is not None and error.detailed:
            span.set_attribute("error.name", error.name)
            span.set_attribute("error.message", error.message)

        if success:
            span.set_status(Status(StatusCode.OK))
        else:
            span.set_status(Status(StatusCode.ERROR, self._status_message(error, cleanup_reason)))
        span.end(end_time=to_nanos(now))

        logger.debug(
            "unit_closed",
            unit_id=unit_id,
            outcome=outcome.value,
            duration_ms=duration_ms,
            cleanup_reason=cleanup_reason.value if cleanup_reason else None,
        )

        self._release_lazy_parent(record)

        return UnitStats(
            unit_id=unit_id,
            outcome=outcome,
            duration_ms=duration_ms,
            tools_summary=aggregate.summary,
            total_tool_count=aggregate.total_count,
            error_count=aggregate.error_total,
            total_tool_duration_ms=aggregate.total_duration_ms,
            executions=aggregate.executions,
        )

    def close_phase(
        self,
        unit_id: str,
        cleanup_reason: CleanupReason,
        *,
        detail: str | None = None,
        ttl_seconds: float | None = None,
    ) -> bool:
        """Force-close a phase on its own, without its unit.

        Used for orphans (no paired unit) and for phases outliving their TTL.

        Returns:
            False if no phase was live under unit_id.
        """
        phase = self._phases.pop(unit_id, None)
        if phase is None:
            return False

        now = self._clock()
        phase.span.set_attribute("phase.success", False)
        phase.span.set_attribute("phase.duration_ms", (now - phase.created_at) * 1000)
        if cleanup_reason == CleanupReason.ORPHANED:
            reason = detail or "unit_missing"
            phase.span.set_attribute("phase.cleanup_reason", cleanup_reason.value)
            phase.span.set_attribute("phase.orphan_reason", reason)
            phase.span.add_event(
                "cleanup.orphaned_phase_span",
                attributes={
                    "cleanup.type": "orphaned_phase",
                    "cleanup.reason": reason,
                    "cleanup.session_id": unit_id,
                },
                timestamp=to_nanos(now),
            )
            message = f"Orphaned phase span: {reason}"
        else:
            self._mark_cleanup(phase.span, "phase", cleanup_reason, now - phase.created_at, ttl_seconds, now)
            message = _PHASE_STATUS_MESSAGES.get(cleanup_reason, "Phase force-closed")
        phase.span.set_status(Status(StatusCode.ERROR, message))
        phase.span.end(end_time=to_nanos(now))
        logger.debug("phase_force_closed", unit_id=unit_id, reason=cleanup_reason.value, detail=detail)
        return True

    def close_orphaned_phase(self, unit_id: str, reason: str) -> bool:
        """Force-close a phase whose unit is no longer live."""
        if unit_id in self._units:
            return False
        return self.close_phase(unit_id, CleanupReason.ORPHANED, detail=reason)

    def _end_phase(
        self,
        phase: PhaseRecord,
        *,
        success: bool,
        error_message: str | None,
        aggregate: ToolAggregate,
        cleanup_reason: CleanupReason | None,
        ttl_seconds: float | None,
        now: float,
    ) -> None:
        span = phase.span
        span.set_attributes(
            {
                "phase.duration_ms": (now - phase.created_at) * 1000,
                "phase.success": success,
                "tools.summary": aggregate.summary or "none",
                "tools.total_count": aggregate.total_count,
                "tools.error_count": aggregate.error_total,
            }
        )
        if cleanup_reason is not None:
            self._mark_cleanup(span, "phase", cleanup_reason, now - phase.created_at, ttl_seconds, now)
        if success:
            span.set_status(Status(StatusCode.OK))
        else:
            span.set_status(Status(StatusCode.ERROR, error_message or "Session ended with error"))
        span.end(end_time=to_nanos(now))

    def _mark_cleanup(
        self,
        span: Span,
        kind: str,
        reason: CleanupReason,
        age_seconds: float,
        ttl_seconds: float | None,
        now: float,
    ) -> None:
        age_ms = age_seconds * 1000
        span.set_attribute(f"{kind}.cleanup_reason", reason.value)
        span.set_attribute(f"{kind}.age_ms", age_ms)
        event_attributes: dict[str, Any] = {"cleanup.type": kind, "cleanup.age_ms": age_ms}
        if ttl_seconds is not None:
            event_attributes["cleanup.ttl_ms"] = ttl_seconds * 1000
        span.add_event(f"cleanup.{reason.value}", attributes=event_attributes, timestamp=to_nanos(now))

    @staticmethod
    def _status_message(error: ErrorInfo | None, cleanup_reason: CleanupReason | None) -> str:
        if error is not None:
            return error.message
        if cleanup_reason is not None:
            return _STATUS_MESSAGES[cleanup_reason]
        return "Session ended with error"

    def _release_lazy_parent(self, child: UnitRecord) -> None:
        """Close a synthesized parent once its last attached delegate is gone."""
        if child.parent_id is None:
            return
        parent = self._units.get(child.parent_id)
        if parent is None or not parent.lazy or child.unit_id not in parent.lazy_children:
            return
        parent.lazy_children.discard(child.unit_id)
        if not parent.lazy_children:
            self.close_unit(
                parent.unit_id,
                UnitOutcome.SUCCESS,
                cleanup_reason=CleanupReason.LAZY_PARENT_RELEASED,
            )
