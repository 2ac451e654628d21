# src/agenttrace/engine/correlation.py
"""Correlation engine: root vs delegated classification on unit creation.

When the host reports a new session, the engine decides whether it is a
root session (new trace) or a delegated sub-agent whose spans must attach
to the dispatcher's trace.

Delegation signals are tried in a configurable order:
- PARENT_ID: the creation event names a parent session
- TITLE: the title reads "<type> subagent" (hosts that omit parent linkage)

The parent's trace context is then resolved, most authoritative first:
1. A handoff left by the parent's delegate-work tool call (consumed)
2. The parent's live unit span
3. A synthesized "lazy" parent root, so the child always lands in some
   valid trace even when the parent was never observed or already closed
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog
from opentelemetry import trace
from opentelemetry.context import Context
from opentelemetry.trace import NonRecordingSpan

from agenttrace.contracts.enums import CorrelationStrategy
from agenttrace.contracts.events import UnitCreated
from agenttrace.core.identifiers import (
    extract_delegate_type,
    extract_work_ticket,
    phase_for_delegate_type,
    truncate,
)
from agenttrace.engine.records import HandoffRecord, UnitRecord
from agenttrace.engine.registry import SpanRegistry

logger = structlog.get_logger(__name__)

ROOT_SPAN_NAME = "session:main"
UNKNOWN_DELEGATE_TYPE = "unknown"
DEFAULT_STRATEGIES: tuple[CorrelationStrategy, ...] = (
    CorrelationStrategy.PARENT_ID,
    CorrelationStrategy.TITLE,
)


@dataclass(frozen=True, slots=True)
class Resolution:
    """Outcome of delegation analysis for one new unit.

    Attributes:
        strategy: Signal that classified the unit as delegated
        delegate_type: Delegated-unit type used for phase mapping
        parent_id: Unit the child attaches under (possibly synthesized)
        parent_context: Context the phase span is started in
        handoff: Consumed handoff, if one was found
        parent_found: True when a live parent unit was found
        lazy_parent: True when the parent was synthesized on demand
    """

    strategy: CorrelationStrategy
    delegate_type: str
    parent_id: str
    parent_context: Context
    handoff: HandoffRecord | None
    parent_found: bool
    lazy_parent: bool


class CorrelationEngine:
    """Builds the span structure for newly created units.

    Example:
        engine = CorrelationEngine(registry)
        record = engine.on_unit_created(UnitCreated(unit_id="u2", parent_id="u1"))
        assert registry.get_phase("u2") is not None
    """

    def __init__(
        self,
        registry: SpanRegistry,
        *,
        strategies: Sequence[CorrelationStrategy | str] = DEFAULT_STRATEGIES,
        phase_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self._registry = registry
        self._strategies = tuple(CorrelationStrategy(s) for s in strategies)
        self._phase_overrides = dict(phase_overrides or {})

    @property
    def strategies(self) -> tuple[CorrelationStrategy, ...]:
        return self._strategies

    def on_unit_created(self, event: UnitCreated) -> UnitRecord:
        """Open the span(s) for a new unit.

        A second creation event for a live id is ignored and the existing
        record returned.
        """
        existing = self._registry.get_unit(event.unit_id)
        if existing is not None:
            logger.debug("duplicate_unit_created_ignored", unit_id=event.unit_id)
            return existing

        strategy = self._classify(event)
        if strategy is None:
            return self._open_root(event)
        resolution = self._resolve_parent(event, strategy)
        return self._open_delegated(event, resolution)

    def open_lazy_unit(self, unit_id: str) -> UnitRecord:
        """Open a root unit for a session whose creation was never observed."""
        logger.debug("lazy_unit_opened", unit_id=unit_id)
        return self._registry.open_unit(
            unit_id,
            ROOT_SPAN_NAME,
            {
                "session.id": unit_id,
                "session.is_subagent": False,
                "session.lazy_created": True,
            },
            lazy=True,
        )

    # =========================================================================
    # Classification
    # =========================================================================

    def _classify(self, event: UnitCreated) -> CorrelationStrategy | None:
        for strategy in self._strategies:
            match strategy:
                case CorrelationStrategy.PARENT_ID if event.parent_id:
                    return strategy
                case CorrelationStrategy.TITLE if extract_delegate_type(event.title):
                    return strategy
        return None

    def _resolve_parent(self, event: UnitCreated, strategy: CorrelationStrategy) -> Resolution:
        title_type = extract_delegate_type(event.title)
        parent_unit: UnitRecord | None = None

        if event.parent_id:
            parent_id = event.parent_id
            parent_unit = self._registry.get_unit(parent_id)
        else:
            parent_unit = self._latest_root_unit(exclude=event.unit_id)
            parent_id = parent_unit.unit_id if parent_unit is not None else f"{event.unit_id}/parent"

        handoff = self._registry.take_handoff(parent_id)

        if strategy == CorrelationStrategy.TITLE:
            delegate_type = title_type or (handoff.delegate_type if handoff else None)
        else:
            delegate_type = (handoff.delegate_type if handoff else None) or title_type
        delegate_type = delegate_type or UNKNOWN_DELEGATE_TYPE

        lazy_parent = False
        if parent_unit is not None and parent_unit.lazy_children:
            # A synthesized parent is released only by its last attached child
            parent_unit.lazy_children.add(event.unit_id)
            lazy_parent = True

        if handoff is not None:
            parent_context = trace.set_span_in_context(NonRecordingSpan(handoff.parent_span_context), Context())
        elif parent_unit is not None:
            parent_context = parent_unit.context
        else:
            lazy = self.open_lazy_unit(parent_id)
            lazy.lazy_children.add(event.unit_id)
            parent_context = lazy.context
            lazy_parent = True
            logger.info(
                "lazy_parent_synthesized",
                unit_id=event.unit_id,
                parent_id=parent_id,
                strategy=strategy.value,
            )

        return Resolution(
            strategy=strategy,
            delegate_type=delegate_type,
            parent_id=parent_id,
            parent_context=parent_context,
            handoff=handoff,
            parent_found=parent_unit is not None,
            lazy_parent=lazy_parent,
        )

    def _latest_root_unit(self, *, exclude: str) -> UnitRecord | None:
        """Most recently created live root unit, the likeliest dispatcher."""
        for record in reversed(self._registry.live_units()):
            if record.unit_id != exclude and not record.is_delegated:
                return record
        return None

    # =========================================================================
    # Span construction
    # =========================================================================

    def _open_root(self, event: UnitCreated) -> UnitRecord:
        return self._registry.open_unit(
            event.unit_id,
            ROOT_SPAN_NAME,
            {
                "session.id": event.unit_id,
                "session.title": event.title,
                "session.is_subagent": False,
                "project.id": event.project_id,
                "project.directory": event.directory,
            },
            work_ticket=extract_work_ticket(event.title),
        )

    def _open_delegated(self, event: UnitCreated, resolution: Resolution) -> UnitRecord:
        task_description = resolution.handoff.task_description if resolution.handoff else ""
        work_ticket = extract_work_ticket(event.title) or extract_work_ticket(task_description)
        phase_name = phase_for_delegate_type(resolution.delegate_type, self._phase_overrides)
        parent_span_context = trace.get_current_span(resolution.parent_context).get_span_context()

        phase_attributes: dict[str, Any] = {
            "phase.name": phase_name,
            "phase.agent_type": resolution.delegate_type,
            "session.id": event.unit_id,
            "session.is_subagent": True,
            "session.parent_id": resolution.parent_id,
            "correlation.strategy": resolution.strategy.value,
            "correlation.handoff_consumed": resolution.handoff is not None,
            "correlation.parent_found": resolution.parent_found,
            "correlation.lazy_parent": resolution.lazy_parent,
            "correlation.parent_trace_id": trace.format_trace_id(parent_span_context.trace_id),
        }
        if work_ticket:
            phase_attributes["beads.task_id"] = work_ticket

        phase = self._registry.open_phase(
            event.unit_id,
            phase_name,
            resolution.delegate_type,
            phase_attributes,
            resolution.parent_context,
        )
        record = self._registry.open_unit(
            event.unit_id,
            f"agent:{resolution.delegate_type}",
            {
                "agent.type": resolution.delegate_type,
                "session.id": event.unit_id,
                "session.is_subagent": True,
                "session.parent_id": resolution.parent_id,
                "session.title": event.title,
                "session.task_description": truncate(task_description),
                "project.id": event.project_id,
                "project.directory": event.directory,
            },
            phase.context,
            parent_id=resolution.parent_id,
            phase=phase_name,
            delegate_type=resolution.delegate_type,
            work_ticket=work_ticket,
        )
        logger.debug(
            "delegated_unit_opened",
            unit_id=event.unit_id,
            parent_id=resolution.parent_id,
            phase=phase_name,
            strategy=resolution.strategy.value,
            handoff_consumed=resolution.handoff is not None,
        )
        return record
