# src/agenttrace/engine/tool_activity.py
"""Tool activity recorder.

Tool invocations never get spans. Each one becomes a pair of markers on
the owning unit's span (start, then end or error) plus an update to that
unit's ToolAggregate, correlated through the call id.

A delegate-work invocation additionally leaves a HandoffRecord behind so
the delegated session, created moments later, can attach to this trace.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from agenttrace.core.config import DEFAULT_DELEGATE_TOOL
from agenttrace.core.identifiers import args_preview, truncate
from agenttrace.engine.aggregate import ToolErrorEntry
from agenttrace.engine.correlation import CorrelationEngine
from agenttrace.engine.records import HandoffRecord, ToolExecutionRecord, UnitRecord
from agenttrace.engine.registry import SpanRegistry

logger = structlog.get_logger(__name__)


class ToolActivityRecorder:
    """Turns tool start/end/error signals into aggregates and span markers.

    Thread Safety:
        NOT thread-safe. Calls are serialised by the plugin's lock.
    """

    def __init__(
        self,
        registry: SpanRegistry,
        correlation: CorrelationEngine,
        *,
        delegate_tool_name: str = DEFAULT_DELEGATE_TOOL,
    ) -> None:
        self._registry = registry
        self._correlation = correlation
        self._delegate_tool_name = delegate_tool_name

    def on_tool_start(
        self,
        unit_id: str,
        call_id: str,
        tool_name: str,
        args: Mapping[str, Any] | None = None,
    ) -> ToolExecutionRecord:
        """Record the start of a tool invocation.

        Opens a lazy root unit when the session's creation was never seen,
        so tool activity is never lost when tracing attaches mid-stream.
        """
        unit = self._registry.get_unit(unit_id)
        if unit is None:
            unit = self._correlation.open_lazy_unit(unit_id)

        now = self._registry.now()
        sequence_number = unit.tools.record_start(tool_name)
        preview = args_preview(tool_name, args, delegate_tool_name=self._delegate_tool_name)
        execution = ToolExecutionRecord(
            tool=tool_name,
            call_id=call_id,
            started_at=now,
            sequence_number=sequence_number,
            unit_id=unit_id,
            args_preview=preview,
        )
        self._registry.store_execution(execution)

        marker: dict[str, Any] = {
            "tool.name": tool_name,
            "tool.call_id": call_id,
            "tool.sequence_number": sequence_number,
            "tool.args_preview": preview,
        }
        delegate_type = self._delegate_type(tool_name, args)
        if delegate_type is not None and args is not None:
            marker["task.subagent_type"] = delegate_type
            marker["task.description"] = truncate(str(args.get("description") or ""))
        self._registry.annotate(unit_id, f"tool.{tool_name}.start", marker)

        if delegate_type is not None:
            self._store_handoff(unit, delegate_type, args, now)
        return execution

    def on_tool_end(
        self,
        call_id: str,
        tool_name: str | None = None,
        title: str | None = None,
        output_length: int = 0,
        duration_hint_ms: float | None = None,
    ) -> bool:
        """Record successful completion.

        Returns:
            False when no execution was pending under call_id.
        """
        execution = self._registry.take_execution(call_id)
        if execution is None:
            logger.debug("tool_end_without_start", call_id=call_id)
            return False

        unit = self._registry.get_unit(execution.unit_id)
        if unit is None:
            return False

        duration_ms = self._elapsed_ms(execution, duration_hint_ms)
        unit.tools.record_duration(duration_ms)
        name = tool_name or execution.tool
        self._registry.annotate(
            execution.unit_id,
            f"tool.{name}.end",
            {
                "tool.name": name,
                "tool.call_id": call_id,
                "tool.sequence_number": execution.sequence_number,
                "tool.duration_ms": duration_ms,
                "tool.title": title or "",
                "tool.output_length": output_length,
                "tool.success": True,
            },
        )
        return True

    def on_tool_error(self, call_id: str, message: str | None = None) -> bool:
        """Record a failed invocation. The owning unit is unaffected.

        Returns:
            False when no execution was pending under call_id.
        """
        execution = self._registry.take_execution(call_id)
        if execution is None:
            logger.debug("tool_error_without_start", call_id=call_id)
            return False

        unit = self._registry.get_unit(execution.unit_id)
        if unit is None:
            return False

        now = self._registry.now()
        error_message = message or "Unknown error"
        unit.tools.record_error(
            ToolErrorEntry(
                tool=execution.tool,
                message=error_message,
                timestamp=now,
                call_id=call_id,
                sequence_number=execution.sequence_number,
            )
        )
        unit.tools.record_duration(self._elapsed_ms(execution, None))
        self._registry.annotate(
            execution.unit_id,
            "tool.error",
            {
                "tool.name": execution.tool,
                "tool.call_id": call_id,
                "tool.sequence_number": execution.sequence_number,
                "tool.error_message": error_message,
            },
        )
        logger.debug("tool_error_recorded", call_id=call_id, tool=execution.tool, unit_id=execution.unit_id)
        return True

    def _delegate_type(self, tool_name: str, args: Mapping[str, Any] | None) -> str | None:
        if tool_name != self._delegate_tool_name or not args:
            return None
        delegate_type = args.get("subagent_type")
        if not delegate_type:
            return None
        return str(delegate_type)

    def _store_handoff(
        self,
        unit: UnitRecord,
        delegate_type: str,
        args: Mapping[str, Any] | None,
        now: float,
    ) -> None:
        span_context = unit.span.get_span_context()
        handoff = HandoffRecord(
            parent_unit_id=unit.unit_id,
            delegate_type=delegate_type,
            task_description=str((args or {}).get("description") or ""),
            parent_span_context=span_context,
            created_at=now,
        )
        replaced = self._registry.store_handoff(handoff)
        if replaced is not None:
            logger.debug(
                "handoff_replaced",
                unit_id=unit.unit_id,
                previous_type=replaced.delegate_type,
                delegate_type=delegate_type,
            )
        self._registry.annotate(
            unit.unit_id,
            "handoff.stored",
            {
                "handoff.subagent_type": delegate_type,
                "handoff.parent_trace_id": f"{span_context.trace_id:032x}",
                "handoff.parent_span_id": f"{span_context.span_id:016x}",
                "handoff.pending_count": self._registry.table_sizes["handoffs"],
            },
        )

    def _elapsed_ms(self, execution: ToolExecutionRecord, hint_ms: float | None) -> float:
        elapsed = (self._registry.now() - execution.started_at) * 1000
        if elapsed < 0 and hint_ms is not None:
            return hint_ms
        return max(elapsed, 0.0)
