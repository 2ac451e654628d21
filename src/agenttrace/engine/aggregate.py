# src/agenttrace/engine/aggregate.py
"""Per-unit tool execution statistics.

A ToolAggregate is owned by exactly one UnitRecord and is flushed into
that unit's span attributes when the unit closes. Tool calls never get
spans of their own; this aggregate plus the span events are the whole
record of tool activity.
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from agenttrace.core.config import MAX_RETAINED_TOOL_ERRORS
from agenttrace.core.identifiers import tools_summary


@dataclass(frozen=True, slots=True)
class ToolErrorEntry:
    """One failed tool invocation."""

    tool: str
    message: str
    timestamp: float
    call_id: str
    sequence_number: int


@dataclass(slots=True)
class ToolAggregate:
    """Counts, durations and errors for one unit's tool calls.

    Thread Safety:
        NOT thread-safe. Mutated only under the plugin's handler lock.

    Attributes:
        counts: Invocation count by tool name, in first-use order
        errors: Retained error entries, oldest first, capped at max_errors
        error_total: Every error seen, including ones not retained
        total_duration_ms: Summed duration of finished invocations
        executions: Total invocations started; also the last sequence number
    """

    counts: dict[str, int] = field(default_factory=dict)
    errors: list[ToolErrorEntry] = field(default_factory=list)
    error_total: int = 0
    total_duration_ms: float = 0.0
    executions: int = 0
    max_errors: int = MAX_RETAINED_TOOL_ERRORS

    def record_start(self, tool: str) -> int:
        """Count a new invocation and return its sequence number."""
        self.executions += 1
        self.counts[tool] = self.counts.get(tool, 0) + 1
        return self.executions

    def record_duration(self, duration_ms: float) -> None:
        self.total_duration_ms += max(duration_ms, 0.0)

    def record_error(self, entry: ToolErrorEntry) -> None:
        """Append an error; entries beyond max_errors are counted, not kept."""
        self.error_total += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(entry)

    @property
    def total_count(self) -> int:
        return sum(self.counts.values())

    @property
    def summary(self) -> str:
        return tools_summary(self.counts)

    def as_attributes(self) -> dict[str, Any]:
        """Span attributes describing this aggregate."""
        attributes: dict[str, Any] = {
            "tools.summary": self.summary or "none",
            "tools.total_count": self.total_count,
            "tools.unique_types": len(self.counts),
            "tools.error_count": self.error_total,
            "tools.total_duration_ms": self.total_duration_ms,
            "tools.executions": self.executions,
        }
        if self.errors:
            attributes["tools.errors_detail"] = json.dumps([asdict(e) for e in self.errors])
        return attributes
