# src/agenttrace/contracts/__init__.py
"""Shared contracts: host event variants, enums and errors."""

from agenttrace.contracts.enums import (
    CleanupReason,
    CorrelationStrategy,
    MessageRole,
    ToolStatus,
    UnitOutcome,
)
from agenttrace.contracts.errors import AgentTraceError, EventParseError
from agenttrace.contracts.events import (
    HostEvent,
    MessageUpdated,
    TokenUsage,
    ToolPartUpdated,
    UnitCreated,
    UnitError,
    UnitIdle,
)

__all__ = [
    "AgentTraceError",
    "CleanupReason",
    "CorrelationStrategy",
    "EventParseError",
    "HostEvent",
    "MessageRole",
    "MessageUpdated",
    "TokenUsage",
    "ToolPartUpdated",
    "ToolStatus",
    "UnitCreated",
    "UnitError",
    "UnitIdle",
    "UnitOutcome",
]
