# src/agenttrace/engine/__init__.py
"""Correlation engine: span registry, delegation handling, tool activity and TTL sweeps."""

from agenttrace.engine.aggregate import ToolAggregate, ToolErrorEntry
from agenttrace.engine.correlation import CorrelationEngine
from agenttrace.engine.dispatcher import EventDispatcher, parse_host_event
from agenttrace.engine.records import (
    ErrorInfo,
    HandoffRecord,
    PhaseRecord,
    ToolExecutionRecord,
    UnitRecord,
    UnitStats,
)
from agenttrace.engine.registry import SpanRegistry
from agenttrace.engine.sweeper import GarbageCollector, SweepReport, SweepScheduler, TTLPolicy
from agenttrace.engine.tool_activity import ToolActivityRecorder

__all__ = [
    "CorrelationEngine",
    "ErrorInfo",
    "EventDispatcher",
    "GarbageCollector",
    "HandoffRecord",
    "PhaseRecord",
    "SpanRegistry",
    "SweepReport",
    "SweepScheduler",
    "TTLPolicy",
    "ToolActivityRecorder",
    "ToolAggregate",
    "ToolErrorEntry",
    "ToolExecutionRecord",
    "UnitRecord",
    "UnitStats",
    "parse_host_event",
]
