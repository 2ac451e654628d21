# src/agenttrace/engine/sweeper.py
"""TTL garbage collection for the span registry.

The host's event stream is not guaranteed to terminate anything: a session
can vanish without idle/error, a tool can start and never report back, a
delegate can be dispatched and never start. The collector reaps all of it.

TTL tiers (see agenttrace.core.config):
- Tool executions: 5 minutes (dropped, breadcrumb on the owning unit)
- Handoffs: 10 minutes (dropped, breadcrumb on the dispatching unit)
- Units and phases: 30 minutes (closed with ERROR and a cleanup reason)

Sweep order is executions, handoffs, units, then phases, so breadcrumbs
land on unit spans before those spans close and phases left without a
unit are caught in the same pass.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from agenttrace.contracts.enums import CleanupReason, UnitOutcome
from agenttrace.core.config import (
    HANDOFF_TTL_SECONDS,
    PHASE_TTL_SECONDS,
    SWEEP_INTERVAL_SECONDS,
    TOOL_EXECUTION_TTL_SECONDS,
    UNIT_TTL_SECONDS,
)
from agenttrace.engine.registry import SpanRegistry

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class TTLPolicy:
    """Maximum age, in seconds, for each registry table."""

    unit_seconds: float = UNIT_TTL_SECONDS
    phase_seconds: float = PHASE_TTL_SECONDS
    handoff_seconds: float = HANDOFF_TTL_SECONDS
    execution_seconds: float = TOOL_EXECUTION_TTL_SECONDS


@dataclass(slots=True)
class SweepReport:
    """Number of records reaped from each table in one sweep."""

    executions: int = 0
    handoffs: int = 0
    units: int = 0
    phases: int = 0
    orphaned_phases: int = 0

    @property
    def total(self) -> int:
        return self.executions + self.handoffs + self.units + self.phases + self.orphaned_phases


class GarbageCollector:
    """Force-finalizes stale records.

    Idempotent: a record reaped once is gone, so a second sweep over the
    same state reports zero.

    Example:
        collector = GarbageCollector(registry)
        report = collector.sweep()
        report = collector.sweep(force=True)  # at shutdown
    """

    def __init__(self, registry: SpanRegistry, policy: TTLPolicy | None = None) -> None:
        self._registry = registry
        self._policy = policy or TTLPolicy()

    @property
    def policy(self) -> TTLPolicy:
        return self._policy

    def sweep(self, *, force: bool = False) -> SweepReport:
        """Reap expired records, or every record when force is set.

        Args:
            force: Close everything regardless of age, with reason
                "shutdown" instead of "ttl_expired"
        """
        reason = CleanupReason.SHUTDOWN if force else CleanupReason.TTL_EXPIRED
        now = self._registry.now()
        report = SweepReport()
        policy = self._policy

        for execution in self._registry.pending_executions():
            age = now - execution.started_at
            if not force and age <= policy.execution_seconds:
                continue
            if self._registry.drop_execution(execution.call_id) is None:
                continue
            report.executions += 1
            self._registry.annotate(
                execution.unit_id,
                "cleanup.tool_ttl_expired",
                {
                    "cleanup.type": "tool_execution",
                    "cleanup.reason": reason.value,
                    "tool.name": execution.tool,
                    "tool.call_id": execution.call_id,
                    "cleanup.age_ms": age * 1000,
                    "cleanup.ttl_ms": policy.execution_seconds * 1000,
                },
            )

        for handoff in self._registry.pending_handoffs():
            age = now - handoff.created_at
            if not force and age <= policy.handoff_seconds:
                continue
            if self._registry.drop_handoff(handoff.parent_unit_id) is None:
                continue
            report.handoffs += 1
            self._registry.annotate(
                handoff.parent_unit_id,
                "cleanup.handoff_ttl_expired",
                {
                    "cleanup.type": "handoff",
                    "cleanup.reason": reason.value,
                    "cleanup.subagent_type": handoff.delegate_type,
                    "cleanup.age_ms": age * 1000,
                    "cleanup.ttl_ms": policy.handoff_seconds * 1000,
                },
            )

        for unit in self._registry.live_units():
            if not force and now - unit.created_at <= policy.unit_seconds:
                continue
            stats = self._registry.close_unit(
                unit.unit_id,
                UnitOutcome.ERROR,
                cleanup_reason=reason,
                ttl_seconds=None if force else policy.unit_seconds,
            )
            if stats is not None:
                report.units += 1

        for phase in self._registry.live_phases():
            if self._registry.get_unit(phase.unit_id) is None:
                if self._registry.close_orphaned_phase(phase.unit_id, "unit_missing"):
                    report.orphaned_phases += 1
                continue
            if not force and now - phase.created_at <= policy.phase_seconds:
                continue
            if self._registry.close_phase(
                phase.unit_id,
                reason,
                ttl_seconds=None if force else policy.phase_seconds,
            ):
                report.phases += 1

        if report.total:
            logger.info(
                "sweep_reaped_records",
                reason=reason.value,
                executions=report.executions,
                handoffs=report.handoffs,
                units=report.units,
                phases=report.phases,
                orphaned_phases=report.orphaned_phases,
            )
        return report


class SweepScheduler:
    """Runs a sweep callable on a fixed interval in a background thread.

    Thread Safety:
        The callable runs on the scheduler thread; it must take whatever
        lock guards the registry.
    """

    def __init__(
        self,
        sweep: Callable[[], object],
        interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._sweep = sweep
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="agenttrace-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.debug("sweeper_started", interval_seconds=self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("sweeper_stop_timed_out", timeout=timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._sweep()
            except Exception as e:
                # Log but keep running - a failed sweep must not stop collection
                logger.error("sweep_failed", error=str(e), exc_info=True)
