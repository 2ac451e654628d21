# src/agenttrace/telemetry/plugin.py
"""Host-facing pluggy plugin.

TracingPlugin implements the AgentTraceHostSpec hooks. It wires the
engine together (registry, correlation, tool activity, dispatcher,
collector), serialises every hook call and every sweep behind one lock,
and owns the shutdown sequence:

1. Stop the sweeper thread
2. Force-sweep every live record (reason "shutdown")
3. Flush and shut down the tracer provider

install_exit_hooks() runs that sequence at interpreter exit and on SIGTERM,
so spans still open when the host process ends are closed and exported.

No hook ever raises into the host. Unexpected exceptions are logged and
swallowed so a tracing bug costs trace completeness, never the host.
"""

from __future__ import annotations

import atexit
import signal
import threading
import time
from collections.abc import Iterable, Mapping
from types import FrameType, TracebackType
from typing import Any

import structlog
from opentelemetry.sdk.trace import TracerProvider

from agenttrace import __version__
from agenttrace.core.config import SWEEP_INTERVAL_SECONDS, TracingSettings, load_settings
from agenttrace.core.identifiers import GitContext, capture_git_context
from agenttrace.core.logging import configure_logging
from agenttrace.engine.correlation import CorrelationEngine
from agenttrace.engine.dispatcher import EventDispatcher
from agenttrace.engine.registry import Clock, SpanRegistry
from agenttrace.engine.sweeper import GarbageCollector, SweepReport, SweepScheduler, TTLPolicy
from agenttrace.engine.tool_activity import ToolActivityRecorder
from agenttrace.telemetry.factory import create_tracer_provider
from agenttrace.telemetry.hookspecs import hookimpl

logger = structlog.get_logger(__name__)

TRACER_NAME = "agenttrace"


class TracingPlugin:
    """pluggy plugin turning host events into an OpenTelemetry trace.

    Example:
        with TracingPlugin(settings) as plugin:
            pm.register(plugin)
            ...  # host runs; hooks fire
        # all spans closed and flushed here

    Thread Safety:
        Hooks may be called from the host's thread while the sweeper runs
        on its own; one lock serialises them.
    """

    def __init__(
        self,
        settings: TracingSettings,
        *,
        tracer_provider: TracerProvider | None = None,
        exporter_plugins: Iterable[Any] = (),
        clock: Clock = time.time,
        ttl_policy: TTLPolicy | None = None,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
        git_context: GitContext | None = None,
    ) -> None:
        """Build the engine.

        Args:
            settings: Validated tracing settings
            tracer_provider: Provider to trace into. When omitted one is
                built from settings and owned (shut down) by the plugin.
            exporter_plugins: Extra agenttrace_get_exporters plugins
            clock: Wall clock in seconds; injected by tests
            ttl_policy: Overrides the default TTL tiers
            sweep_interval_seconds: Period of the background sweep
            git_context: Branch/commit to stamp on trace roots; captured
                from the working directory when omitted
        """
        self._settings = settings
        self._owns_provider = tracer_provider is None
        self._provider = tracer_provider or create_tracer_provider(settings, exporter_plugins=exporter_plugins)

        git = git_context if git_context is not None else capture_git_context()
        self._registry = SpanRegistry(
            self._provider.get_tracer(TRACER_NAME, __version__),
            clock=clock,
            static_attributes={**git.as_attributes(), "plugin.version": __version__},
        )
        correlation = CorrelationEngine(
            self._registry,
            strategies=settings.correlation_strategies,
            phase_overrides=settings.phase_overrides,
        )
        recorder = ToolActivityRecorder(
            self._registry,
            correlation,
            delegate_tool_name=settings.delegate_tool_name,
        )
        self._dispatcher = EventDispatcher(self._registry, correlation, recorder)
        self._collector = GarbageCollector(self._registry, ttl_policy)
        self._scheduler = SweepScheduler(self.sweep, sweep_interval_seconds)
        self._lock = threading.Lock()
        self._closed = False
        self._exit_hooks_installed = False
        self._previous_sigterm: Any = None

    @property
    def registry(self) -> SpanRegistry:
        return self._registry

    @property
    def settings(self) -> TracingSettings:
        return self._settings

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> TracingPlugin:
        """Start the background sweeper."""
        self._scheduler.start()
        logger.info(
            "tracing_plugin_started",
            service_name=self._settings.service_name,
            dataset=self._settings.dataset,
            exporters=[e.name for e in self._settings.exporters],
        )
        return self

    def sweep(self, *, force: bool = False) -> SweepReport:
        with self._lock:
            return self._collector.sweep(force=force)

    def install_exit_hooks(self) -> None:
        """Run shutdown() at interpreter exit and on SIGTERM.

        The SIGTERM handler is only installed from the main thread, where
        signal.signal() is allowed. It shuts down, then hands the signal
        to whatever handler was installed before.
        """
        if self._exit_hooks_installed:
            return
        self._exit_hooks_installed = True
        atexit.register(self.shutdown)

        # signal.signal() raises ValueError off the main thread
        if threading.current_thread() is not threading.main_thread():
            return
        self._previous_sigterm = signal.getsignal(signal.SIGTERM)
        signal.signal(signal.SIGTERM, self._on_sigterm)

    def _on_sigterm(self, signum: int, frame: FrameType | None) -> None:
        previous = self._previous_sigterm
        self.shutdown()
        if callable(previous):
            previous(signum, frame)
        elif previous != signal.SIG_IGN:
            signal.signal(signum, signal.SIG_DFL)
            signal.raise_signal(signum)

    def _remove_exit_hooks(self) -> None:
        if not self._exit_hooks_installed:
            return
        self._exit_hooks_installed = False
        atexit.unregister(self.shutdown)
        if (
            threading.current_thread() is threading.main_thread()
            and signal.getsignal(signal.SIGTERM) == self._on_sigterm
        ):
            signal.signal(signal.SIGTERM, self._previous_sigterm)

    def shutdown(self) -> None:
        """Close every live span and drain the exporter. Idempotent.

        The provider is flushed even when the forced sweep fails.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._remove_exit_hooks()
        self._scheduler.stop()
        try:
            with self._lock:
                report = self._collector.sweep(force=True)
            logger.info("tracing_plugin_shutdown", closed_units=report.units, closed_phases=report.phases)
        except Exception:
            logger.exception("shutdown_sweep_failed")
        finally:
            self._provider.force_flush()
            if self._owns_provider:
                self._provider.shutdown()

    def __enter__(self) -> TracingPlugin:
        return self.start()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.shutdown()

    # =========================================================================
    # Host hooks
    # =========================================================================

    @hookimpl
    def agenttrace_event(self, event: Mapping[str, Any]) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._dispatcher.dispatch(event)
            except Exception:
                event_type = event.get("type") if isinstance(event, Mapping) else None
                logger.exception("event_handler_failed", event_type=event_type)

    @hookimpl
    def agenttrace_tool_before(
        self,
        session_id: str,
        call_id: str,
        tool: str,
        args: Mapping[str, Any] | None,
    ) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._dispatcher.tool_before(session_id, call_id, tool, args)
            except Exception:
                logger.exception("tool_before_handler_failed", call_id=call_id, tool=tool)

    @hookimpl
    def agenttrace_tool_after(self, call_id: str, tool: str, title: str | None, output: Any) -> None:
        with self._lock:
            if self._closed:
                return
            try:
                self._dispatcher.tool_after(call_id, tool, title, output)
            except Exception:
                logger.exception("tool_after_handler_failed", call_id=call_id, tool=tool)


def create_tracing_plugin(
    settings: TracingSettings | None = None,
    *,
    environ: Mapping[str, str] | None = None,
    configure_logs: bool = True,
    exit_hooks: bool = True,
    **kwargs: Any,
) -> TracingPlugin | None:
    """Create and start a TracingPlugin, or return None when tracing is disabled.

    Tracing is disabled when no backend API key is configured; the host
    then runs uninstrumented.

    Args:
        settings: Settings to use; loaded via load_settings() when omitted
        environ: Environment mapping passed to load_settings()
        configure_logs: Configure structlog from settings.log_level/json_logs
        exit_hooks: Shut the plugin down at interpreter exit and on SIGTERM
        **kwargs: Forwarded to TracingPlugin

    Raises:
        TelemetryExporterError: If exporter configuration fails
    """
    if settings is None:
        settings = load_settings(environ=environ)

    if not settings.enabled:
        logger.debug("tracing_disabled", reason="no api key")
        return None

    if configure_logs:
        configure_logging(json_output=settings.json_logs, level=settings.log_level)

    plugin = TracingPlugin(settings, **kwargs)
    if exit_hooks:
        plugin.install_exit_hooks()
    return plugin.start()
