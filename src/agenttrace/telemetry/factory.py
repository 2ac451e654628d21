# src/agenttrace/telemetry/factory.py
"""Factory functions for building the OpenTelemetry tracer provider.

This module provides the glue between configuration (TracingSettings) and
the runtime TracerProvider. It handles:
1. Discovering exporter classes via agenttrace_get_exporters hooks
2. Instantiating and configuring the exporters named in settings
3. Wrapping each exporter's SpanExporter in a BatchSpanProcessor

Usage:
    from agenttrace.core.config import load_settings
    from agenttrace.telemetry.factory import create_tracer_provider

    settings = load_settings()
    provider = create_tracer_provider(settings)
    tracer = provider.get_tracer("agenttrace")
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pluggy
import structlog
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from agenttrace import __version__
from agenttrace.core.config import TracingSettings
from agenttrace.telemetry.errors import TelemetryExporterError
from agenttrace.telemetry.exporters import BuiltinExportersPlugin
from agenttrace.telemetry.hookspecs import PROJECT_NAME, AgentTraceExporterSpec
from agenttrace.telemetry.protocols import ExporterProtocol

logger = structlog.get_logger(__name__)


def _exporter_name(exporter_class: type[ExporterProtocol]) -> str:
    """Name an exporter class by its class-level _name, else by instantiating it.

    Raises:
        TelemetryExporterError: If no non-empty string name can be obtained.
    """
    name = vars(exporter_class).get("_name")
    if name is None:
        try:
            name = exporter_class().name
        except Exception as e:
            raise TelemetryExporterError(
                exporter_class.__name__,
                f"Could not instantiate exporter to read its name: {e}",
            ) from e
    if not isinstance(name, str) or not name:
        raise TelemetryExporterError(
            exporter_class.__name__,
            f"Exporter name must be a non-empty string, got {name!r}",
        )
    return name


def _exporter_plugin_manager(exporter_plugins: Iterable[Any]) -> pluggy.PluginManager:
    pm = pluggy.PluginManager(PROJECT_NAME)
    pm.add_hookspecs(AgentTraceExporterSpec)
    for plugin in (BuiltinExportersPlugin(), *exporter_plugins):
        try:
            pm.register(plugin)
        except pluggy.PluginValidationError as e:
            # register() leaves a half-registered plugin behind on validation failure
            pm.unregister(plugin=plugin)
            raise TelemetryExporterError(
                "exporter_plugins",
                f"Invalid exporter plugin {type(plugin).__name__}: {e}",
            ) from e
        except ValueError as e:
            raise TelemetryExporterError(
                "exporter_plugins",
                f"Invalid exporter plugin {type(plugin).__name__}: {e}",
            ) from e
    return pm


def discover_exporters(exporter_plugins: Iterable[Any] = ()) -> dict[str, type[ExporterProtocol]]:
    """Map exporter names to classes across the built-in and extra plugins.

    Each agenttrace_get_exporters implementation is called on its own so a
    failure can be attributed to the plugin that caused it.

    Raises:
        TelemetryExporterError: If a plugin is invalid, a hook fails or
            returns something other than an iterable of classes, or two
            exporters claim the same name.
    """
    pm = _exporter_plugin_manager(exporter_plugins)

    found: dict[str, type[ExporterProtocol]] = {}
    for impl in pm.hook.agenttrace_get_exporters.get_hookimpls():
        plugin_name = type(impl.plugin).__name__
        try:
            classes = impl.function()
        except Exception as e:
            raise TelemetryExporterError(
                "exporter_plugins",
                f"Exporter plugin {plugin_name} failed in agenttrace_get_exporters: {e}",
            ) from e
        if classes is None or isinstance(classes, (str, bytes)):
            raise TelemetryExporterError(
                "exporter_plugins",
                f"agenttrace_get_exporters in {plugin_name} returned {type(classes).__name__}; "
                "expected iterable of exporter classes",
            )

        for exporter_class in classes:
            name = _exporter_name(exporter_class)
            if name in found:
                raise TelemetryExporterError(
                    name,
                    f"Duplicate exporter name '{name}' claimed by {found[name].__name__} and {exporter_class.__name__}",
                )
            found[name] = exporter_class
    return found


def create_tracer_provider(
    settings: TracingSettings,
    *,
    exporter_plugins: Iterable[Any] = (),
) -> TracerProvider:
    """Build a TracerProvider exporting through the configured exporters.

    Each exporter gets its own BatchSpanProcessor, so span export happens
    on the processor's worker thread and never blocks a host handler.

    Raises:
        TelemetryExporterError: If exporter discovery fails, an unknown
            exporter name is configured, or exporter configuration fails.
    """
    exporter_registry = discover_exporters(exporter_plugins)
    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.service_name,
                "service.version": __version__,
            }
        )
    )

    for exporter_settings in settings.exporters:
        try:
            exporter_class = exporter_registry[exporter_settings.name]
        except KeyError:
            raise TelemetryExporterError(
                exporter_settings.name,
                f"Unknown exporter. Available exporters: {sorted(exporter_registry)}",
            ) from None

        exporter = exporter_class()
        exporter.configure(dict(exporter_settings.options), settings)
        provider.add_span_processor(BatchSpanProcessor(exporter.create_span_exporter()))
        logger.debug(
            "exporter_configured",
            exporter=exporter_settings.name,
            options_keys=list(exporter_settings.options.keys()),
        )

    if not settings.exporters:
        logger.warning("tracing_enabled_no_exporters")

    return provider
