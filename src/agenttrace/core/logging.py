# src/agenttrace/core/logging.py
"""structlog setup for a library that lives inside someone else's process.

agenttrace runs in the agent host, so its log output shares a stream with
the host's own. configure_logging() therefore:

- writes to stderr unless told otherwise, keeping the host's stdout clean
- routes stdlib records (the OpenTelemetry SDK logs batch export failures
  through plain logging) through the same ProcessorFormatter chain, so
  both kinds of record render identically
- masks the backend credential wherever it shows up in an event dict,
  including inside exporter header mappings
- caps the SDK and urllib3 loggers at WARNING

Engine modules call structlog.get_logger(__name__) directly and log
snake_case event names with key/value context.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

REDACTED = "***"

# Event-dict keys whose values are never written out
_SECRET_KEYS = frozenset({"api_key", "x-honeycomb-team"})

_NOISY_LOGGERS: tuple[str, ...] = (
    "urllib3",
    "urllib3.connectionpool",
    "opentelemetry",
    "opentelemetry.sdk",
    "opentelemetry.exporter",
)


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: REDACTED if str(k).lower() in _SECRET_KEYS else _mask(v) for k, v in value.items()}
    return value


def redact_credentials(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Replace credential values, top-level or nested in mappings, with REDACTED."""
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_KEYS:
            event_dict[key] = REDACTED
        elif isinstance(value, Mapping):
            event_dict[key] = _mask(value)
    return event_dict


def _drop_formatter_bookkeeping(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    # ProcessorFormatter adds both keys to every record it formats
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Install agenttrace's structlog and stdlib logging configuration.

    Args:
        json_output: Render JSON lines instead of key=value console output.
        level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        stream: Destination stream; stderr when omitted.
    """
    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        raise ValueError(f"Unknown log level {level!r}")

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_credentials,
    ]

    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    render_chain: list[Any] = [_drop_formatter_bookkeeping]
    if json_output:
        render_chain.append(structlog.processors.format_exc_info)
    render_chain.append(renderer)

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Uncached so a second configure_logging() call takes effect
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=render_chain, foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    quiet_level = max(log_level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str, **initial_context: Any) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger for name with initial_context already bound."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger.bind(**initial_context) if initial_context else logger
