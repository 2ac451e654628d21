# src/agenttrace/contracts/errors.py
"""Exceptions raised inside agenttrace.

None of these ever reach the host: hook implementations log and swallow
them so instrumentation degrades to a less complete trace instead of
halting the host.
"""


class AgentTraceError(Exception):
    """Base class for agenttrace errors."""


class EventParseError(AgentTraceError):
    """Raised when a host payload does not match any known event shape.

    Attributes:
        event_type: The payload's declared type, if it had one
        message: Human-readable description of the mismatch
    """

    def __init__(self, event_type: str | None, message: str) -> None:
        self.event_type = event_type
        self.message = message
        super().__init__(f"Cannot parse host event {event_type!r}: {message}")
