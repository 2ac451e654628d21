# src/agenttrace/contracts/enums.py
"""Enumerations shared between the engine and the host boundary."""

from enum import StrEnum


class UnitOutcome(StrEnum):
    """How a unit (session) finished.

    Values:
        SUCCESS: The host reported the unit idle
        ERROR: The host reported an error, or the unit was force-closed
    """

    SUCCESS = "success"
    ERROR = "error"


class CleanupReason(StrEnum):
    """Why a record was finalized by the engine rather than by the host.

    Values:
        TTL_EXPIRED: The record outlived its table's time-to-live
        ORPHANED: A phase was found without its paired unit
        SHUTDOWN: The plugin is shutting down with the record still live
        LAZY_PARENT_RELEASED: A synthesized parent lost its last delegated child
    """

    TTL_EXPIRED = "ttl_expired"
    ORPHANED = "orphaned"
    SHUTDOWN = "shutdown"
    LAZY_PARENT_RELEASED = "lazy_parent_released"


class ToolStatus(StrEnum):
    """Tool invocation states reported by message part updates."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class MessageRole(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


class CorrelationStrategy(StrEnum):
    """Signals used to classify a new unit as delegated.

    Values:
        PARENT_ID: Explicit parent id carried on the creation event
        TITLE: Lexical "<type> subagent" pattern in the unit title
    """

    PARENT_ID = "parent_id"
    TITLE = "title"
