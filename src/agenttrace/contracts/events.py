# src/agenttrace/contracts/events.py
"""Typed host events.

The host emits loosely structured payloads; the dispatcher parses each one
into exactly one of the variants below before anything in the engine sees
it. Events are immutable (frozen) so they can be logged or handed across
threads without defensive copies.

Event categories:
- Unit lifecycle: created, idle, error
- Message activity: assistant message updates carrying model and tokens
- Tool activity: message part updates reporting a tool invocation's state
"""

from dataclasses import dataclass

from agenttrace.contracts.enums import MessageRole, ToolStatus

# =============================================================================
# Unit Lifecycle Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class UnitCreated:
    """A session started.

    Attributes:
        unit_id: Stable session id assigned by the host
        parent_id: Session that spawned this one, when the host reports it
        title: Free-text session title
        project_id: Host project identifier
        directory: Working directory of the session
    """

    unit_id: str
    parent_id: str | None = None
    title: str = ""
    project_id: str = ""
    directory: str = ""


@dataclass(frozen=True, slots=True)
class UnitIdle:
    """A session finished its work and went idle."""

    unit_id: str


@dataclass(frozen=True, slots=True)
class UnitError:
    """A session failed.

    Attributes:
        unit_id: Session that failed
        error_name: Error class reported by the host
        error_message: Human-readable error description
        has_error_detail: False when the host sent no error object at all
    """

    unit_id: str
    error_name: str = "UnknownError"
    error_message: str = "Unknown error"
    has_error_detail: bool = True


# =============================================================================
# Message Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class TokenUsage:
    """Token counts reported for one assistant message."""

    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache_read: int = 0
    cache_write: int = 0


@dataclass(frozen=True, slots=True)
class MessageUpdated:
    """A message in a session was created or updated.

    Only assistant messages carry mode, model and token information.
    """

    unit_id: str
    role: MessageRole
    mode: str | None = None
    model_id: str | None = None
    provider_id: str | None = None
    tokens: TokenUsage | None = None


# =============================================================================
# Tool Events
# =============================================================================


@dataclass(frozen=True, slots=True)
class ToolPartUpdated:
    """A tool invocation part changed state.

    Attributes:
        call_id: Invocation identifier shared with the tool hooks
        unit_id: Session the invocation belongs to
        status: New invocation state
        error: Error text when status is ERROR
    """

    call_id: str
    unit_id: str
    status: ToolStatus
    error: str | None = None


HostEvent = UnitCreated | UnitIdle | UnitError | MessageUpdated | ToolPartUpdated
