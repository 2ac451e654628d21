# src/agenttrace/engine/dispatcher.py
"""Host event boundary and routing.

Raw host payloads ({"type": ..., "properties": {...}}) are validated with
pydantic wire models and converted into the frozen event variants of
agenttrace.contracts.events. Nothing past parse_host_event() ever touches
an untyped dict.

Routing:
- session.created      -> CorrelationEngine.on_unit_created
- session.idle         -> SpanRegistry.close_unit (success)
- session.error        -> SpanRegistry.close_unit (error)
- message.updated      -> unit attributes and token counters
- message.part.updated -> ToolActivityRecorder.on_tool_error (error state)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agenttrace.contracts.enums import MessageRole, ToolStatus, UnitOutcome
from agenttrace.contracts.errors import EventParseError
from agenttrace.contracts.events import (
    HostEvent,
    MessageUpdated,
    TokenUsage,
    ToolPartUpdated,
    UnitCreated,
    UnitError,
    UnitIdle,
)
from agenttrace.engine.correlation import CorrelationEngine
from agenttrace.engine.records import ErrorInfo
from agenttrace.engine.registry import SpanRegistry
from agenttrace.engine.tool_activity import ToolActivityRecorder

logger = structlog.get_logger(__name__)


# =============================================================================
# Wire models
# =============================================================================


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)


class _SessionInfo(_WireModel):
    id: str = Field(min_length=1)
    parent_id: str | None = Field(default=None, alias="parentID")
    title: str = ""
    project_id: str = Field(default="", alias="projectID")
    directory: str = ""


class _SessionCreatedProperties(_WireModel):
    info: _SessionInfo


class _SessionIdleProperties(_WireModel):
    session_id: str = Field(alias="sessionID", min_length=1)


class _ErrorData(_WireModel):
    message: str | None = None


class _ErrorPayload(_WireModel):
    name: str | None = None
    data: _ErrorData | None = None


class _SessionErrorProperties(_WireModel):
    session_id: str = Field(alias="sessionID", min_length=1)
    error: _ErrorPayload | None = None


class _CacheTokens(_WireModel):
    read: int = 0
    write: int = 0


class _Tokens(_WireModel):
    input: int = 0
    output: int = 0
    reasoning: int = 0
    cache: _CacheTokens = Field(default_factory=_CacheTokens)


class _MessageInfo(_WireModel):
    session_id: str = Field(alias="sessionID", min_length=1)
    role: str
    mode: str | None = None
    model_id: str | None = Field(default=None, alias="modelID")
    provider_id: str | None = Field(default=None, alias="providerID")
    tokens: _Tokens | None = None


class _MessageUpdatedProperties(_WireModel):
    info: _MessageInfo


class _ToolState(_WireModel):
    status: ToolStatus
    error: str | None = None


class _Part(_WireModel):
    type: str
    call_id: str | None = Field(default=None, alias="callID")
    session_id: str | None = Field(default=None, alias="sessionID")
    state: _ToolState | None = None


class _PartUpdatedProperties(_WireModel):
    part: _Part


# =============================================================================
# Parsing
# =============================================================================


def parse_host_event(payload: Any) -> HostEvent | None:
    """Convert a raw host payload into a typed event.

    Returns:
        The typed event, or None for payloads that are well formed but of
        no interest (unknown types, user messages, non-tool parts).

    Raises:
        EventParseError: If the payload does not match the shape its
            declared type requires.
    """
    if not isinstance(payload, Mapping):
        raise EventParseError(None, f"expected a mapping, got {type(payload).__name__}")
    event_type = payload.get("type")
    if not isinstance(event_type, str):
        raise EventParseError(None, "missing event type")
    properties = payload.get("properties") or {}

    try:
        match event_type:
            case "session.created":
                info = _SessionCreatedProperties.model_validate(properties).info
                return UnitCreated(
                    unit_id=info.id,
                    parent_id=info.parent_id or None,
                    title=info.title,
                    project_id=info.project_id,
                    directory=info.directory,
                )
            case "session.idle":
                idle = _SessionIdleProperties.model_validate(properties)
                return UnitIdle(unit_id=idle.session_id)
            case "session.error":
                failed = _SessionErrorProperties.model_validate(properties)
                error = failed.error
                return UnitError(
                    unit_id=failed.session_id,
                    error_name=(error.name if error else None) or "UnknownError",
                    error_message=(error.data.message if error and error.data else None) or "Unknown error",
                    has_error_detail=error is not None,
                )
            case "message.updated":
                message = _MessageUpdatedProperties.model_validate(properties).info
                if message.role not in {role.value for role in MessageRole}:
                    return None
                tokens = None
                if message.tokens is not None:
                    tokens = TokenUsage(
                        input=message.tokens.input,
                        output=message.tokens.output,
                        reasoning=message.tokens.reasoning,
                        cache_read=message.tokens.cache.read,
                        cache_write=message.tokens.cache.write,
                    )
                return MessageUpdated(
                    unit_id=message.session_id,
                    role=MessageRole(message.role),
                    mode=message.mode,
                    model_id=message.model_id,
                    provider_id=message.provider_id,
                    tokens=tokens,
                )
            case "message.part.updated":
                part = _PartUpdatedProperties.model_validate(properties).part
                if part.type != "tool":
                    return None
                if not part.call_id or not part.session_id or part.state is None:
                    raise EventParseError(event_type, "tool part without callID, sessionID or state")
                return ToolPartUpdated(
                    call_id=part.call_id,
                    unit_id=part.session_id,
                    status=part.state.status,
                    error=part.state.error,
                )
            case _:
                return None
    except ValidationError as e:
        raise EventParseError(event_type, str(e)) from e


# =============================================================================
# Routing
# =============================================================================


class EventDispatcher:
    """Routes host events and tool hook calls into the engine."""

    def __init__(
        self,
        registry: SpanRegistry,
        correlation: CorrelationEngine,
        recorder: ToolActivityRecorder,
    ) -> None:
        self._registry = registry
        self._correlation = correlation
        self._recorder = recorder

    def dispatch(self, payload: Any) -> HostEvent | None:
        """Parse and handle one raw host payload.

        Malformed payloads are logged and dropped; they never raise.
        """
        try:
            event = parse_host_event(payload)
        except EventParseError as e:
            logger.warning("host_event_rejected", event_type=e.event_type, error=e.message)
            return None
        if event is None:
            event_type = payload.get("type") if isinstance(payload, Mapping) else None
            logger.debug("host_event_ignored", event_type=event_type)
            return None
        self.handle(event)
        return event

    def handle(self, event: HostEvent) -> None:
        match event:
            case UnitCreated():
                self._correlation.on_unit_created(event)
            case UnitIdle(unit_id=unit_id):
                if self._registry.close_unit(unit_id, UnitOutcome.SUCCESS) is None:
                    self._registry.close_orphaned_phase(unit_id, "session_span_missing_on_idle")
            case UnitError(unit_id=unit_id):
                error = ErrorInfo(
                    name=event.error_name,
                    message=event.error_message,
                    detailed=event.has_error_detail,
                )
                if self._registry.close_unit(unit_id, UnitOutcome.ERROR, error) is None:
                    self._registry.close_orphaned_phase(
                        unit_id, f"session_span_missing_on_error: {event.error_message}"
                    )
            case MessageUpdated():
                self._on_message(event)
            case ToolPartUpdated(status=ToolStatus.ERROR):
                self._recorder.on_tool_error(event.call_id, event.error)
            case ToolPartUpdated():
                # Completion is reported through the tool-after hook
                pass

    def tool_before(
        self,
        session_id: str,
        call_id: str,
        tool: str,
        args: Mapping[str, Any] | None,
    ) -> None:
        self._recorder.on_tool_start(session_id, call_id, tool, args)

    def tool_after(self, call_id: str, tool: str | None, title: str | None, output: Any) -> None:
        output_length = len(output) if isinstance(output, str | bytes | list | tuple | dict) else 0
        self._recorder.on_tool_end(call_id, tool, title, output_length)

    def _on_message(self, event: MessageUpdated) -> None:
        if event.role != MessageRole.ASSISTANT:
            return
        unit = self._registry.get_unit(event.unit_id)
        if unit is None:
            return

        unit.message_count += 1
        span = unit.span
        if event.mode:
            unit.agent_mode = event.mode
            span.set_attribute("agent.mode", event.mode)
        if event.model_id:
            unit.model_id = event.model_id
            span.set_attribute("model.id", event.model_id)
        if event.provider_id:
            unit.provider_id = event.provider_id
            span.set_attribute("provider.id", event.provider_id)
        if event.tokens is not None:
            tokens = event.tokens
            span.set_attributes(
                {
                    "tokens.input": tokens.input,
                    "tokens.output": tokens.output,
                    "tokens.reasoning": tokens.reasoning,
                    "tokens.cache.read": tokens.cache_read,
                    "tokens.cache.write": tokens.cache_write,
                }
            )
            unit.cumulative_input_tokens += tokens.input
            unit.cumulative_output_tokens += tokens.output
