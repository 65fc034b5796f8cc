"""Stream events from the opencode `/event` feed.

Payloads arrive either already tagged with one of the bridge's event types
(`tool_start`, `text_delta`, ...) or as opencode's native bus events
(`message.part.updated`, `todo.updated`, `session.idle`). Both are decoded into
the closed set of variants below; anything else becomes `UnknownEvent`.
"""

from __future__ import annotations

from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class _Event(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionID")


class ToolStart(_Event):
    type: Literal["tool_start"] = "tool_start"
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    id: str | None = None
    name: str | None = None
    input: Any = None

    @property
    def call_id(self) -> str | None:
        return self.tool_call_id or self.id


class ToolUpdate(_Event):
    type: Literal["tool_update"] = "tool_update"
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    id: str | None = None
    output: Any = None

    @property
    def call_id(self) -> str | None:
        return self.tool_call_id or self.id


class ToolComplete(_Event):
    type: Literal["tool_complete"] = "tool_complete"
    tool_call_id: str | None = Field(default=None, alias="toolCallId")
    id: str | None = None
    output: Any = None
    error: str | None = None

    @property
    def call_id(self) -> str | None:
        return self.tool_call_id or self.id


class TextDelta(_Event):
    type: Literal["text_delta"] = "text_delta"
    text: str


class ReasoningDelta(_Event):
    type: Literal["reasoning_delta"] = "reasoning_delta"
    text: str


class PlanItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    step: str | None = None
    description: str | None = None
    status: str | None = None


class PlanUpdate(_Event):
    type: Literal["plan_update"] = "plan_update"
    items: list[PlanItem] = Field(default_factory=list)


class SessionIdle(_Event):
    type: Literal["session_idle"] = "session_idle"


class UnknownEvent(BaseModel):
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    session_id: str | None = None


StreamEvent = Union[ToolStart, ToolUpdate, ToolComplete, TextDelta, ReasoningDelta, PlanUpdate, SessionIdle, UnknownEvent]

_TAGGED: dict[str, type[_Event]] = {
    "tool_start": ToolStart,
    "tool_update": ToolUpdate,
    "tool_complete": ToolComplete,
    "text_delta": TextDelta,
    "reasoning_delta": ReasoningDelta,
    "plan_update": PlanUpdate,
    "session_idle": SessionIdle,
}
_NATIVE_TYPES = frozenset({"message.part.updated", "todo.updated", "session.idle"})


class EventDecodeError(ValueError):
    """A known event type arrived without the fields it requires."""


def decode_event(payload: Any) -> StreamEvent:
    """Decode one feed payload into a stream event variant.

    Unrecognized types yield `UnknownEvent`; recognized types with a broken
    shape raise `EventDecodeError`.
    """

    if not isinstance(payload, dict):
        raise EventDecodeError(f"event payload must be an object, got {type(payload).__name__}")
    event_type = payload.get("type")
    if not isinstance(event_type, str):
        raise EventDecodeError("event payload is missing its type")

    model = _TAGGED.get(event_type)
    try:
        if model is not None:
            body = payload.get("properties")
            data = {**body, "type": event_type} if isinstance(body, dict) else payload
            return model.model_validate(data)
        native = _decode_native(event_type, payload.get("properties"))
        if native is not None:
            return native
        properties = payload.get("properties")
        session_id = properties.get("sessionID") if isinstance(properties, dict) else None
        return UnknownEvent(
            type=event_type,
            payload=payload,
            session_id=session_id if isinstance(session_id, str) else None,
        )
    except ValidationError as exc:
        raise EventDecodeError(f"invalid {event_type} event: {exc.error_count()} error(s)") from exc


def _as_object(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise EventDecodeError(f"{what} must be an object, got {type(value).__name__}")
    return value


def _decode_native(event_type: str, raw_properties: Any) -> StreamEvent | None:
    if event_type not in _NATIVE_TYPES:
        return None
    properties = _as_object(raw_properties, f"{event_type} properties")
    if event_type == "message.part.updated":
        return _decode_part_updated(properties)
    if event_type == "todo.updated":
        todos = properties.get("todos") or []
        if not isinstance(todos, list):
            raise EventDecodeError("todo.updated todos must be a list")
        return PlanUpdate(
            session_id=properties.get("sessionID"),
            items=[
                PlanItem(description=todo.get("content"), status=todo.get("status"))
                for todo in todos
                if isinstance(todo, dict)
            ],
        )
    return SessionIdle(session_id=properties.get("sessionID"))


def _decode_part_updated(properties: dict[str, Any]) -> StreamEvent | None:
    part = properties.get("part")
    if not isinstance(part, dict):
        raise EventDecodeError("message.part.updated without a part")
    session_id = part.get("sessionID")
    part_type = part.get("type")
    delta = properties.get("delta")

    if part_type == "text" and isinstance(delta, str) and delta:
        return TextDelta(session_id=session_id, text=delta)
    if part_type == "reasoning" and isinstance(delta, str) and delta:
        return ReasoningDelta(session_id=session_id, text=delta)
    if part_type != "tool":
        return None

    state = _as_object(part.get("state"), "tool part state")
    status = state.get("status")
    call_id = part.get("callID")
    if status == "pending":
        return ToolStart(session_id=session_id, tool_call_id=call_id, name=part.get("tool"), input=state.get("input"))
    if status == "running":
        return ToolUpdate(session_id=session_id, tool_call_id=call_id, output=state.get("metadata"))
    if status == "completed":
        return ToolComplete(session_id=session_id, tool_call_id=call_id, output=state.get("output"))
    if status == "error":
        return ToolComplete(
            session_id=session_id,
            tool_call_id=call_id,
            output=state.get("error"),
            error=state.get("error") or "tool failed",
        )
    return None
