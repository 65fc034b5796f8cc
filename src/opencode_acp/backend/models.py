"""Typed views of opencode server responses.

The server returns loosely shaped JSON; these models pin down the fields the
bridge relies on. A payload missing one of them fails validation, and the
gateway reports that as a `BackendError`.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _BackendModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class SessionTime(_BackendModel):
    created: float | None = None
    updated: float | None = None


class BackendSession(_BackendModel):
    id: str
    title: str | None = None
    directory: str | None = None
    parent_id: str | None = Field(default=None, alias="parentID")
    time: SessionTime = Field(default_factory=SessionTime)


class ProviderModel(_BackendModel):
    id: str | None = None
    name: str | None = None


class Provider(_BackendModel):
    id: str
    name: str | None = None
    models: dict[str, ProviderModel] = Field(default_factory=dict)


class ProviderCatalog(_BackendModel):
    providers: list[Provider]
    default: dict[str, str] = Field(default_factory=dict)


class TextPart(_BackendModel):
    type: Literal["text"] = "text"
    id: str | None = None
    text: str
    synthetic: bool = False


class ReasoningPart(_BackendModel):
    type: Literal["reasoning"] = "reasoning"
    id: str | None = None
    text: str


class FilePart(_BackendModel):
    type: Literal["file"] = "file"
    id: str | None = None
    mime: str
    url: str
    filename: str | None = None


class ToolState(_BackendModel):
    status: Literal["pending", "running", "completed", "error"]
    input: Any = None
    output: Any = None
    error: str | None = None
    title: str | None = None


class ToolPart(_BackendModel):
    type: Literal["tool"] = "tool"
    id: str | None = None
    call_id: str = Field(alias="callID")
    tool: str
    state: ToolState


class OtherPart(_BackendModel):
    """Part types the bridge does not forward (step markers, snapshots, patches)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: str


BackendPart = Union[TextPart, ReasoningPart, FilePart, ToolPart, OtherPart]

_PART_TYPES: dict[str, type[_BackendModel]] = {
    "text": TextPart,
    "reasoning": ReasoningPart,
    "file": FilePart,
    "tool": ToolPart,
}


def parse_part(payload: dict[str, Any]) -> BackendPart:
    """Validate one message part, dispatching on its `type` tag."""

    part_type = payload.get("type")
    if not isinstance(part_type, str):
        raise ValueError("message part is missing its type")
    model = _PART_TYPES.get(part_type, OtherPart)
    return model.model_validate(payload)  # type: ignore[return-value]


class MessageInfo(_BackendModel):
    id: str | None = None
    role: Literal["user", "assistant"]
    session_id: str | None = Field(default=None, alias="sessionID")


class BackendMessage(_BackendModel):
    info: MessageInfo
    parts: list[BackendPart] = Field(default_factory=list)

    @field_validator("parts", mode="before")
    @classmethod
    def _parse_parts(cls, value: Any) -> Any:
        if not isinstance(value, list):
            raise ValueError("parts must be a list")
        return [parse_part(part) if isinstance(part, dict) else part for part in value]


class PromptResult(BackendMessage):
    """Assembled assistant message returned by prompt and command calls."""


def epoch_ms_to_iso(value: float | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc).isoformat()
