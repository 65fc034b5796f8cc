"""Translate opencode events and message parts into ACP session updates.

Every function here returns a `SessionNotification` or None and never raises:
a part or event that cannot be translated is logged and skipped.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from acp.helpers import (
    session_notification,
    text_block,
    update_agent_message,
    update_agent_thought,
    update_plan,
    update_user_message,
)
from acp.schema import PlanEntry, ResourceContentBlock, SessionNotification, ToolCallProgress, ToolCallStart

from opencode_acp.backend.events import (
    PlanItem,
    PlanUpdate,
    ReasoningDelta,
    SessionIdle,
    StreamEvent,
    TextDelta,
    ToolComplete,
    ToolStart,
    ToolUpdate,
    UnknownEvent,
)
from opencode_acp.backend.models import BackendPart, FilePart, ReasoningPart, TextPart, ToolPart
from opencode_acp.log_utils import log_event

logger = logging.getLogger(__name__)

_PLAN_STATUSES = {"completed": "completed", "in_progress": "in_progress"}
_TOOL_STATUSES = {
    "pending": "pending",
    "running": "in_progress",
    "completed": "completed",
    "error": "failed",
}


def _call_id(value: str | None) -> str:
    return value or f"call_{uuid.uuid4().hex[:12]}"


def plan_entries(items: list[PlanItem]) -> list[PlanEntry]:
    return [
        PlanEntry(
            content=item.step or item.description or "",
            priority="medium",
            status=_PLAN_STATUSES.get(item.status or "", "pending"),
        )
        for item in items
    ]


def _event_update(event: StreamEvent) -> Any | None:
    if isinstance(event, ToolStart):
        return ToolCallStart(
            session_update="tool_call",
            tool_call_id=_call_id(event.call_id),
            title=event.name or "Running tool",
            status="pending",
            raw_input=event.input,
        )
    if isinstance(event, ToolUpdate):
        return ToolCallProgress(
            session_update="tool_call_update",
            tool_call_id=_call_id(event.call_id),
            status="in_progress",
            raw_output=event.output,
        )
    if isinstance(event, ToolComplete):
        return ToolCallProgress(
            session_update="tool_call_update",
            tool_call_id=_call_id(event.call_id),
            status="failed" if event.error else "completed",
            raw_output=event.output,
        )
    if isinstance(event, TextDelta):
        return update_agent_message(text_block(event.text))
    if isinstance(event, ReasoningDelta):
        return update_agent_thought(text_block(event.text))
    if isinstance(event, PlanUpdate):
        return update_plan(plan_entries(event.items))
    if isinstance(event, SessionIdle):
        return None
    if isinstance(event, UnknownEvent):
        log_event(logger, "translate.event.unknown", level=logging.DEBUG, type=event.type)
        return None
    log_event(logger, "translate.event.unhandled", level=logging.WARNING, type=type(event).__name__)
    return None


def translate_event(session_id: str, event: StreamEvent) -> SessionNotification | None:
    """Map one stream event to the session update it stands for."""

    try:
        update = _event_update(event)
    except Exception as exc:  # noqa: BLE001
        log_event(
            logger,
            "translate.event.failed",
            level=logging.WARNING,
            type=getattr(event, "type", None),
            error=str(exc),
        )
        return None
    if update is None:
        return None
    return session_notification(session_id, update)


def _tool_part_update(part: ToolPart, *, announce: bool) -> ToolCallStart | ToolCallProgress:
    state = part.state
    fields: dict[str, Any] = {
        "tool_call_id": part.call_id,
        "title": state.title or part.tool,
        "status": _TOOL_STATUSES.get(state.status, "pending"),
        "raw_input": state.input,
        "raw_output": state.output if state.status != "error" else {"error": state.error},
    }
    if announce:
        return ToolCallStart(session_update="tool_call", **fields)
    return ToolCallProgress(session_update="tool_call_update", **fields)


def _file_part_block(part: FilePart) -> ResourceContentBlock:
    return ResourceContentBlock(
        type="resource_link",
        name=part.filename or part.url.rsplit("/", 1)[-1],
        uri=part.url,
        mime_type=part.mime,
    )


def translate_result_part(
    session_id: str,
    part: BackendPart,
    announced_calls: set[str] | None = None,
) -> SessionNotification | None:
    """Map one part of a completed assistant message to a session update.

    A tool part whose call id is not in `announced_calls` is sent as a new
    `tool_call` carrying its final status, and its id is added to the set;
    without a set every tool part is treated as already announced.
    """

    try:
        if isinstance(part, TextPart):
            if not part.text:
                return None
            return session_notification(session_id, update_agent_message(text_block(part.text)))
        if isinstance(part, ReasoningPart):
            if not part.text:
                return None
            return session_notification(session_id, update_agent_thought(text_block(part.text)))
        if isinstance(part, ToolPart):
            announce = announced_calls is not None and part.call_id not in announced_calls
            if announce:
                announced_calls.add(part.call_id)
            return session_notification(session_id, _tool_part_update(part, announce=announce))
        if isinstance(part, FilePart):
            return session_notification(session_id, update_agent_message(_file_part_block(part)))
    except Exception as exc:  # noqa: BLE001
        log_event(logger, "translate.part.failed", level=logging.WARNING, type=part.type, error=str(exc))
    return None


def translate_history_part(session_id: str, role: str, part: BackendPart) -> SessionNotification | None:
    """Map a stored message part for session/load replay.

    User text replays as a user message; assistant text and reasoning replay as
    agent message and thought chunks. Everything else is skipped.
    """

    if isinstance(part, TextPart) and part.text:
        block = text_block(part.text)
        if role == "user":
            return session_notification(session_id, update_user_message(block))
        return session_notification(session_id, update_agent_message(block))
    if isinstance(part, ReasoningPart) and part.text and role == "assistant":
        return session_notification(session_id, update_agent_thought(text_block(part.text)))
    return None
