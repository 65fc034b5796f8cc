"""Prompt turn handlers for ACP."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from acp import PromptResponse
from acp.helpers import ContentBlock
from acp.schema import ToolCallStart

from opencode_acp.agent.converters import first_text, prompt_to_backend_parts
from opencode_acp.agent.model_catalog import split_model_id
from opencode_acp.agent.session_registry import SessionRecord
from opencode_acp.agent.slash import handle_slash_command
from opencode_acp.agent.translator import translate_event, translate_result_part
from opencode_acp.backend.events import SessionIdle
from opencode_acp.backend.models import PromptResult
from opencode_acp.errors import BackendError
from opencode_acp.log_utils import log_context, log_event

logger = logging.getLogger(__name__)


class PromptMixin:
    async def prompt(
        self,
        prompt: list[ContentBlock],
        session_id: str,
        **_: Any,
    ) -> PromptResponse:
        """Run one prompt turn against opencode (session/prompt)."""
        record = self._sessions.get(session_id)
        gateway = self._require_gateway()
        with log_context(session_id=session_id):
            log_event(logger, "acp.prompt.request", blocks=len(prompt))

        text = first_text(prompt)
        if text is not None and text.startswith("/"):
            await handle_slash_command(self, session_id, text)
            return PromptResponse(stop_reason="end_turn")

        parts = prompt_to_backend_parts(prompt)
        announced_calls: set[str] = set()
        provider_id, model_id = split_model_id(record.current_model)

        try:
            subscription = await gateway.subscribe_events(directory=record.cwd)
        except BackendError as exc:
            with log_context(session_id=session_id):
                log_event(logger, "acp.prompt.stream_unavailable", level=logging.WARNING, error=str(exc))
            result = await gateway.prompt(
                record.backend_session_id, provider_id, model_id, parts, directory=record.cwd
            )
        else:
            result = await self._streamed_prompt(record, subscription, provider_id, model_id, parts, announced_calls)

        await self._emit_result(session_id, result, announced_calls)
        with log_context(session_id=session_id):
            log_event(logger, "acp.prompt.complete", parts=len(result.parts))
        return PromptResponse(stop_reason="end_turn")

    async def cancel(self, session_id: str, **_: Any) -> None:
        """Mark the session cancelled and ask opencode to abort (Prompt Turn cancellation)."""
        record = self._sessions.mark_cancelled(session_id)
        with log_context(session_id=session_id):
            log_event(logger, "acp.prompt.cancel")
        if self._gateway is None:
            return
        try:
            await self._gateway.abort(record.backend_session_id, directory=record.cwd)
        except Exception as exc:  # noqa: BLE001
            with log_context(session_id=session_id):
                log_event(logger, "acp.prompt.abort_failed", level=logging.WARNING, error=str(exc))

    async def _streamed_prompt(
        self,
        record: SessionRecord,
        subscription: Any,
        provider_id: str | None,
        model_id: str | None,
        parts: list[dict[str, Any]],
        announced_calls: set[str],
    ) -> PromptResult:
        drain = asyncio.create_task(self._drain_events(record, subscription, announced_calls))
        try:
            result = await self._gateway.prompt(
                record.backend_session_id, provider_id, model_id, parts, directory=record.cwd
            )
            await self._settle_drain(drain)
        finally:
            if not drain.done():
                drain.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await drain
            await subscription.aclose()
        return result

    async def _drain_events(self, record: SessionRecord, subscription: Any, announced_calls: set[str]) -> None:
        """Forward events for one session in arrival order until it goes idle."""
        forwarded = 0
        try:
            async for event in subscription:
                if event.session_id and event.session_id != record.backend_session_id:
                    continue
                if isinstance(event, SessionIdle):
                    break
                note = translate_event(record.id, event)
                if note is None:
                    continue
                await self._send_update(note)
                if isinstance(note.update, ToolCallStart):
                    announced_calls.add(note.update.tool_call_id)
                forwarded += 1
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            with log_context(session_id=record.id):
                log_event(logger, "acp.prompt.stream_failed", level=logging.WARNING, error=str(exc))
        with log_context(session_id=record.id):
            log_event(logger, "acp.prompt.stream_done", forwarded=forwarded, level=logging.DEBUG)

    async def _settle_drain(self, drain: asyncio.Task[None]) -> None:
        """Give the drain a bounded window to flush events that raced the prompt result."""
        timeout = self._config.stream_settle_timeout_s
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.shield(drain), timeout=timeout)

    async def _emit_result(self, session_id: str, result: PromptResult, announced_calls: set[str]) -> None:
        """Walk the final message parts; may repeat content already streamed."""
        for part in result.parts:
            note = translate_result_part(session_id, part, announced_calls)
            if note is not None:
                await self._send_update(note)
