"""Outgoing session/update notifications."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from acp.helpers import session_notification, text_block, update_agent_message
from acp.schema import AvailableCommandsUpdate, CurrentModeUpdate, SessionNotification

from opencode_acp.agent.slash import available_slash_commands
from opencode_acp.log_utils import log_context, log_event

logger = logging.getLogger(__name__)


class SessionUpdateMixin:
    async def _send_update(self, note: SessionNotification) -> None:
        """Emit a session/update notification to the client."""
        if self._conn is None:
            raise RuntimeError("Connection not established")
        sender = getattr(self._conn, "session_update", None)
        if sender is None:
            raise RuntimeError("Connection missing session_update handler")
        await sender(session_id=note.session_id, update=note.update)

    async def _notify(self, session_id: str, text: str) -> None:
        """Send a plain-text agent message."""
        await self._send_update(session_notification(session_id, update_agent_message(text_block(text))))

    def _schedule_updates(self, notes: list[SessionNotification]) -> asyncio.Task[None]:
        """Send notifications after the current response, without blocking it.

        Delivery failures are logged and never reach the request that
        scheduled them.
        """

        task = asyncio.create_task(self._deliver_updates(notes))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

    async def _deliver_updates(self, notes: list[SessionNotification]) -> None:
        # Let the pending response go out first.
        await asyncio.sleep(0)
        for note in notes:
            try:
                await self._send_update(note)
            except Exception as exc:  # noqa: BLE001
                with log_context(session_id=note.session_id):
                    log_event(
                        logger,
                        "acp.update.background_failed",
                        level=logging.WARNING,
                        kind=getattr(note.update, "session_update", None),
                        error=str(exc),
                    )

    def _session_announcements(self, session_id: str, mode_id: str) -> list[SessionNotification]:
        return [
            self._available_commands_update(session_id, available_slash_commands()),
            self._mode_update(session_id, mode_id),
        ]

    @staticmethod
    def _mode_update(session_id: str, mode_id: str) -> SessionNotification:
        return session_notification(
            session_id,
            CurrentModeUpdate(session_update="current_mode_update", current_mode_id=mode_id),
        )

    @staticmethod
    def _available_commands_update(session_id: str, commands: list[Any]) -> SessionNotification:
        update = AvailableCommandsUpdate(session_update="available_commands_update", available_commands=commands)
        return session_notification(session_id, update)
