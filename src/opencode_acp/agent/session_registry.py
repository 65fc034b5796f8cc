"""In-memory registry of ACP sessions and their per-session state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from opencode_acp.agent.session_modes import DEFAULT_MODE, mode_ids
from opencode_acp.errors import InvalidArgument, InvalidMode, SessionNotFound
from opencode_acp.log_utils import log_event

logger = logging.getLogger(__name__)


@dataclass
class SessionRecord:
    id: str
    backend_session_id: str
    cwd: str | None = None
    current_model: str | None = None
    current_mode: str = DEFAULT_MODE
    _cancelled: bool = field(default=False, init=False, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def state(self) -> str:
        return "cancelling" if self._cancelled else "active"

    def mark_cancelled(self) -> None:
        """Flag the session as cancelling; the flag is never cleared."""
        self._cancelled = True


class SessionRegistry:
    """Owns every session record for the lifetime of the connection.

    Mutators never await, so under asyncio each one runs to completion before
    another handler can observe the record.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionRecord] = {}

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def create(
        self,
        session_id: str,
        *,
        initial_model: str | None = None,
        initial_mode: str | None = None,
        cwd: str | None = None,
        backend_session_id: str | None = None,
    ) -> SessionRecord:
        if not session_id:
            raise InvalidArgument("session id is required")
        if session_id in self._sessions:
            raise InvalidArgument(f"Session already exists: {session_id}", {"sessionId": session_id})
        mode = initial_mode or DEFAULT_MODE
        if mode not in mode_ids():
            raise InvalidMode(mode, mode_ids())
        record = SessionRecord(
            id=session_id,
            backend_session_id=backend_session_id or session_id,
            cwd=cwd,
            current_model=initial_model,
            current_mode=mode,
        )
        self._sessions[session_id] = record
        log_event(logger, "session.registry.create", session_id=session_id, mode=mode, model=initial_model)
        return record

    def get(self, session_id: str) -> SessionRecord:
        record = self._sessions.get(session_id)
        if record is None:
            raise SessionNotFound(session_id)
        return record

    def list(self) -> list[SessionRecord]:  # noqa: A003 - registry API name
        return list(self._sessions.values())

    def set_model(self, session_id: str, model: str) -> SessionRecord:
        record = self.get(session_id)
        record.current_model = model
        log_event(logger, "session.registry.set_model", session_id=session_id, model=model)
        return record

    def set_mode(self, session_id: str, mode: str) -> SessionRecord:
        record = self.get(session_id)
        valid = mode_ids()
        if mode not in valid:
            raise InvalidMode(mode, valid)
        record.current_mode = mode
        log_event(logger, "session.registry.set_mode", session_id=session_id, mode=mode)
        return record

    def mark_cancelled(self, session_id: str) -> SessionRecord:
        record = self.get(session_id)
        record.mark_cancelled()
        return record
