"""Session lifecycle handlers for ACP sessions."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from acp import LoadSessionResponse, NewSessionResponse, SetSessionModeResponse, SetSessionModelResponse
from acp.schema import ListSessionsResponse, SessionInfo

from opencode_acp.agent.model_catalog import build_model_state, default_model_entry, flatten_providers
from opencode_acp.agent.session_modes import DEFAULT_MODE, build_mode_state
from opencode_acp.agent.translator import translate_history_part
from opencode_acp.backend.models import BackendSession, epoch_ms_to_iso
from opencode_acp.errors import BackendError, InvalidArgument
from opencode_acp.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

UNTITLED_SESSION = "Untitled Session"


class SessionLifecycleMixin:
    async def new_session(
        self,
        cwd: str,
        mcp_servers: list[Any] | None = None,
        **_: Any,
    ) -> NewSessionResponse:
        """Create an opencode session and register it (Session Setup / creation)."""
        gateway = self._require_gateway()
        cwd = self._require_cwd(cwd)
        title = f"ACP Session {datetime.now(timezone.utc).isoformat()}"
        backend_session = await gateway.create_session(title, directory=cwd)
        session_id = backend_session.id
        logger.info("Received new session request: %s cwd=%s", session_id, cwd)

        record = self._sessions.create(session_id, initial_mode=DEFAULT_MODE, cwd=cwd)
        models, current_model = await self._model_catalog(cwd)
        record.current_model = current_model

        self._schedule_updates(self._session_announcements(session_id, record.current_mode))
        return NewSessionResponse(
            session_id=session_id,
            models=build_model_state(models, current_model),
            modes=build_mode_state(record.current_mode),
        )

    async def load_session(
        self,
        cwd: str,
        mcp_servers: list[Any] | None,
        session_id: str,
        **_: Any,
    ) -> LoadSessionResponse:
        """Attach to an existing opencode session and replay its history (Session Setup / loading)."""
        logger.info("Received load session request %s", session_id)
        gateway = self._require_gateway()
        cwd = self._require_cwd(cwd)
        backend_session = await gateway.get_session(session_id, directory=cwd)
        messages = await gateway.list_messages(backend_session.id, directory=cwd)

        models, first_model = await self._model_catalog(cwd)
        if session_id in self._sessions:
            record = self._sessions.get(session_id)
        else:
            record = self._sessions.create(
                session_id,
                initial_model=first_model,
                initial_mode=DEFAULT_MODE,
                cwd=cwd,
                backend_session_id=backend_session.id,
            )

        with log_context(session_id=session_id):
            log_event(logger, "acp.session.replay", messages=len(messages))
        for message in messages:
            for part in message.parts:
                note = translate_history_part(session_id, message.info.role, part)
                if note is not None:
                    await self._send_update(note)

        self._schedule_updates(self._session_announcements(session_id, record.current_mode))
        return LoadSessionResponse(
            models=build_model_state(models, record.current_model or first_model),
            modes=build_mode_state(record.current_mode),
        )

    async def list_sessions(self, cursor: str | None = None, cwd: str | None = None, **_: Any) -> ListSessionsResponse:
        """Return opencode sessions, optionally filtered by working directory; no paging."""
        gateway = self._require_gateway()
        sessions: list[SessionInfo] = []
        for entry in await self._extended_sessions(gateway, cwd):
            sessions.append(
                SessionInfo(
                    session_id=entry["id"],
                    cwd=entry["cwd"] or cwd or "",
                    title=entry["title"],
                    updated_at=entry["updatedAt"],
                )
            )
        return ListSessionsResponse(sessions=sessions, next_cursor=None)

    async def set_session_mode(self, mode_id: str, session_id: str, **_: Any) -> SetSessionModeResponse:
        """Update the current session mode and broadcast it (Session Modes)."""
        logger.info("Received set session mode request %s -> %s", session_id, mode_id)
        self._sessions.set_mode(session_id, mode_id)
        await self._send_update(self._mode_update(session_id, mode_id))
        return SetSessionModeResponse()

    async def set_session_model(self, model_id: str, session_id: str, **_: Any) -> SetSessionModelResponse:
        """Switch the model used for subsequent prompts in a session."""
        logger.info("Received set session model request %s -> %s", session_id, model_id)
        self._sessions.set_model(session_id, model_id)
        return SetSessionModelResponse()

    async def _model_catalog(self, directory: str | None) -> tuple[list[dict[str, str]], str]:
        """Fetch the provider catalog, degrading to the synthetic default model."""
        gateway = self._require_gateway()
        try:
            providers = await gateway.list_providers(directory=directory)
        except BackendError as exc:
            log_event(logger, "acp.models.fetch_failed", level=logging.WARNING, error=str(exc))
            providers = []
        models = flatten_providers(providers) or [default_model_entry()]
        return models, models[0]["modelId"]

    async def _extended_sessions(self, gateway: Any, cwd: str | None = None) -> list[dict[str, Any]]:
        backend_sessions: list[BackendSession] = await gateway.list_sessions()
        entries = [self._session_summary(session) for session in backend_sessions]
        if cwd:
            entries = [entry for entry in entries if entry["cwd"] in (None, cwd)]
        return entries

    @staticmethod
    def _session_summary(session: BackendSession) -> dict[str, Any]:
        return {
            "id": session.id,
            "title": session.title or UNTITLED_SESSION,
            "createdAt": epoch_ms_to_iso(session.time.created),
            "updatedAt": epoch_ms_to_iso(session.time.updated),
            "cwd": session.directory,
        }

    @staticmethod
    def _require_cwd(cwd: str | None) -> str:
        if not cwd or not str(cwd).strip():
            raise InvalidArgument("cwd is required")
        return str(cwd)
