"""ACP extension method handlers."""

from __future__ import annotations

import logging
from typing import Any

from acp import RequestError

from opencode_acp.agent.model_catalog import SYNTHETIC_MODEL_ID

logger = logging.getLogger(__name__)

EXT_LIST_SESSIONS = "session/list_extended"
EXT_LIST_MODELS = "model/list"


class ExtensionsMixin:
    async def ext_method(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        """Handle non-standard methods advertised under `_meta.extMethods`."""
        logger.info("Received ext method %s", method)
        if method == EXT_LIST_SESSIONS:
            gateway = self._require_gateway()
            return {"sessions": await self._extended_sessions(gateway, params.get("cwd"))}
        if method == EXT_LIST_MODELS:
            session_id = params.get("sessionId") or params.get("session_id")
            current = SYNTHETIC_MODEL_ID
            if session_id:
                current = self._sessions.get(session_id).current_model or SYNTHETIC_MODEL_ID
            models, _ = await self._model_catalog(params.get("cwd"))
            return {"current": current, "models": models}
        raise RequestError.method_not_found(method)

    async def ext_notification(self, method: str, params: dict[str, Any]) -> None:
        """Log extension notifications; none carry behavior yet."""
        logger.info("Received ext notification %s params_keys=%s", method, sorted(params.keys()))

    @staticmethod
    def _ext_method_names() -> list[str]:
        return [EXT_LIST_SESSIONS, EXT_LIST_MODELS]
