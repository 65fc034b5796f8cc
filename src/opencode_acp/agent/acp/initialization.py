"""Initialization and auth handlers for the ACP agent."""

from __future__ import annotations

import logging
from typing import Any

from acp import InitializeResponse, PROTOCOL_VERSION
from acp.schema import (
    AgentCapabilities,
    Implementation,
    McpCapabilities,
    PromptCapabilities,
    SessionCapabilities,
    SessionListCapabilities,
)

from opencode_acp.errors import NotInitialized, UnsupportedOperation
from opencode_acp.log_utils import log_event

logger = logging.getLogger(__name__)


class InitializationMixin:
    async def initialize(
        self,
        protocol_version: int,
        client_capabilities: Any | None = None,
        client_info: Any | None = None,
        **_: Any,
    ) -> InitializeResponse:
        """Handle the ACP initialize handshake and connect to opencode."""
        log_event(logger, "acp.initialize.request", protocol_version=protocol_version)
        if protocol_version != PROTOCOL_VERSION:
            log_event(
                logger,
                "acp.initialize.version_mismatch",
                level=logging.WARNING,
                requested=protocol_version,
                supported=PROTOCOL_VERSION,
            )
        self._client_capabilities = client_capabilities
        self._client_info = client_info

        await self._ensure_gateway()

        capabilities = AgentCapabilities(
            load_session=True,
            prompt_capabilities=PromptCapabilities(
                embedded_context=True,
                image=True,
                audio=False,
            ),
            mcp_capabilities=McpCapabilities(http=True, sse=True),
            session_capabilities=SessionCapabilities(list=SessionListCapabilities()),
        )
        capabilities.field_meta = {"extMethods": sorted(self._ext_method_names())}

        return InitializeResponse(
            protocol_version=PROTOCOL_VERSION,
            agent_capabilities=capabilities,
            agent_info=Implementation(
                name=self._agent_name,
                title=self._agent_title,
                version=self._agent_version,
            ),
            auth_methods=[],
        )

    async def authenticate(self, method_id: str, **_: Any) -> None:
        """Reject authentication; opencode manages its own provider credentials."""
        log_event(logger, "acp.authenticate.request", method_id=method_id)
        raise UnsupportedOperation("Authentication not required - configure opencode separately")

    async def _ensure_gateway(self) -> Any:
        """Connect to opencode once; later calls reuse the same gateway."""
        async with self._gateway_lock:
            if self._gateway is None:
                self._gateway = await self._gateway_factory(self._config)
                log_event(logger, "acp.gateway.ready", base_url=getattr(self._gateway, "base_url", None))
        return self._gateway

    def _require_gateway(self) -> Any:
        if self._gateway is None:
            raise NotInitialized()
        return self._gateway
