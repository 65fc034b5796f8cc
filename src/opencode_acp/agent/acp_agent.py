"""ACP agent that drives an opencode server.

Protocol handlers live in the mixins under `opencode_acp.agent.acp`; this
module wires them to shared state: the connection, the session registry and
the opencode gateway.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from acp import Agent
from acp.agent.connection import AgentSideConnection

from opencode_acp import __version__
from opencode_acp.agent.acp.extensions import ExtensionsMixin
from opencode_acp.agent.acp.initialization import InitializationMixin
from opencode_acp.agent.acp.prompts import PromptMixin
from opencode_acp.agent.acp.sessions import SessionLifecycleMixin
from opencode_acp.agent.acp.updates import SessionUpdateMixin
from opencode_acp.agent.session_registry import SessionRegistry
from opencode_acp.backend.gateway import OpencodeGateway
from opencode_acp.config import BridgeConfig

GatewayFactory = Callable[[BridgeConfig], Awaitable[Any]]


class OpencodeACPAgent(
    InitializationMixin,
    SessionLifecycleMixin,
    PromptMixin,
    SessionUpdateMixin,
    ExtensionsMixin,
    Agent,
):
    """Implements ACP sessions and prompt turns on top of opencode."""

    def __init__(
        self,
        conn: AgentSideConnection | None = None,
        *,
        config: BridgeConfig | None = None,
        gateway: Any | None = None,
        gateway_factory: GatewayFactory | None = None,
        agent_name: str = "opencode-acp",
        agent_title: str = "opencode ACP Agent",
        agent_version: str = __version__,
    ) -> None:
        self._conn: AgentSideConnection | None = conn
        self._config = config or BridgeConfig()
        self._gateway = gateway
        self._gateway_factory: GatewayFactory = gateway_factory or OpencodeGateway.connect
        self._gateway_lock = asyncio.Lock()
        self._sessions = SessionRegistry()
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._client_capabilities: Any | None = None
        self._client_info: Any | None = None
        self._agent_name = agent_name
        self._agent_title = agent_title
        self._agent_version = agent_version

    def on_connect(self, conn: AgentSideConnection) -> None:  # type: ignore[override]
        """Capture the connection when wired via run_agent."""
        self._conn = conn

    @property
    def sessions(self) -> SessionRegistry:
        return self._sessions

    async def aclose(self) -> None:
        """Wait for pending notifications, then release the gateway."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        if self._gateway is not None:
            closer = getattr(self._gateway, "close", None)
            if closer is not None:
                await closer()
            self._gateway = None
