from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

from acp.agent.connection import AgentSideConnection

from opencode_acp.agent import OpencodeACPAgent
from opencode_acp.backend.models import BackendMessage, BackendSession, PromptResult, Provider, ProviderCatalog
from opencode_acp.config import BridgeConfig
from opencode_acp.errors import BackendError


class FakeSubscription:
    """Replays a fixed list of stream events, then ends."""

    def __init__(self, events: list[Any]) -> None:
        self.events = list(events)
        self.closed = False

    def __aiter__(self):
        return self._events()

    async def _events(self):
        for event in self.events:
            await asyncio.sleep(0)
            yield event

    async def aclose(self) -> None:
        self.closed = True


class FakeGateway:
    """In-memory opencode server; records every call it receives."""

    base_url = "http://fake-opencode"

    def __init__(
        self,
        *,
        providers: list[Provider] | None = None,
        result: PromptResult | None = None,
        events: list[Any] | None = None,
        messages: dict[str, list[BackendMessage]] | None = None,
    ) -> None:
        self.providers = providers if providers is not None else [
            Provider.model_validate(
                {
                    "id": "anthropic",
                    "name": "Anthropic",
                    "models": {"claude-sonnet": {"id": "claude-sonnet", "name": "Claude Sonnet"}},
                }
            )
        ]
        self.result = result or prompt_result([{"type": "text", "text": "done"}])
        self.events = events or []
        self.messages = messages or {}
        self.sessions: dict[str, BackendSession] = {}
        self.calls: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []
        self.subscriptions: list[FakeSubscription] = []
        self.providers_error: BackendError | None = None
        self.catalog_default: dict[str, str] = {}
        self.subscribe_error: BackendError | None = None
        self.init_error: Exception | None = None
        self.abort_error: Exception | None = None
        self.closed = False
        self._counter = 0

    def _record(self, name: str, *args: Any, **kwargs: Any) -> None:
        self.calls.append((name, args, kwargs))

    def called(self, name: str) -> list[tuple[tuple[Any, ...], dict[str, Any]]]:
        return [(args, kwargs) for call, args, kwargs in self.calls if call == name]

    def add_session(self, session_id: str, *, title: str | None = None, directory: str | None = None) -> BackendSession:
        session = BackendSession.model_validate(
            {"id": session_id, "title": title, "directory": directory, "time": {"created": 0, "updated": 1000}}
        )
        self.sessions[session_id] = session
        return session

    async def create_session(self, title: str, *, directory: str | None = None) -> BackendSession:
        self._record("create_session", title, directory=directory)
        self._counter += 1
        return self.add_session(f"ses_{self._counter}", title=title, directory=directory)

    async def get_session(self, session_id: str, *, directory: str | None = None) -> BackendSession:
        self._record("get_session", session_id, directory=directory)
        if session_id not in self.sessions:
            raise BackendError(f"session.get failed with status 404: {session_id}", status_code=404)
        return self.sessions[session_id]

    async def list_sessions(self, *, directory: str | None = None) -> list[BackendSession]:
        self._record("list_sessions", directory=directory)
        return list(self.sessions.values())

    async def list_messages(self, session_id: str, *, directory: str | None = None) -> list[BackendMessage]:
        self._record("list_messages", session_id, directory=directory)
        return self.messages.get(session_id, [])

    async def list_providers(self, *, directory: str | None = None) -> list[Provider]:
        self._record("list_providers", directory=directory)
        if self.providers_error is not None:
            raise self.providers_error
        return self.providers

    async def provider_catalog(self, *, directory: str | None = None) -> ProviderCatalog:
        self._record("provider_catalog", directory=directory)
        if self.providers_error is not None:
            raise self.providers_error
        return ProviderCatalog(providers=self.providers, default=self.catalog_default)

    async def prompt(self, session_id, provider_id, model_id, parts, *, directory=None) -> PromptResult:
        self._record("prompt", session_id, provider_id, model_id, parts, directory=directory)
        # Let the event drain run before the result comes back.
        for _ in range(len(self.events) + 2):
            await asyncio.sleep(0)
        return self.result

    async def subscribe_events(self, *, directory: str | None = None) -> FakeSubscription:
        self._record("subscribe_events", directory=directory)
        if self.subscribe_error is not None:
            raise self.subscribe_error
        subscription = FakeSubscription(self.events)
        self.subscriptions.append(subscription)
        return subscription

    async def abort(self, session_id: str, *, directory: str | None = None) -> None:
        self._record("abort", session_id, directory=directory)
        if self.abort_error is not None:
            raise self.abort_error

    async def summarize(self, session_id, provider_id, model_id, *, directory=None) -> None:
        self._record("summarize", session_id, provider_id, model_id, directory=directory)

    async def init(self, session_id, provider_id, model_id, *, message_id=None, directory=None) -> None:
        self._record("init", session_id, provider_id, model_id, directory=directory)
        if self.init_error is not None:
            raise self.init_error

    async def run_command(self, session_id, name, arguments, *, directory=None) -> PromptResult:
        self._record("run_command", session_id, name, arguments, directory=directory)
        return self.result

    async def close(self) -> None:
        self.closed = True


def prompt_result(parts: list[dict[str, Any]]) -> PromptResult:
    return PromptResult.model_validate({"info": {"id": "msg_1", "role": "assistant"}, "parts": parts})


def make_agent(gateway: FakeGateway | None = None, conn: Any | None = None) -> tuple[OpencodeACPAgent, Any, FakeGateway]:
    """Build an agent wired to a mocked connection and a fake gateway."""

    conn = conn or AsyncMock(spec=AgentSideConnection)
    gateway = gateway or FakeGateway()

    async def _factory(_config: BridgeConfig) -> FakeGateway:
        return gateway

    agent = OpencodeACPAgent(conn, config=BridgeConfig(stream_settle_timeout_s=0.5), gateway_factory=_factory)
    return agent, conn, gateway


def sent_updates(conn: Any) -> list[Any]:
    return [call.kwargs["update"] for call in conn.session_update.await_args_list]


def update_kinds(conn: Any) -> list[str]:
    return [update.session_update for update in sent_updates(conn)]


def message_texts(conn: Any) -> list[str]:
    return [
        update.content.text
        for update in sent_updates(conn)
        if update.session_update == "agent_message_chunk" and getattr(update.content, "type", None) == "text"
    ]


async def start_session(agent: OpencodeACPAgent, conn: Any, cwd: str = "/repo") -> str:
    """Initialize, open a session, and clear the announcements it sent."""

    from acp import PROTOCOL_VERSION

    await agent.initialize(protocol_version=PROTOCOL_VERSION)
    response = await agent.new_session(cwd=cwd, mcp_servers=[])
    await flush_background(agent)
    conn.session_update.reset_mock()
    return response.session_id


async def flush_background(agent: OpencodeACPAgent) -> None:
    if agent._background_tasks:
        await asyncio.gather(*list(agent._background_tasks))
