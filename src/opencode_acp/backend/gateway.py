"""HTTP gateway to the opencode server.

All traffic to the backend goes through `OpencodeGateway`. Transport errors,
error statuses and malformed payloads surface as `BackendError`; nothing from
httpx or pydantic leaks past this module.
"""

from __future__ import annotations

import contextlib
import json
import logging
import uuid
from typing import Any, AsyncIterator, TypeVar

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from opencode_acp.backend.events import EventDecodeError, StreamEvent, decode_event
from opencode_acp.backend.models import (
    BackendMessage,
    BackendSession,
    PromptResult,
    Provider,
    ProviderCatalog,
)
from opencode_acp.backend.server import ServerProcess, spawn_server
from opencode_acp.config import BridgeConfig
from opencode_acp.errors import BackendError, BackendPortInUse
from opencode_acp.log_utils import log_event, log_events_enabled

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_SESSION_LIST = TypeAdapter(list[BackendSession])
_MESSAGE_LIST = TypeAdapter(list[BackendMessage])


class OpencodeGateway:
    def __init__(
        self,
        base_url: str,
        *,
        connect_timeout_s: float = 2.0,
        http_client: httpx.AsyncClient | None = None,
        server: ServerProcess | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(None, connect=connect_timeout_s),
        )
        self._server = server

    @classmethod
    async def connect(cls, config: BridgeConfig) -> "OpencodeGateway":
        """Spawn a local opencode server, or attach to one already running.

        A bind conflict on the spawn address means another server owns the
        port, so the gateway attaches to `config.base_url` instead. Every other
        startup failure propagates.
        """

        if config.spawn_server:
            try:
                server = await spawn_server(
                    binary=config.opencode_bin,
                    hostname=config.hostname,
                    port=config.port,
                    timeout_s=config.connect_timeout_s,
                )
            except BackendPortInUse as exc:
                log_event(logger, "backend.connect.attach", base_url=config.base_url, reason=str(exc).splitlines()[0])
            else:
                log_event(logger, "backend.connect.spawned", base_url=server.url)
                return cls(server.url, connect_timeout_s=config.connect_timeout_s, server=server)
        return cls(config.base_url, connect_timeout_s=config.connect_timeout_s)

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def spawned(self) -> bool:
        return self._server is not None

    async def close(self) -> None:
        await self._client.aclose()
        if self._server is not None:
            await self._server.close()
            self._server = None

    async def create_session(self, title: str, *, directory: str | None = None) -> BackendSession:
        data = await self._request(
            "POST", "/session", operation="session.create", json={"title": title}, directory=directory
        )
        return _decode(BackendSession, data, "session.create")

    async def get_session(self, session_id: str, *, directory: str | None = None) -> BackendSession:
        data = await self._request("GET", f"/session/{session_id}", operation="session.get", directory=directory)
        return _decode(BackendSession, data, "session.get")

    async def list_sessions(self, *, directory: str | None = None) -> list[BackendSession]:
        data = await self._request("GET", "/session", operation="session.list", directory=directory)
        return _decode_list(_SESSION_LIST, data, "session.list")

    async def list_messages(self, session_id: str, *, directory: str | None = None) -> list[BackendMessage]:
        data = await self._request(
            "GET", f"/session/{session_id}/message", operation="session.messages", directory=directory
        )
        return _decode_list(_MESSAGE_LIST, data, "session.messages")

    async def provider_catalog(self, *, directory: str | None = None) -> ProviderCatalog:
        """Providers plus the backend's default model per provider."""
        data = await self._request("GET", "/config/providers", operation="config.providers", directory=directory)
        return _decode(ProviderCatalog, data, "config.providers")

    async def list_providers(self, *, directory: str | None = None) -> list[Provider]:
        return (await self.provider_catalog(directory=directory)).providers

    async def prompt(
        self,
        session_id: str,
        provider_id: str | None,
        model_id: str | None,
        parts: list[dict[str, Any]],
        *,
        directory: str | None = None,
    ) -> PromptResult:
        body: dict[str, Any] = {"parts": parts}
        if provider_id and model_id:
            body["model"] = {"providerID": provider_id, "modelID": model_id}
        data = await self._request(
            "POST", f"/session/{session_id}/message", operation="session.prompt", json=body, directory=directory
        )
        return _decode(PromptResult, data, "session.prompt")

    async def abort(self, session_id: str, *, directory: str | None = None) -> None:
        await self._request("POST", f"/session/{session_id}/abort", operation="session.abort", directory=directory)

    async def summarize(
        self, session_id: str, provider_id: str, model_id: str, *, directory: str | None = None
    ) -> None:
        await self._request(
            "POST",
            f"/session/{session_id}/summarize",
            operation="session.summarize",
            json={"providerID": provider_id, "modelID": model_id},
            directory=directory,
        )

    async def init(
        self,
        session_id: str,
        provider_id: str,
        model_id: str,
        *,
        message_id: str | None = None,
        directory: str | None = None,
    ) -> None:
        await self._request(
            "POST",
            f"/session/{session_id}/init",
            operation="session.init",
            json={
                "messageID": message_id or f"msg_{uuid.uuid4().hex}",
                "providerID": provider_id,
                "modelID": model_id,
            },
            directory=directory,
        )

    async def run_command(
        self, session_id: str, name: str, arguments: str, *, directory: str | None = None
    ) -> PromptResult:
        data = await self._request(
            "POST",
            f"/session/{session_id}/command",
            operation="session.command",
            json={"command": name, "arguments": arguments},
            directory=directory,
        )
        return _decode(PromptResult, data, "session.command")

    async def subscribe_events(self, *, directory: str | None = None) -> "EventSubscription":
        """Open the server-sent event feed; raises BackendError if it cannot be opened."""

        subscription = EventSubscription(self._client, directory=directory)
        await subscription.open()
        return subscription

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        json: dict[str, Any] | None = None,
        directory: str | None = None,
    ) -> Any:
        params = {"directory": directory} if directory else None
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            log_event(logger, "backend.request.failed", level=logging.WARNING, operation=operation, error=str(exc))
            raise BackendError(f"{operation} failed: {exc}", operation=operation) from exc
        if response.status_code >= 400:
            detail = _error_detail(response)
            log_event(
                logger,
                "backend.request.error_status",
                level=logging.WARNING,
                operation=operation,
                status=response.status_code,
                detail=detail,
            )
            raise BackendError(
                f"{operation} failed with status {response.status_code}: {detail}",
                status_code=response.status_code,
                operation=operation,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(f"{operation} returned invalid JSON", operation=operation) from exc


class EventSubscription:
    """A live `/event` stream, iterated as decoded `StreamEvent`s."""

    def __init__(self, client: httpx.AsyncClient, *, directory: str | None = None) -> None:
        self._client = client
        self._directory = directory
        self._stack = contextlib.AsyncExitStack()
        self._response: httpx.Response | None = None

    async def open(self) -> None:
        params = {"directory": self._directory} if self._directory else None
        try:
            response = await self._stack.enter_async_context(
                self._client.stream("GET", "/event", params=params, headers={"Accept": "text/event-stream"})
            )
        except httpx.HTTPError as exc:
            await self._stack.aclose()
            raise BackendError(f"event.subscribe failed: {exc}", operation="event.subscribe") from exc
        if response.status_code >= 400:
            await self._stack.aclose()
            raise BackendError(
                f"event.subscribe failed with status {response.status_code}",
                status_code=response.status_code,
                operation="event.subscribe",
            )
        self._response = response

    async def aclose(self) -> None:
        self._response = None
        with contextlib.suppress(Exception):
            await self._stack.aclose()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[StreamEvent]:
        if self._response is None:
            raise BackendError("event stream is not open", operation="event.subscribe")
        try:
            async for payload in _iter_sse(self._response):
                try:
                    event = decode_event(payload)
                except EventDecodeError as exc:
                    log_event(logger, "backend.event.decode_failed", level=logging.WARNING, error=str(exc))
                    continue
                if log_events_enabled():
                    log_event(logger, "backend.event", type=event.type, session=event.session_id)
                yield event
        except httpx.HTTPError as exc:
            raise BackendError(f"event stream failed: {exc}", operation="event.stream") from exc


async def _iter_sse(response: httpx.Response) -> AsyncIterator[Any]:
    buffered: list[str] = []
    async for line in response.aiter_lines():
        if line.startswith("data:"):
            buffered.append(line[5:].strip())
        elif line.strip() == "":
            if not buffered:
                continue
            raw = "\n".join(buffered)
            buffered = []
            try:
                yield json.loads(raw)
            except ValueError:
                log_event(logger, "backend.event.invalid_json", level=logging.WARNING, preview=raw[:160])
    if buffered:
        with contextlib.suppress(ValueError):
            yield json.loads("\n".join(buffered))


def _decode(model: type[ModelT], data: Any, operation: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BackendError(f"{operation} returned an unexpected payload: {exc.error_count()} error(s)", operation=operation) from exc


def _decode_list(adapter: TypeAdapter[Any], data: Any, operation: str) -> Any:
    try:
        return adapter.validate_python(data)
    except ValidationError as exc:
        raise BackendError(f"{operation} returned an unexpected payload: {exc.error_count()} error(s)", operation=operation) from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:240]
    if isinstance(body, dict):
        data = body.get("data")
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        if body.get("message"):
            return str(body["message"])
        if body.get("error"):
            return str(body["error"])
    return json.dumps(body)[:240]
