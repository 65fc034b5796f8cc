from __future__ import annotations

import json

import httpx
import pytest

from opencode_acp.backend.events import TextDelta, ToolStart, UnknownEvent
from opencode_acp.backend.gateway import OpencodeGateway
from opencode_acp.backend.models import TextPart, ToolPart
from opencode_acp.config import BridgeConfig
from opencode_acp.errors import BackendError, BackendPortInUse


def _gateway(handler) -> OpencodeGateway:
    client = httpx.AsyncClient(base_url="http://opencode.test", transport=httpx.MockTransport(handler))
    return OpencodeGateway("http://opencode.test", http_client=client)


@pytest.mark.asyncio
async def test_create_session_posts_title_and_directory():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "ses_1", "title": "t", "time": {"created": 1, "updated": 2}})

    gateway = _gateway(handler)
    session = await gateway.create_session("t", directory="/repo")

    assert session.id == "ses_1"
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/session"
    assert seen[0].url.params["directory"] == "/repo"
    assert json.loads(seen[0].content) == {"title": "t"}
    await gateway.close()


@pytest.mark.asyncio
async def test_prompt_sends_model_only_when_both_ids_present():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "info": {"id": "msg_1", "role": "assistant", "sessionID": "ses_1"},
                "parts": [
                    {"type": "text", "text": "done"},
                    {"type": "tool", "callID": "c1", "tool": "bash", "state": {"status": "completed", "output": "ok"}},
                    {"type": "step-finish", "tokens": {}},
                ],
            },
        )

    gateway = _gateway(handler)
    parts = [{"type": "text", "text": "hi"}]
    result = await gateway.prompt("ses_1", "anthropic", "claude", parts)
    await gateway.prompt("ses_1", None, None, parts)

    assert bodies[0] == {"parts": parts, "model": {"providerID": "anthropic", "modelID": "claude"}}
    assert bodies[1] == {"parts": parts}
    assert isinstance(result.parts[0], TextPart)
    assert isinstance(result.parts[1], ToolPart)
    assert result.parts[2].type == "step-finish"


@pytest.mark.asyncio
async def test_error_status_becomes_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"data": {"message": "Session not found"}})

    gateway = _gateway(handler)

    with pytest.raises(BackendError) as excinfo:
        await gateway.get_session("nope")

    assert excinfo.value.status_code == 404
    assert "Session not found" in str(excinfo.value)
    assert excinfo.value.code == -32603


@pytest.mark.asyncio
async def test_transport_failure_becomes_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    gateway = _gateway(handler)

    with pytest.raises(BackendError) as excinfo:
        await gateway.list_sessions()

    assert excinfo.value.operation == "session.list"


@pytest.mark.asyncio
async def test_unexpected_payload_becomes_backend_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"providers": "not-a-list"})

    gateway = _gateway(handler)

    with pytest.raises(BackendError):
        await gateway.list_providers()


@pytest.mark.asyncio
async def test_list_providers_and_messages():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/config/providers":
            return httpx.Response(
                200,
                json={
                    "providers": [{"id": "openai", "name": "OpenAI", "models": {"gpt-4o": {"name": "GPT-4o"}}}],
                    "default": {"openai": "gpt-4o"},
                },
            )
        return httpx.Response(
            200,
            json=[
                {"info": {"role": "user"}, "parts": [{"type": "text", "text": "hi"}]},
                {"info": {"role": "assistant"}, "parts": [{"type": "reasoning", "text": "hmm"}]},
            ],
        )

    gateway = _gateway(handler)
    providers = await gateway.list_providers()
    catalog = await gateway.provider_catalog(directory="/repo")
    messages = await gateway.list_messages("ses_1")

    assert providers[0].models["gpt-4o"].name == "GPT-4o"
    assert catalog.default == {"openai": "gpt-4o"}
    assert [provider.id for provider in catalog.providers] == ["openai"]
    assert [message.info.role for message in messages] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_abort_init_and_command_requests():
    seen: list[tuple[str, dict | None]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.path, json.loads(request.content) if request.content else None))
        if request.url.path.endswith("/command"):
            return httpx.Response(200, json={"info": {"role": "assistant"}, "parts": [{"type": "text", "text": "r"}]})
        return httpx.Response(200, json=True)

    gateway = _gateway(handler)
    await gateway.abort("ses_1")
    await gateway.init("ses_1", "anthropic", "claude", message_id="msg_fixed")
    await gateway.summarize("ses_1", "anthropic", "claude")
    result = await gateway.run_command("ses_1", "review", "parser")

    assert seen[0] == ("/session/ses_1/abort", None)
    assert seen[1] == (
        "/session/ses_1/init",
        {"messageID": "msg_fixed", "providerID": "anthropic", "modelID": "claude"},
    )
    assert seen[2] == ("/session/ses_1/summarize", {"providerID": "anthropic", "modelID": "claude"})
    assert seen[3] == ("/session/ses_1/command", {"command": "review", "arguments": "parser"})
    assert result.parts[0].text == "r"


@pytest.mark.asyncio
async def test_event_stream_decodes_and_skips_garbage():
    body = (
        'data: {"type":"server.connected","properties":{}}\n\n'
        "data: not-json\n\n"
        'data: {"type":"text_delta","properties":{"sessionID":"ses_1","text":"Hi"}}\n\n'
        'data: {"type":"text_delta","properties":{"sessionID":"ses_1"}}\n\n'
        'data: {"type":"tool_start","properties":{"sessionID":"ses_1","toolCallId":"c1","name":"ls"}}\n\n'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/event"
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    gateway = _gateway(handler)
    subscription = await gateway.subscribe_events()
    events = [event async for event in subscription]
    await subscription.aclose()

    assert isinstance(events[0], UnknownEvent)
    assert isinstance(events[1], TextDelta)
    assert isinstance(events[2], ToolStart)
    assert len(events) == 3


@pytest.mark.asyncio
async def test_event_stream_survives_malformed_native_events():
    body = (
        'data: {"type":"message.part.updated","properties":{"part":{"type":"tool","callID":"c1","state":"oops"}}}\n\n'
        'data: {"type":"session.idle","properties":["ses_1"]}\n\n'
        'data: {"type":"text_delta","properties":{"sessionID":"ses_1","text":"still here"}}\n\n'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    gateway = _gateway(handler)
    subscription = await gateway.subscribe_events()
    events = [event async for event in subscription]
    await subscription.aclose()

    assert len(events) == 1
    assert isinstance(events[0], TextDelta)
    assert events[0].text == "still here"


@pytest.mark.asyncio
async def test_event_stream_error_status_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    gateway = _gateway(handler)

    with pytest.raises(BackendError) as excinfo:
        await gateway.subscribe_events()

    assert excinfo.value.status_code == 503


@pytest.mark.asyncio
async def test_connect_attaches_when_port_in_use(monkeypatch):
    from opencode_acp.backend import gateway as gateway_module

    async def _spawn(**_kwargs):
        raise BackendPortInUse("127.0.0.1:4096 is already in use (EADDRINUSE)")

    monkeypatch.setattr(gateway_module, "spawn_server", _spawn)

    gateway = await OpencodeGateway.connect(BridgeConfig(base_url="http://localhost:4096"))

    assert gateway.base_url == "http://localhost:4096"
    assert gateway.spawned is False
    await gateway.close()


@pytest.mark.asyncio
async def test_connect_propagates_other_spawn_failures(monkeypatch):
    from opencode_acp.backend import gateway as gateway_module

    async def _spawn(**_kwargs):
        raise BackendError("opencode binary not found: opencode")

    monkeypatch.setattr(gateway_module, "spawn_server", _spawn)

    with pytest.raises(BackendError, match="binary not found"):
        await OpencodeGateway.connect(BridgeConfig())


@pytest.mark.asyncio
async def test_connect_without_spawning_uses_base_url(monkeypatch):
    from opencode_acp.backend import gateway as gateway_module

    async def _spawn(**_kwargs):  # pragma: no cover - must not be called
        raise AssertionError("spawn_server called")

    monkeypatch.setattr(gateway_module, "spawn_server", _spawn)

    gateway = await OpencodeGateway.connect(BridgeConfig(base_url="http://remote:9000/", spawn_server=False))

    assert gateway.base_url == "http://remote:9000"
    await gateway.close()
