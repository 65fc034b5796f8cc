"""Slash commands run against the opencode session instead of prompting it.

See: https://agentclientprotocol.com/protocol/slash-commands
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from acp.schema import AvailableCommand, AvailableCommandInput, UnstructuredCommandInput

from opencode_acp.agent.converters import parse_slash_command
from opencode_acp.agent.model_catalog import resolve_command_model, split_model_id
from opencode_acp.agent.session_registry import SessionRecord
from opencode_acp.backend.models import TextPart
from opencode_acp.errors import BackendError
from opencode_acp.log_utils import log_context, log_event

logger = logging.getLogger(__name__)

SLASH_HANDLERS: dict[str, "SlashCommandDef"] = {}

SlashHandler = Callable[[Any, str, str], Awaitable[None]]


@dataclass
class SlashCommandDef:
    description: str
    hint: str
    handler: SlashHandler


def register_slash_command(name: str, description: str, hint: str) -> Callable[[SlashHandler], SlashHandler]:
    """Decorator to register a slash command handler."""

    def _decorator(func: SlashHandler) -> SlashHandler:
        SLASH_HANDLERS[name] = SlashCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


async def _command_model(gateway: Any, record: SessionRecord) -> tuple[str, str]:
    """Resolve the provider and model that init and summarize must name."""
    provider_id, model_id = split_model_id(record.current_model)
    if provider_id and model_id:
        return provider_id, model_id
    try:
        catalog = await gateway.provider_catalog(directory=record.cwd)
    except BackendError as exc:
        log_event(logger, "slash.model.catalog_failed", level=logging.WARNING, error=str(exc))
        catalog = None
    return resolve_command_model(record.current_model, catalog)


@register_slash_command(
    "init",
    description="Create or update AGENTS.md for this project.",
    hint="/init",
)
async def _handle_init(agent: Any, session_id: str, _argument: str) -> None:
    gateway = agent._require_gateway()
    record = agent._sessions.get(session_id)
    await agent._notify(session_id, "Creating AGENTS.md file...")
    provider_id, model_id = await _command_model(gateway, record)
    try:
        await gateway.init(
            record.backend_session_id,
            provider_id,
            model_id,
            directory=record.cwd,
        )
    except Exception as exc:  # noqa: BLE001
        log_event(logger, "slash.init.failed", level=logging.WARNING, error=str(exc))
        await agent._notify(session_id, f"Failed to create AGENTS.md: {exc}")
        return
    await agent._notify(session_id, "AGENTS.md created successfully.")


@register_slash_command(
    "compact",
    description="Summarize the conversation to free up context.",
    hint="/compact",
)
async def _handle_compact(agent: Any, session_id: str, _argument: str) -> None:
    gateway = agent._require_gateway()
    record = agent._sessions.get(session_id)
    await agent._notify(session_id, "Compacting conversation...")
    provider_id, model_id = await _command_model(gateway, record)
    try:
        await gateway.summarize(
            record.backend_session_id,
            provider_id,
            model_id,
            directory=record.cwd,
        )
    except Exception as exc:  # noqa: BLE001
        log_event(logger, "slash.compact.failed", level=logging.WARNING, error=str(exc))
        await agent._notify(session_id, f"Failed to compact conversation: {exc}")
        return
    await agent._notify(session_id, "Conversation compacted successfully.")


@register_slash_command(
    "review",
    description="Review code changes.",
    hint="/review [focus]",
)
async def _handle_review(agent: Any, session_id: str, argument: str) -> None:
    gateway = agent._require_gateway()
    record = agent._sessions.get(session_id)
    result = await gateway.run_command(record.backend_session_id, "review", argument, directory=record.cwd)
    for part in result.parts:
        if isinstance(part, TextPart) and part.text:
            await agent._notify(session_id, part.text)


def _unknown_command_message(name: str) -> str:
    valid = ", ".join(f"/{command}" for command in SLASH_HANDLERS)
    return f"Unknown command: /{name}. Available commands: {valid}"


async def handle_slash_command(agent: Any, session_id: str, text: str) -> bool:
    """Run a slash command; returns False when `text` is not a command.

    Failures are reported to the client as a message instead of raising, so
    the enclosing prompt always completes.
    """

    parsed = parse_slash_command(text)
    if parsed is None:
        return False
    name, argument = parsed
    with log_context(session_id=session_id):
        log_event(logger, "slash.command", command=name, has_argument=bool(argument))
    entry = SLASH_HANDLERS.get(name)
    if entry is None:
        await agent._notify(session_id, _unknown_command_message(name))
        return True
    try:
        await entry.handler(agent, session_id, argument)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Slash command /%s failed", name)
        await agent._notify(session_id, f"Error executing /{name}: {exc}")
    return True


def available_slash_commands() -> list[AvailableCommand]:
    """Build ACP AvailableCommand entries from registered slash commands."""
    commands: list[AvailableCommand] = []
    for name, entry in SLASH_HANDLERS.items():
        commands.append(
            AvailableCommand(
                name=name,
                description=entry.description,
                input=AvailableCommandInput(root=UnstructuredCommandInput(hint=entry.hint)),
            )
        )
    return commands
