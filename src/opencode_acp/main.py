"""Console entrypoint: serve the ACP agent over stdio."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from opencode_acp import __version__
from opencode_acp.agent import OpencodeACPAgent
from opencode_acp.config import BridgeConfig, load_config
from opencode_acp.log_utils import build_log_config, configure_logging, log_event

logger = logging.getLogger("opencode_acp")


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    """Log failures from tasks nobody awaited instead of letting them vanish."""
    exc = context.get("exception")
    log_event(
        logger,
        "runtime.unhandled",
        level=logging.ERROR,
        message=context.get("message"),
        error=repr(exc) if exc is not None else None,
    )


async def run_acp_agent(config: BridgeConfig | None = None) -> None:
    """Run the ACP server on stdio until the client closes the stream."""
    from acp.core import run_agent  # Imported lazily to avoid hard dependency at import time

    config = config or load_config()
    configure_logging(build_log_config())
    log_event(logger, "runtime.start", version=__version__, base_url=config.base_url)
    asyncio.get_running_loop().set_exception_handler(_log_unhandled)

    agent = OpencodeACPAgent(config=config)
    try:
        await run_agent(agent, use_unstable_protocol=True, stdio_buffer_limit_bytes=config.stdio_buffer_limit)
    finally:
        await agent.aclose()
        log_event(logger, "runtime.stop")


def main_entry() -> int:
    try:
        asyncio.run(run_acp_agent())
    except KeyboardInterrupt:
        return 0
    return 0


if __name__ == "__main__":
    raise SystemExit(main_entry())
