"""Spawning a local `opencode serve` process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import socket
from dataclasses import dataclass, field

from opencode_acp.errors import BackendError, BackendPortInUse
from opencode_acp.log_utils import log_event

logger = logging.getLogger(__name__)

_LISTENING_RE = re.compile(r"opencode server listening.*?(https?://\S+)", re.IGNORECASE)
_BIND_CONFLICT_MARKERS = ("eaddrinuse", "address already in use", "port is already in use")
_OUTPUT_TAIL_LINES = 20


def is_bind_conflict(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in _BIND_CONFLICT_MARKERS)


def port_in_use(hostname: str, port: int) -> bool:
    """Return True when something already listens on hostname:port."""

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((hostname, port))
        except OSError:
            return True
    return False


@dataclass
class ServerProcess:
    url: str
    process: asyncio.subprocess.Process
    _drain_task: asyncio.Task[None] | None = field(default=None, repr=False)

    async def close(self) -> None:
        if self._drain_task is not None:
            self._drain_task.cancel()
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._drain_task
        if self.process.returncode is not None:
            return
        self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            self.process.kill()
            await self.process.wait()


async def spawn_server(
    *,
    binary: str,
    hostname: str,
    port: int,
    timeout_s: float,
) -> ServerProcess:
    """Start `opencode serve` and wait until it reports its listening URL.

    Raises `BackendPortInUse` when the port is already bound, and
    `BackendError` for any other startup failure.
    """

    if port_in_use(hostname, port):
        raise BackendPortInUse(f"{hostname}:{port} is already in use (EADDRINUSE)", operation="spawn")

    log_event(logger, "backend.spawn.start", binary=binary, hostname=hostname, port=port)
    try:
        process = await asyncio.create_subprocess_exec(
            binary,
            "serve",
            f"--hostname={hostname}",
            f"--port={port}",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except FileNotFoundError as exc:
        raise BackendError(f"opencode binary not found: {binary}", operation="spawn") from exc
    except OSError as exc:
        raise BackendError(f"Failed to start opencode: {exc}", operation="spawn") from exc

    output: list[str] = []
    try:
        url = await asyncio.wait_for(_wait_for_listening(process, output), timeout=timeout_s)
    except asyncio.TimeoutError:
        await _terminate(process)
        raise BackendError(
            f"Timeout waiting for opencode server to start after {int(timeout_s * 1000)}ms",
            operation="spawn",
        ) from None
    except BackendError:
        await _terminate(process)
        raise

    log_event(logger, "backend.spawn.ready", url=url, pid=process.pid)
    server = ServerProcess(url=url, process=process)
    server._drain_task = asyncio.create_task(_drain_output(process))
    return server


async def _wait_for_listening(process: asyncio.subprocess.Process, output: list[str]) -> str:
    assert process.stdout is not None
    while True:
        raw = await process.stdout.readline()
        if not raw:
            await process.wait()
            tail = "\n".join(output[-_OUTPUT_TAIL_LINES:])
            message = f"opencode server exited with code {process.returncode}"
            if tail:
                message = f"{message}\n{tail}"
            if is_bind_conflict(tail):
                raise BackendPortInUse(message, operation="spawn")
            raise BackendError(message, operation="spawn")
        line = raw.decode("utf-8", errors="replace").rstrip()
        output.append(line)
        match = _LISTENING_RE.search(line)
        if match:
            return match.group(1)


async def _drain_output(process: asyncio.subprocess.Process) -> None:
    """Keep reading server output so the pipe never fills up."""
    if process.stdout is None:
        return
    while True:
        raw = await process.stdout.readline()
        if not raw:
            return
        logger.debug("opencode: %s", raw.decode("utf-8", errors="replace").rstrip())


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    with contextlib.suppress(Exception):
        await process.wait()
