"""Runtime configuration for the bridge, read from the environment.

Values come from process environment variables. A `.env` file in the user
config directory is loaded first (without overriding the real environment),
followed by a `.env` in the working directory.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from opencode_acp.paths import config_dir

DEFAULT_BASE_URL = "http://localhost:4096"
DEFAULT_HOSTNAME = "127.0.0.1"
DEFAULT_PORT = 4096
DEFAULT_CONNECT_TIMEOUT_MS = 2000
DEFAULT_SETTLE_TIMEOUT_S = 2.0
DEFAULT_OPENCODE_BIN = "opencode"
DEFAULT_STDIO_BUFFER_LIMIT_BYTES = 50 * 1024 * 1024
_MIN_STDIO_BUFFER_LIMIT_BYTES = 64 * 1024

ENV_FILE = config_dir() / ".env"


def parse_level(value: str | None, default: int) -> int:
    """Parse a log level string or numeric value from environment settings."""
    if not value:
        return default
    if value.isdigit():
        return int(value)
    return logging._nameToLevel.get(value.upper(), default)


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse a truthy/falsy toggle from environment settings."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Parse an integer setting, returning the default on invalid input."""
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return int(value)
    return default


def parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return float(value)
    return default


def _parse_stdio_buffer_limit(raw_value: str | None) -> int:
    parsed = parse_int(raw_value, DEFAULT_STDIO_BUFFER_LIMIT_BYTES)
    return max(parsed, _MIN_STDIO_BUFFER_LIMIT_BYTES)


@dataclass(frozen=True)
class BridgeConfig:
    """Settings for reaching (or spawning) the opencode server."""

    base_url: str = DEFAULT_BASE_URL
    hostname: str = DEFAULT_HOSTNAME
    port: int = DEFAULT_PORT
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    stream_settle_timeout_s: float = DEFAULT_SETTLE_TIMEOUT_S
    opencode_bin: str = DEFAULT_OPENCODE_BIN
    spawn_server: bool = True
    stdio_buffer_limit: int = DEFAULT_STDIO_BUFFER_LIMIT_BYTES

    @property
    def connect_timeout_s(self) -> float:
        return self.connect_timeout_ms / 1000.0


def load_env_files(env_file: Path | None = None) -> None:
    load_dotenv(env_file or ENV_FILE, override=False)
    load_dotenv()


def load_config() -> BridgeConfig:
    """Build a BridgeConfig from environment variables and `.env` files."""

    load_env_files()
    return BridgeConfig(
        base_url=os.getenv("OPENCODE_BASE_URL") or DEFAULT_BASE_URL,
        hostname=os.getenv("OPENCODE_ACP_HOSTNAME") or DEFAULT_HOSTNAME,
        port=parse_int(os.getenv("OPENCODE_ACP_PORT"), DEFAULT_PORT),
        connect_timeout_ms=parse_int(os.getenv("OPENCODE_ACP_CONNECT_TIMEOUT_MS"), DEFAULT_CONNECT_TIMEOUT_MS),
        stream_settle_timeout_s=parse_float(os.getenv("OPENCODE_ACP_SETTLE_TIMEOUT_S"), DEFAULT_SETTLE_TIMEOUT_S),
        opencode_bin=os.getenv("OPENCODE_ACP_BIN") or DEFAULT_OPENCODE_BIN,
        spawn_server=parse_bool(os.getenv("OPENCODE_ACP_SPAWN"), True),
        stdio_buffer_limit=_parse_stdio_buffer_limit(os.getenv("OPENCODE_ACP_STDIO_BUFFER_LIMIT_BYTES")),
    )
