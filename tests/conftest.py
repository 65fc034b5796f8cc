from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Force tests to use a temporary HOME/XDG dirs and a clean bridge environment."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(base / ".local" / "share"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(base / ".cache"))
    monkeypatch.setattr(Path, "home", lambda: base)
    for name in (
        "OPENCODE_BASE_URL",
        "OPENCODE_ACP_HOSTNAME",
        "OPENCODE_ACP_PORT",
        "OPENCODE_ACP_CONNECT_TIMEOUT_MS",
        "OPENCODE_ACP_SETTLE_TIMEOUT_S",
        "OPENCODE_ACP_BIN",
        "OPENCODE_ACP_SPAWN",
        "OPENCODE_ACP_STDIO_BUFFER_LIMIT_BYTES",
        "OPENCODE_ACP_LOG_DIR",
        "OPENCODE_ACP_LOG_LEVEL",
        "OPENCODE_ACP_LOG_STDERR",
        "OPENCODE_ACP_LOG_JSON",
        "OPENCODE_ACP_LOG_EVENTS",
    ):
        monkeypatch.delenv(name, raising=False)
