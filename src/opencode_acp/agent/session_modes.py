"""Session modes exposed through ACP session-mode endpoints.

See: https://agentclientprotocol.com/protocol/session-modes
"""

from __future__ import annotations

from acp.schema import SessionMode, SessionModeState

DEFAULT_MODE = "default"


def available_modes() -> list[dict[str, str]]:
    return [
        {"id": "default", "name": "Default", "description": "Ask before making changes"},
        {"id": "acceptEdits", "name": "Accept Edits", "description": "Apply file edits without asking"},
        {"id": "plan", "name": "Plan", "description": "Plan changes without editing files"},
    ]


def mode_ids() -> list[str]:
    return [mode["id"] for mode in available_modes()]


def build_mode_state(current_mode: str) -> SessionModeState:
    return SessionModeState(
        available_modes=[
            SessionMode(id=m["id"], name=m["name"], description=m["description"]) for m in available_modes()
        ],
        current_mode_id=current_mode,
    )
