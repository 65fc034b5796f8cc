"""Error taxonomy for the bridge.

Every error derives from ACP's `RequestError`, so raising one inside a request
handler produces a JSON-RPC error response with a meaningful code.
"""

from __future__ import annotations

from typing import Any

from acp import RequestError

INVALID_PARAMS = -32602
METHOD_NOT_FOUND = -32601
INTERNAL_ERROR = -32603
RESOURCE_NOT_FOUND = -32002


class BridgeError(RequestError):
    code: int = INTERNAL_ERROR

    def __init__(self, message: str, data: dict[str, Any] | None = None) -> None:
        payload = {"message": message, **(data or {})}
        super().__init__(self.code, message, payload)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotInitialized(BridgeError):
    """The opencode gateway has not been connected yet."""

    code = INTERNAL_ERROR

    def __init__(self, message: str = "opencode client not initialized") -> None:
        super().__init__(message)


class SessionNotFound(BridgeError):
    code = RESOURCE_NOT_FOUND

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}", {"sessionId": session_id})
        self.session_id = session_id


class InvalidArgument(BridgeError):
    code = INVALID_PARAMS


class InvalidMode(InvalidArgument):
    def __init__(self, mode: str, valid_modes: list[str]) -> None:
        valid = ", ".join(valid_modes)
        super().__init__(
            f"Invalid mode: {mode}. Valid modes: {valid}",
            {"mode": mode, "validModes": list(valid_modes)},
        )
        self.mode = mode


class BackendError(BridgeError):
    """Any failure talking to the opencode server."""

    code = INTERNAL_ERROR

    def __init__(self, message: str, *, status_code: int | None = None, operation: str | None = None) -> None:
        data: dict[str, Any] = {}
        if status_code is not None:
            data["statusCode"] = status_code
        if operation is not None:
            data["operation"] = operation
        super().__init__(message, data)
        self.status_code = status_code
        self.operation = operation


class BackendPortInUse(BackendError):
    """Spawning a local server failed because the port is already bound."""


class UnsupportedOperation(BridgeError):
    code = METHOD_NOT_FOUND
