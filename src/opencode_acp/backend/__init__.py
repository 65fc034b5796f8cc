"""Client side of the opencode server API."""

from opencode_acp.backend.gateway import EventSubscription, OpencodeGateway  # noqa: F401

__all__ = ["EventSubscription", "OpencodeGateway"]
