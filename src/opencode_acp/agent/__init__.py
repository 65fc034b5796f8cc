"""ACP agent side of the bridge."""

from opencode_acp.agent.acp_agent import OpencodeACPAgent  # noqa: F401

__all__ = ["OpencodeACPAgent"]
