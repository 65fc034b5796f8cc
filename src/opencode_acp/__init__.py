"""ACP agent that bridges editor clients to an opencode server."""

__version__ = "0.1.0"
