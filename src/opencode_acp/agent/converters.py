"""Convert ACP prompt content blocks into opencode message parts."""

from __future__ import annotations

from typing import Any


def _field(block: Any, name: str) -> Any:
    if isinstance(block, dict):
        return block.get(name)
    return getattr(block, name, None)


def _link_text(uri: str) -> str:
    return f"[@{uri}]({uri})"


def prompt_to_backend_parts(blocks: list[Any]) -> list[dict[str, Any]]:
    """Map prompt blocks to opencode part inputs, in order.

    Blocks that carry nothing the backend can use (embedded blobs, images
    without data, audio) are dropped rather than rejected.
    """

    parts: list[dict[str, Any]] = []
    for block in blocks:
        block_type = _field(block, "type")
        if block_type == "text":
            parts.append({"type": "text", "text": _field(block, "text") or ""})
        elif block_type == "resource_link":
            parts.append({"type": "text", "text": _link_text(_field(block, "uri"))})
        elif block_type == "resource":
            resource = _field(block, "resource")
            text = _field(resource, "text") if resource is not None else None
            if isinstance(text, str):
                uri = _field(resource, "uri")
                parts.append({"type": "text", "text": f"{_link_text(uri)}\n\n{text}"})
        elif block_type == "image":
            data = _field(block, "data")
            if data:
                parts.append(_image_part(data, _field(block, "mime_type") or _field(block, "mimeType"), _field(block, "uri")))
    return parts


def _image_part(data: str, mime_type: str | None, uri: str | None) -> dict[str, Any]:
    mime = mime_type or "image/png"
    part: dict[str, Any] = {"type": "file", "mime": mime, "url": f"data:{mime};base64,{data}"}
    if uri:
        part["filename"] = uri.rsplit("/", 1)[-1]
    return part


def first_text(blocks: list[Any]) -> str | None:
    """Return the text of the first text block, if any."""

    for block in blocks:
        if _field(block, "type") == "text":
            text = _field(block, "text")
            return text if isinstance(text, str) else None
    return None


def parse_slash_command(text: str) -> tuple[str, str] | None:
    """Split `/name rest of text` into (name, rest); None when not a command."""

    trimmed = text.strip()
    if not trimmed.startswith("/"):
        return None
    parts = trimmed[1:].split(maxsplit=1)
    name = parts[0] if parts else ""
    argument = parts[1].strip() if len(parts) > 1 else ""
    return name, argument
