"""
Wire messages exchanged with the source side (editor) and the render side
(preview surface). Lines are 1-based on the wire.

Inbound from the source side:
    {"type": "cursor", "line": int}
    {"type": "viewport", "topLine": int, "bottomLine": int}
    {"type": "content", "text": str}

Inbound from the render side:
    {"type": "visibility", "generation": int, "viewportHeight": float,
     "entries": [{"blockId": str, "intersectionRatio": float, "boundingTop": float}]}
    {"type": "user-reveal", "blockId": str, "generation": int}

Outbound:
    {"type": "reveal", "line": int, "blockId": str, "generation": int}
    {"type": "set-position", "line": int, "silent": bool}
    {"type": "update-content", "html": str, "generation": int, "blocks": [...]}
"""

from dataclasses import dataclass
from typing import Any, Callable

from ..core.model import RenderedDocument, VisibilityEntry
from ..errors import ProtocolError


@dataclass(frozen=True)
class CursorMessage:
    line: int


@dataclass(frozen=True)
class ViewportMessage:
    top_line: int
    bottom_line: int


@dataclass(frozen=True)
class ContentMessage:
    text: str


@dataclass(frozen=True)
class VisibilityMessage:
    entries: tuple[VisibilityEntry, ...]
    viewport_height: float
    generation: int | None = None


@dataclass(frozen=True)
class UserRevealMessage:
    block_id: str
    generation: int | None = None


def _int(message: dict[str, Any], key: str, minimum: int | None = None) -> int:
    value = message.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"{message.get('type')}: {key} must be an integer")
    if minimum is not None and value < minimum:
        raise ProtocolError(f"{message.get('type')}: {key} must be >= {minimum}")
    return value


def _number(value: Any, what: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"visibility: {what} must be a number")
    return float(value)


def _optional_generation(message: dict[str, Any]) -> int | None:
    if message.get("generation") is None:
        return None
    return _int(message, "generation")


def _parse_cursor(message: dict[str, Any]) -> CursorMessage:
    return CursorMessage(line=_int(message, "line", minimum=1))


def _parse_viewport(message: dict[str, Any]) -> ViewportMessage:
    return ViewportMessage(
        top_line=_int(message, "topLine", minimum=1),
        bottom_line=_int(message, "bottomLine", minimum=1),
    )


def _parse_content(message: dict[str, Any]) -> ContentMessage:
    text = message.get("text")
    if not isinstance(text, str):
        raise ProtocolError("content: text must be a string")
    return ContentMessage(text=text)


def _parse_visibility(message: dict[str, Any]) -> VisibilityMessage:
    raw_entries = message.get("entries")
    if not isinstance(raw_entries, list):
        raise ProtocolError("visibility: entries must be a list")

    entries = []
    for raw in raw_entries:
        if not isinstance(raw, dict) or not isinstance(raw.get("blockId"), str):
            raise ProtocolError("visibility: every entry needs a string blockId")
        entries.append(
            VisibilityEntry(
                block_id=raw["blockId"],
                intersection_ratio=_number(raw.get("intersectionRatio"), "intersectionRatio"),
                bounding_top=_number(raw.get("boundingTop"), "boundingTop"),
            )
        )

    height = _number(message.get("viewportHeight"), "viewportHeight")
    if height <= 0:
        raise ProtocolError("visibility: viewportHeight must be positive")

    return VisibilityMessage(
        entries=tuple(entries),
        viewport_height=height,
        generation=_optional_generation(message),
    )


def _parse_user_reveal(message: dict[str, Any]) -> UserRevealMessage:
    block_id = message.get("blockId")
    if not isinstance(block_id, str) or not block_id:
        raise ProtocolError("user-reveal: blockId must be a non-empty string")
    return UserRevealMessage(block_id=block_id, generation=_optional_generation(message))


SOURCE_MESSAGES: dict[str, Callable[[dict[str, Any]], Any]] = {
    "cursor": _parse_cursor,
    "viewport": _parse_viewport,
    "content": _parse_content,
}

RENDER_MESSAGES: dict[str, Callable[[dict[str, Any]], Any]] = {
    "visibility": _parse_visibility,
    "user-reveal": _parse_user_reveal,
}


def parse_message(message: Any, parsers: dict[str, Callable[[dict[str, Any]], Any]]) -> Any:
    """Validate one decoded JSON message against the given parser table."""
    if not isinstance(message, dict):
        raise ProtocolError("message must be a JSON object")
    kind = message.get("type")
    parser = parsers.get(kind) if isinstance(kind, str) else None
    if parser is None:
        raise ProtocolError(f"unknown message type: {kind!r}")
    return parser(message)


def update_content_message(document: RenderedDocument) -> dict[str, Any]:
    return {
        "type": "update-content",
        "html": document.html,
        "generation": document.generation,
        "blocks": [b.to_dict() for b in document.blocks],
    }
