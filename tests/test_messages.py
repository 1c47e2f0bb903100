"""Tests for wire message validation."""

import pytest

from livesync.core.annotator import annotate
from livesync.errors import ProtocolError
from livesync.sync.messages import (
    RENDER_MESSAGES,
    SOURCE_MESSAGES,
    CursorMessage,
    UserRevealMessage,
    ViewportMessage,
    VisibilityMessage,
    parse_message,
    update_content_message,
)


def test_source_messages():
    assert parse_message({"type": "cursor", "line": 3}, SOURCE_MESSAGES) == CursorMessage(3)
    assert parse_message(
        {"type": "viewport", "topLine": 1, "bottomLine": 40}, SOURCE_MESSAGES
    ) == ViewportMessage(1, 40)
    assert parse_message({"type": "content", "text": "# x"}, SOURCE_MESSAGES).text == "# x"


def test_visibility_message():
    parsed = parse_message(
        {
            "type": "visibility",
            "generation": 3,
            "viewportHeight": 800,
            "entries": [{"blockId": "intro", "intersectionRatio": 0.5, "boundingTop": 12}],
        },
        RENDER_MESSAGES,
    )
    assert isinstance(parsed, VisibilityMessage)
    assert parsed.generation == 3
    assert parsed.viewport_height == 800.0
    assert parsed.entries[0].block_id == "intro"
    assert parsed.entries[0].bounding_top == 12.0


def test_generation_is_optional():
    parsed = parse_message({"type": "user-reveal", "blockId": "intro"}, RENDER_MESSAGES)
    assert parsed == UserRevealMessage("intro", None)


def test_tables_are_separate():
    """The render side cannot send source messages and vice versa."""
    with pytest.raises(ProtocolError):
        parse_message({"type": "cursor", "line": 3}, RENDER_MESSAGES)
    with pytest.raises(ProtocolError):
        parse_message({"type": "user-reveal", "blockId": "x"}, SOURCE_MESSAGES)


@pytest.mark.parametrize(
    "message",
    [
        None,
        [],
        "cursor",
        {},
        {"type": 5},
        {"type": "cursor"},
        {"type": "cursor", "line": "3"},
        {"type": "cursor", "line": True},
        {"type": "cursor", "line": 0},
        {"type": "viewport", "topLine": 1},
        {"type": "content", "text": None},
    ],
)
def test_bad_source_messages(message):
    with pytest.raises(ProtocolError):
        parse_message(message, SOURCE_MESSAGES)


@pytest.mark.parametrize(
    "message",
    [
        {"type": "visibility", "viewportHeight": 800},
        {"type": "visibility", "viewportHeight": 800, "entries": [{"intersectionRatio": 1}]},
        {
            "type": "visibility",
            "viewportHeight": 800,
            "entries": [{"blockId": "a", "intersectionRatio": "1", "boundingTop": 0}],
        },
        {"type": "visibility", "viewportHeight": -1, "entries": []},
        {"type": "visibility", "viewportHeight": 800, "entries": [], "generation": "2"},
        {"type": "user-reveal", "blockId": ""},
    ],
)
def test_bad_render_messages(message):
    with pytest.raises(ProtocolError):
        parse_message(message, RENDER_MESSAGES)


def test_update_content_message():
    document = annotate("# Hi\n", generation=4)
    message = update_content_message(document)
    assert message["type"] == "update-content"
    assert message["generation"] == 4
    assert message["blocks"] == [
        {"id": "hi", "kind": "heading", "lines": {"start": 1, "end": 1}, "heading": {"text": "Hi", "level": 1}}
    ]
    assert 'id="hi"' in message["html"]
