"""Tests for sync sessions: both directions wired through the channel."""

import logging

import pytest

from livesync.config import LiveSyncConfig, SyncConfig
from livesync.errors import DocumentError
from livesync.sync.session import SessionRegistry, SyncSession

TEXT = """\
# Alpha

one

# Beta

two
"""

CONFIG = LiveSyncConfig(sync=SyncConfig(min_sync_interval_ms=50, debounce_ms=30, settle_ms=300))


def visibility(block_id, top=150.0, ratio=1.0, generation=1):
    return {
        "type": "visibility",
        "generation": generation,
        "viewportHeight": 1000,
        "entries": [{"blockId": block_id, "intersectionRatio": ratio, "boundingTop": top}],
    }


@pytest.fixture
def session(scheduler):
    return SyncSession("doc.md", scheduler, CONFIG, TEXT)


@pytest.fixture
def render(session, new_transport):
    transport = new_transport()
    session.attach_render(transport)
    return transport


@pytest.fixture
def source(session, new_transport):
    transport = new_transport()
    session.attach_source(transport)
    return transport


def test_first_render_is_generation_one(session, render):
    assert session.generation == 1
    assert [b.stable_id for b in session.document.blocks] == ["alpha", "3", "beta", "7"]

    first = render.sent[0]
    assert first["type"] == "update-content"
    assert first["generation"] == 1
    assert 'id="beta"' in first["html"]
    assert len(render.of_type("reveal")) == 0


def test_cursor_reveals_block_on_render_side(session, render):
    session.handle_source_message({"type": "cursor", "line": 6})

    reveal = render.of_type("reveal")[-1]
    assert reveal == {"type": "reveal", "line": 5, "blockId": "beta", "generation": 1}
    assert session.pair.render.programmatic_scroll_active
    assert session.pair.render.last_synced_line == 5


def test_viewport_is_debounced(session, render, scheduler):
    session.handle_source_message({"type": "viewport", "topLine": 1, "bottomLine": 3})
    assert render.of_type("reveal") == []

    scheduler.advance(100)
    assert render.of_type("reveal")[-1]["blockId"] == "alpha"


def test_round_trip_is_stable(session, render, source, scheduler):
    session.handle_source_message({"type": "cursor", "line": 5})
    scheduler.advance(400)

    # the render surface reports where the reveal landed
    session.handle_render_message(visibility("beta"))
    scheduler.advance(100)

    assert source.of_type("set-position") == []
    assert session.pair.source.last_synced_line == 5
    assert session.pair.render.last_synced_line == 5


def test_render_scroll_moves_source_silently(session, render, source, scheduler):
    session.handle_render_message(visibility("7"))

    assert source.of_type("set-position") == [{"type": "set-position", "line": 7, "silent": True}]
    assert session.pair.source.programmatic_scroll_active

    # the editor echoes the move back; it must not bounce to the render side
    session.handle_source_message({"type": "cursor", "line": 7})
    scheduler.advance(100)
    assert render.of_type("reveal") == []


def test_visibility_during_reveal_is_suppressed(session, render, source, scheduler):
    session.handle_source_message({"type": "cursor", "line": 1})
    session.handle_render_message(visibility("7"))
    scheduler.advance(100)

    assert source.of_type("set-position") == []


def test_long_reveal_scroll_does_not_bounce(session, render, source, scheduler):
    """Reports from a reveal that scrolls past settle_ms still count as settling."""
    session.handle_source_message({"type": "cursor", "line": 7})

    scheduler.advance(250)
    session.handle_render_message(visibility("3"))
    scheduler.advance(70)
    # just past settle_ms after the reveal, still passing through
    session.handle_render_message(visibility("beta"))
    scheduler.advance(1000)

    assert source.of_type("set-position") == []
    assert session.pair.render.last_synced_line == 7


def test_user_reveal_moves_source_with_focus(session, render, source):
    session.handle_render_message({"type": "user-reveal", "blockId": "beta", "generation": 1})

    assert source.of_type("set-position") == [{"type": "set-position", "line": 5, "silent": False}]
    assert render.of_type("reveal") == []


def test_stale_user_reveal_is_dropped(session, render, source):
    session.update_source(TEXT + "\nthree\n")
    session.handle_render_message({"type": "user-reveal", "blockId": "beta", "generation": 1})
    assert source.of_type("set-position") == []


def test_content_update_rerenders(session, render):
    session.handle_source_message({"type": "cursor", "line": 5})
    session.handle_source_message({"type": "content", "text": "# Gamma\n\n" + TEXT})

    update = render.of_type("update-content")[-1]
    assert update["generation"] == 2
    assert update["blocks"][0]["id"] == "gamma"
    assert session.generation == 2
    # sync position survives the rebuild
    assert session.pair.source.last_synced_line == 5


def test_stale_visibility_after_rerender_is_ignored(session, render, source):
    session.update_source(TEXT)
    session.handle_render_message(visibility("7", generation=1))
    assert source.of_type("set-position") == []

    session.handle_render_message(visibility("7", generation=2))
    assert len(source.of_type("set-position")) == 1


def test_protocol_errors_are_logged_and_skipped(session, render, source, caplog):
    caplog.set_level(logging.WARNING, logger="livesync")

    session.handle_source_message("junk")
    session.handle_source_message({"type": "teleport"})
    session.handle_source_message({"type": "cursor", "line": 0})
    session.handle_render_message({"type": "visibility", "entries": "nope", "viewportHeight": 10})
    session.handle_render_message({"type": "visibility", "entries": [], "viewportHeight": 0})

    errors = [r for r in caplog.records if '"protocol_error"' in r.getMessage()]
    assert len(errors) == 5
    assert render.of_type("reveal") == []
    assert source.sent == []


def test_new_render_client_gets_current_position(session, scheduler, new_transport):
    session.handle_source_message({"type": "cursor", "line": 7})
    scheduler.advance(400)

    late = new_transport()
    session.attach_render(late)

    assert [m["type"] for m in late.sent] == ["update-content", "reveal"]
    assert late.sent[1]["blockId"] == "7"


def test_closed_client_is_dropped(session, render):
    render.close()
    session.handle_source_message({"type": "cursor", "line": 5})
    assert render not in session.render_clients


def test_detach(session, render, source):
    session.detach_render(render)
    session.detach_source(source)
    session.handle_source_message({"type": "cursor", "line": 5})
    assert render.of_type("reveal") == []


def test_close_cancels_timers(session, render, scheduler):
    session.handle_source_message({"type": "cursor", "line": 1})
    session.handle_source_message({"type": "viewport", "topLine": 5, "bottomLine": 7})
    assert scheduler.pending

    session.close()

    assert scheduler.pending == []
    assert render.closed


def test_sync_scroll_disabled(scheduler, new_transport):
    config = LiveSyncConfig()
    config.preview.sync_scroll = False
    session = SyncSession("doc.md", scheduler, config, TEXT)
    render = new_transport()
    session.attach_render(render)

    session.handle_source_message({"type": "cursor", "line": 5})
    assert render.of_type("reveal") == []


class TestRegistry:
    def test_open_reads_file(self, scheduler, write_doc):
        path = write_doc(TEXT)
        registry = SessionRegistry(lambda: scheduler, CONFIG)

        session = registry.open(path)

        assert session.document.by_id("alpha") is not None
        assert registry.get(path) is session
        assert registry.paths() == [path.resolve()]

    def test_open_twice_updates_text(self, scheduler, write_doc):
        path = write_doc(TEXT)
        registry = SessionRegistry(lambda: scheduler, CONFIG)
        session = registry.open(path)

        assert registry.open(path, "# Other\n") is session
        assert session.generation == 2

    def test_missing_document(self, scheduler, tmp_path):
        registry = SessionRegistry(lambda: scheduler, CONFIG)
        with pytest.raises(DocumentError):
            registry.open(tmp_path / "missing.md")
        with pytest.raises(DocumentError):
            registry.require(tmp_path / "missing.md")

    def test_sessions_do_not_cross_talk(self, scheduler, write_doc, new_transport):
        registry = SessionRegistry(lambda: scheduler, CONFIG)
        first = registry.open(write_doc(TEXT, "one.md"))
        second = registry.open(write_doc(TEXT, "two.md"))
        first_render, second_render = new_transport(), new_transport()
        first.attach_render(first_render)
        second.attach_render(second_render)

        first.handle_source_message({"type": "cursor", "line": 5})

        assert len(first_render.of_type("reveal")) == 1
        assert second_render.of_type("reveal") == []

    def test_close_all(self, scheduler, write_doc):
        registry = SessionRegistry(lambda: scheduler, CONFIG)
        registry.open(write_doc(TEXT))
        registry.close_all()
        assert registry.paths() == []
