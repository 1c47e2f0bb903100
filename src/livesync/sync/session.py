"""
One source/render pair and the registry of open pairs.

The source side (editor) and the render side (preview surface) each own a
controller and a SyncState. They talk only through an ordered ``Channel``:
reveals travel source -> render, corrective set-positions render -> source.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterable

from ..config import LiveSyncConfig
from ..core.annotator import annotate
from ..core.model import BlockId, RenderedDocument, Reveal, SetPosition, VisibilityEntry
from ..core.ports import Scheduler, Transport, VisibilityCallback
from ..errors import DocumentError, ProtocolError
from ..logging_utils import log_event
from .messages import (
    RENDER_MESSAGES,
    SOURCE_MESSAGES,
    ContentMessage,
    CursorMessage,
    UserRevealMessage,
    ViewportMessage,
    VisibilityMessage,
    parse_message,
    update_content_message,
)
from .render_to_source import RenderToSourceController
from .source_to_render import SourceToRenderController
from .state import SyncPair
from .transport import Channel


class RemoteVisibilityObserver:
    """
    Visibility capability backed by a remote surface: the surface reports
    entries over the transport and they are handed to the subscriber
    here, restricted to the block ids currently observed.
    """

    def __init__(self) -> None:
        self.observed: set[BlockId] = set()
        self._callbacks: list[VisibilityCallback] = []

    def observe(self, block_id: BlockId) -> None:
        self.observed.add(block_id)

    def reset(self) -> None:
        self.observed.clear()

    def on_visibility_changed(self, callback: VisibilityCallback) -> None:
        self._callbacks.append(callback)

    def deliver(
        self,
        entries: Iterable[VisibilityEntry],
        viewport_height: float,
        generation: int | None = None,
    ) -> None:
        known = [e for e in entries if e.block_id in self.observed]
        for callback in self._callbacks:
            callback(known, viewport_height, generation)


class SyncSession:
    """Synchronization for one open document and its rendered view."""

    def __init__(
        self,
        path: Path | str,
        scheduler: Scheduler,
        config: LiveSyncConfig | None = None,
        text: str = "",
    ):
        self.path = Path(path)
        self.scheduler = scheduler
        self.config = config or LiveSyncConfig()
        self.pair = SyncPair()
        self.observer = RemoteVisibilityObserver()

        self.source_clients: list[Transport] = []
        self.render_clients: list[Transport] = []

        enabled = self.config.preview.sync_scroll
        self.source_controller = SourceToRenderController(
            state=self.pair.source,
            document=lambda: self.document,
            scheduler=scheduler,
            emit=self._reveal_from_source,
            settings=self.config.sync,
            enabled=enabled,
        )
        self.render_controller = RenderToSourceController(
            state=self.pair.render,
            scheduler=scheduler,
            emit=self._set_position_from_render,
            settings=self.config.sync,
            visibility=self.config.visibility,
            observer=self.observer,
            enabled=enabled,
        )

        # the only path between the two sides
        self.link = Channel()
        self._send_from_source = self.link.connect(self._source_side_receive)
        self._send_from_render = self.link.connect(self._render_side_receive)

        self.document: RenderedDocument = RenderedDocument()
        self.update_source(text)

    @property
    def generation(self) -> int:
        return self.document.generation

    # -- content boundary ------------------------------------------------

    def update_source(self, text: str) -> RenderedDocument:
        """
        Full re-render. The new blocks replace the old ones outright;
        observers are rebound before any further visibility signal counts.
        """
        self.text = text
        document = annotate(text, generation=self.document.generation + 1)
        self.document = document

        self.observer.reset()
        self.render_controller.rebind(document)

        log_event(
            "rerender",
            level=logging.DEBUG,
            path=str(self.path),
            generation=document.generation,
            blocks=len(document.blocks),
        )
        self._broadcast(self.render_clients, update_content_message(document))
        return document

    # -- source side -----------------------------------------------------

    def handle_source_message(self, message: Any) -> None:
        """Entry point for anything the editor sends."""
        try:
            parsed = parse_message(message, SOURCE_MESSAGES)
        except ProtocolError as e:
            log_event("protocol_error", level=logging.WARNING, side="source", error=str(e))
            return

        if isinstance(parsed, CursorMessage):
            self.source_controller.on_cursor(parsed.line)
        elif isinstance(parsed, ViewportMessage):
            self.source_controller.on_viewport(parsed.top_line, parsed.bottom_line)
        elif isinstance(parsed, ContentMessage):
            self.update_source(parsed.text)

    def _reveal_from_source(self, reveal: Reveal) -> None:
        self._send_from_source(reveal.to_message())

    def _source_side_receive(self, message: dict[str, Any]) -> None:
        if message.get("type") != "set-position":
            return
        self.source_controller.apply_set_position(message["line"])
        self._broadcast(self.source_clients, message)

    # -- render side -----------------------------------------------------

    def handle_render_message(self, message: Any) -> None:
        """Entry point for anything the preview surface sends."""
        try:
            parsed = parse_message(message, RENDER_MESSAGES)
        except ProtocolError as e:
            log_event("protocol_error", level=logging.WARNING, side="render", error=str(e))
            return

        if isinstance(parsed, VisibilityMessage):
            self.observer.deliver(parsed.entries, parsed.viewport_height, parsed.generation)
        elif isinstance(parsed, UserRevealMessage):
            if parsed.generation is not None and parsed.generation != self.generation:
                log_event("message_dropped", level=logging.DEBUG, reason="stale_generation")
                return
            self.render_controller.user_reveal(parsed.block_id)

    def _set_position_from_render(self, instruction: SetPosition) -> None:
        self._send_from_render(instruction.to_message())

    def _render_side_receive(self, message: dict[str, Any]) -> None:
        if message.get("type") != "reveal":
            return
        if message.get("generation") != self.generation:
            # rendered before the latest rebuild; the next tick corrects it
            log_event("message_dropped", level=logging.DEBUG, reason="stale_reveal")
            return
        self.render_controller.begin_reveal(message["line"])
        self._broadcast(self.render_clients, message)

    # -- clients ---------------------------------------------------------

    def attach_render(self, transport: Transport) -> None:
        self.render_clients.append(transport)
        transport.send(update_content_message(self.document))
        line = self.pair.render.last_synced_line or self.pair.source.last_synced_line
        if line is not None:
            block = self.document.closest_preceding(line)
            if block is not None:
                self.render_controller.begin_reveal(block.source_line_start)
                transport.send(
                    Reveal(block.source_line_start, block.stable_id, self.generation).to_message()
                )

    def detach_render(self, transport: Transport) -> None:
        if transport in self.render_clients:
            self.render_clients.remove(transport)

    def attach_source(self, transport: Transport) -> None:
        self.source_clients.append(transport)

    def detach_source(self, transport: Transport) -> None:
        if transport in self.source_clients:
            self.source_clients.remove(transport)

    def _broadcast(self, clients: list[Transport], message: dict[str, Any]) -> None:
        for client in list(clients):
            try:
                client.send(message)
            except ProtocolError:
                # closed underneath us; the connection handler detaches it
                clients.remove(client)

    def close(self) -> None:
        self.source_controller.close()
        self.render_controller.close()
        for client in self.source_clients + self.render_clients:
            client.close()
        self.source_clients.clear()
        self.render_clients.clear()


class SessionRegistry:
    """Open sessions keyed by resolved document path."""

    def __init__(
        self,
        scheduler_factory: Callable[[], Scheduler],
        config: LiveSyncConfig | None = None,
    ):
        self.scheduler_factory = scheduler_factory
        self.config = config or LiveSyncConfig()
        self._sessions: dict[Path, SyncSession] = {}

    @staticmethod
    def key(path: Path | str) -> Path:
        return Path(path).expanduser().resolve()

    def open(self, path: Path | str, text: str | None = None) -> SyncSession:
        key = self.key(path)
        session = self._sessions.get(key)
        if session is not None:
            if text is not None:
                session.update_source(text)
            return session

        if text is None:
            try:
                text = key.read_text(encoding="utf-8")
            except OSError as e:
                raise DocumentError(f"Cannot read {key}: {e}") from e

        session = SyncSession(key, self.scheduler_factory(), self.config, text)
        self._sessions[key] = session
        return session

    def get(self, path: Path | str) -> SyncSession | None:
        return self._sessions.get(self.key(path))

    def require(self, path: Path | str) -> SyncSession:
        session = self.get(path)
        if session is None:
            raise DocumentError(f"Document not open: {path}")
        return session

    def paths(self) -> list[Path]:
        return sorted(self._sessions)

    def close(self, path: Path | str) -> None:
        session = self._sessions.pop(self.key(path), None)
        if session is not None:
            session.close()

    def close_all(self) -> None:
        for key in list(self._sessions):
            self.close(key)
