"""Source -> render: turn cursor/viewport changes into one reveal instruction."""

from __future__ import annotations

import logging
from typing import Callable

from ..config import SyncConfig
from ..core.model import Origin, RenderedDocument, Reveal
from ..core.ports import Scheduler
from ..core.utils import middle_line
from ..locate import locate_block
from ..logging_utils import log_event
from .state import SyncState


class SourceToRenderController:
    """
    Rate-limited reveal emitter for the source side.

    - scroll-origin changes are debounced: every new one cancels the pending
      instruction, so a burst collapses into one reveal for its last line
    - cursor-origin changes go out immediately when the rate-limit window
      is open, otherwise they are delayed to the end of the window
    - the target block is resolved when the instruction fires, against the
      document current at that moment
    """

    def __init__(
        self,
        state: SyncState,
        document: Callable[[], RenderedDocument],
        scheduler: Scheduler,
        emit: Callable[[Reveal], None],
        settings: SyncConfig | None = None,
        enabled: bool = True,
    ):
        self.state = state
        self.document = document
        self.scheduler = scheduler
        self.emit = emit
        self.settings = settings or SyncConfig()
        self.enabled = enabled

    def on_cursor(self, line: int) -> None:
        self.on_source_viewport_changed(line, Origin.CURSOR)

    def on_viewport(self, top_line: int, bottom_line: int) -> None:
        self.on_source_viewport_changed(middle_line(top_line, bottom_line), Origin.SCROLL)

    def on_source_viewport_changed(self, line: int, origin: str) -> None:
        if not self.enabled:
            return
        if self.state.programmatic_scroll_active:
            # echo of a set-position we just applied to the editor
            log_event("message_dropped", level=logging.DEBUG, reason="settling", line=line)
            return

        if origin == Origin.SCROLL:
            self.state.replace_pending(
                self.scheduler, self.settings.debounce, lambda: self._flush(line)
            )
            return

        if origin != Origin.CURSOR:
            raise ValueError(f"Unknown origin: {origin!r}")

        self._flush(line)

    def _flush(self, line: int) -> None:
        now = self.scheduler.now()
        interval = self.settings.min_sync_interval
        if self.state.within_window(now, interval):
            self.state.replace_pending(
                self.scheduler,
                self.state.window_remaining(now, interval),
                lambda: self._reveal(line),
            )
            return
        self.state.cancel_pending()
        self._reveal(line)

    def _reveal(self, line: int) -> None:
        document = self.document()
        block = locate_block(document, line)
        if block is None:
            log_event("message_dropped", level=logging.DEBUG, reason="empty_document", line=line)
            return

        resolved = block.source_line_start
        self.state.mark_synced(resolved, self.scheduler.now())
        log_event(
            "reveal",
            level=logging.DEBUG,
            line=line,
            resolved=resolved,
            block=block.stable_id,
            generation=document.generation,
        )
        self.emit(Reveal(line=resolved, block_id=block.stable_id, generation=document.generation))

    def apply_set_position(self, line: int) -> None:
        """
        The editor is about to move to ``line`` because of the render side.
        Its own cursor/viewport echo is ignored until the settle delay ends.
        """
        self.state.cancel_pending()
        self.state.begin_programmatic(self.scheduler, self.settings.settle)
        self.state.last_synced_line = line

    def close(self) -> None:
        self.state.reset_timers()
