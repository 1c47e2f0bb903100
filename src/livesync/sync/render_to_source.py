"""Render -> source: turn visibility signals into one corrective cursor move."""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from ..config import SyncConfig, VisibilityConfig
from ..core.model import Block, RenderedDocument, SetPosition, VisibilityEntry
from ..core.ports import Scheduler, VisibilityObserver
from ..logging_utils import log_event
from .state import SyncState


class RenderToSourceController:
    """
    Picks the "current" block of the rendered surface and moves the source
    cursor to it, silently.

    While a reveal is settling every visibility signal is ignored, so a
    scroll this side did not start by itself never bounces back to the
    source. Each ignored signal restarts the settle window, which then
    only closes once the scroll has been quiet for ``settle_ms``.
    """

    def __init__(
        self,
        state: SyncState,
        scheduler: Scheduler,
        emit: Callable[[SetPosition], None],
        settings: SyncConfig | None = None,
        visibility: VisibilityConfig | None = None,
        observer: VisibilityObserver | None = None,
        enabled: bool = True,
    ):
        self.state = state
        self.scheduler = scheduler
        self.emit = emit
        self.settings = settings or SyncConfig()
        self.visibility = visibility or VisibilityConfig()
        self.observer = observer
        self.enabled = enabled

        self.document: RenderedDocument | None = None
        self.bound = False
        self._order: dict[str, int] = {}
        self._positions: dict[str, VisibilityEntry] = {}

        if observer is not None:
            observer.on_visibility_changed(self.on_visibility_changed)

    def rebind(self, document: RenderedDocument) -> None:
        """
        Switch to a freshly rendered document. Positions and any pending
        correction belong to the old blocks and are discarded.
        """
        self.state.cancel_pending()
        self.document = document
        self._positions.clear()
        self._order = {
            block.stable_id: index
            for index, block in enumerate(document.blocks)
            if block.positioned
        }
        if self.observer is not None:
            for block_id in self._order:
                self.observer.observe(block_id)
        self.bound = True

    def on_visibility_changed(
        self,
        entries: Iterable[VisibilityEntry],
        viewport_height: float,
        generation: int | None = None,
    ) -> None:
        if not self.enabled or not self.bound or self.document is None:
            return
        if generation is not None and generation != self.document.generation:
            log_event(
                "message_dropped",
                level=logging.DEBUG,
                reason="stale_generation",
                generation=generation,
                current=self.document.generation,
            )
            return

        fresh = [e for e in entries if e.block_id in self._order]
        for entry in fresh:
            self._positions[entry.block_id] = entry

        if self.state.programmatic_scroll_active:
            # the reveal is still scrolling; settle counts from its last report
            self.state.begin_programmatic(self.scheduler, self.settings.settle)
            return

        block = self.select_block(fresh, viewport_height)
        if block is None:
            return

        line = block.source_line_start
        if line == self.state.last_synced_line:
            # scrolled back to where we already are
            self.state.cancel_pending()
            return

        self._flush(line)

    def select_block(
        self, entries: Iterable[VisibilityEntry], viewport_height: float
    ) -> Block | None:
        """
        Highest intersection ratio inside the focus band wins; ties go to
        document order. Without a candidate, fall back to the first
        positioned block whose top edge sits in the upper part of the
        viewport.
        """
        if self.document is None:
            return None

        band_top = self.visibility.band_top * viewport_height
        band_bottom = self.visibility.band_bottom * viewport_height

        best: VisibilityEntry | None = None
        for entry in entries:
            if entry.intersection_ratio <= self.visibility.threshold:
                continue
            if not band_top <= entry.bounding_top <= band_bottom:
                continue
            if best is None or self._ranks_before(entry, best):
                best = entry

        if best is None:
            limit = self.visibility.fallback_fraction * viewport_height
            for block_id in sorted(self._positions, key=self._order.__getitem__):
                entry = self._positions[block_id]
                if 0 <= entry.bounding_top <= limit:
                    best = entry
                    break

        if best is None:
            return None
        return self.document.by_id(best.block_id)

    def _ranks_before(self, entry: VisibilityEntry, other: VisibilityEntry) -> bool:
        if entry.intersection_ratio != other.intersection_ratio:
            return entry.intersection_ratio > other.intersection_ratio
        return self._order[entry.block_id] < self._order[other.block_id]

    def _flush(self, line: int) -> None:
        now = self.scheduler.now()
        interval = self.settings.min_sync_interval
        if self.state.within_window(now, interval):
            delay = max(self.settings.debounce, self.state.window_remaining(now, interval))
            self.state.replace_pending(self.scheduler, delay, lambda: self._flush(line))
            return
        self.state.cancel_pending()
        self._set_position(line)

    def _set_position(self, line: int) -> None:
        if self.state.programmatic_scroll_active:
            return
        if line == self.state.last_synced_line:
            return
        self.state.mark_synced(line, self.scheduler.now())
        log_event("set_position", level=logging.DEBUG, line=line, silent=True)
        self.emit(SetPosition(line=line, silent=True))

    def begin_reveal(self, line: int | None = None) -> None:
        """
        A reveal is about to scroll the rendered surface. Called for reveals
        coming from the source side and for direct user actions alike.
        """
        self.state.cancel_pending()
        self.state.begin_programmatic(self.scheduler, self.settings.settle)
        if line is not None:
            self.state.mark_synced(line, self.scheduler.now())

    def user_reveal(self, block_id: str) -> SetPosition | None:
        """
        The user jumped to ``block_id`` inside the rendered surface (link,
        outline click). Scrolls settle like any reveal, and the source side
        is moved with focus. Unknown ids are stale and ignored.
        """
        if not self.enabled or self.document is None:
            return None
        block = self.document.by_id(block_id)
        if block is None or not block.positioned:
            log_event("message_dropped", level=logging.DEBUG, reason="stale_block", block=block_id)
            return None

        self.begin_reveal(block.source_line_start)
        instruction = SetPosition(line=block.source_line_start, silent=False)
        self.emit(instruction)
        return instruction

    def close(self) -> None:
        self.state.reset_timers()
        self.bound = False
