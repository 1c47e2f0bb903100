"""Per-pair synchronization state and the shared rate-limit policy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from ..core.ports import Scheduler, TimerHandle


@dataclass
class SyncState:
    """
    Mutable sync record for ONE side of a document/render pair.

    Only the owning side writes it. ``pending_handle`` is the single
    outstanding instruction for this direction; scheduling a new one always
    cancels the old one first.
    """

    last_synced_line: int | None = None
    last_sync_timestamp: float | None = None
    programmatic_scroll_active: bool = False
    pending_handle: TimerHandle | None = None
    settle_handle: TimerHandle | None = None

    def within_window(self, now: float, interval: float) -> bool:
        """True while ``now`` is inside the rate-limit window of the last sync."""
        if self.last_sync_timestamp is None:
            return False
        return now - self.last_sync_timestamp < interval

    def window_remaining(self, now: float, interval: float) -> float:
        if self.last_sync_timestamp is None:
            return 0.0
        return max(0.0, self.last_sync_timestamp + interval - now)

    def cancel_pending(self) -> None:
        if self.pending_handle is not None:
            self.pending_handle.cancel()
            self.pending_handle = None

    def replace_pending(
        self, scheduler: Scheduler, delay: float, callback: Callable[[], None]
    ) -> TimerHandle:
        self.cancel_pending()

        def fire() -> None:
            self.pending_handle = None
            callback()

        self.pending_handle = scheduler.call_later(delay, fire)
        return self.pending_handle

    @property
    def has_pending(self) -> bool:
        return self.pending_handle is not None

    def mark_synced(self, line: int, now: float) -> None:
        self.last_synced_line = line
        self.last_sync_timestamp = now

    def begin_programmatic(self, scheduler: Scheduler, settle: float) -> None:
        """
        Raise the programmatic-scroll flag and clear it after ``settle``.
        A second call while settling restarts the settle window.
        """
        self.programmatic_scroll_active = True
        if self.settle_handle is not None:
            self.settle_handle.cancel()
        self.settle_handle = scheduler.call_later(settle, self.end_programmatic)

    def end_programmatic(self) -> None:
        self.programmatic_scroll_active = False
        self.settle_handle = None

    def reset_timers(self) -> None:
        self.cancel_pending()
        if self.settle_handle is not None:
            self.settle_handle.cancel()
        self.end_programmatic()


@dataclass
class SyncPair:
    """
    State for one open document/render pair, constructed once and passed
    by reference into both controllers.
    """

    source: SyncState = field(default_factory=SyncState)
    render: SyncState = field(default_factory=SyncState)

    def reset_timers(self) -> None:
        self.source.reset_timers()
        self.render.reset_timers()
