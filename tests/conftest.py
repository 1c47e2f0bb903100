"""Shared fixtures: a manual clock and a recording transport."""

from pathlib import Path
from typing import Any, Callable

import pytest

from livesync.errors import ProtocolError


class FakeHandle:
    def __init__(self, when: float, callback: Callable[[], None], seq: int):
        self.when = when
        self.callback = callback
        self.seq = seq
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Scheduler whose clock only moves when a test calls ``advance``."""

    def __init__(self) -> None:
        self.time = 0.0
        self._timers: list[FakeHandle] = []
        self._seq = 0

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(self.time + max(0.0, delay), callback, self._seq)
        self._seq += 1
        self._timers.append(handle)
        return handle

    def advance(self, ms: float) -> None:
        """Move the clock forward, firing due timers in order."""
        target = self.time + ms / 1000.0
        while True:
            due = [h for h in self._timers if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._timers.remove(handle)
            self.time = max(self.time, handle.when)
            handle.callback()
        self.time = target

    @property
    def pending(self) -> list[FakeHandle]:
        return [h for h in self._timers if not h.cancelled]


class RecordingTransport:
    """Transport that keeps everything sent to it."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    def send(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise ProtocolError("closed")
        self.sent.append(message)

    async def receive(self) -> dict[str, Any]:
        raise NotImplementedError

    def close(self) -> None:
        self.closed = True

    def of_type(self, kind: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == kind]


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def recorder() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def write_doc(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a Markdown document into a temp directory and return its path."""

    def write(text: str, name: str = "doc.md") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return write


@pytest.fixture
def new_transport() -> Callable[[], RecordingTransport]:
    return RecordingTransport
