"""Watch mode for livesync - re-render a document whenever its file changes."""

import asyncio
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .logging_utils import log_event


class DebounceHandler(FileSystemEventHandler):
    """File system event handler with debouncing, for a set of documents."""

    def __init__(self, on_change: Callable[[Path], None], debounce_ms: int = 150):
        super().__init__()
        self.on_change = on_change
        self.debounce_ms = debounce_ms

        self.documents: set[Path] = set()
        self.changed: set[Path] = set()
        self.last_event_time = 0.0
        self._lock = threading.Lock()

    def add(self, path: Path) -> None:
        self.documents.add(path.resolve())

    def _should_skip(self, path: Path) -> bool:
        """Check if file should be skipped."""
        name = path.name

        # Skip hidden files
        if name.startswith("."):
            return True

        # Skip temp/swap files
        if name.endswith("~") or name.endswith(".swp") or name.startswith(".#"):
            return True

        return path.resolve() not in self.documents

    def _record(self, raw_path: Any) -> None:
        if isinstance(raw_path, bytes):
            raw_path = raw_path.decode()
        path = Path(str(raw_path))
        if self._should_skip(path):
            return
        with self._lock:
            self.changed.add(path.resolve())
            self.last_event_time = time.time()

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._record(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # editors that save via rename land here
        if not event.is_directory:
            self._record(event.dest_path)

    def check_and_flush(self) -> None:
        """Check if debounce period has elapsed and flush if so."""
        if not self.changed:
            return

        elapsed = (time.time() - self.last_event_time) * 1000
        if elapsed >= self.debounce_ms:
            self.flush()

    def flush(self) -> None:
        """Report every document changed since the last flush."""
        with self._lock:
            changed = sorted(self.changed)
            self.changed.clear()
        if not changed:
            return

        for path in changed:
            self.on_change(path)


class DocumentWatcher:
    """
    watchdog observer feeding re-renders back onto the event loop.

    Filesystem events arrive on the observer thread; the file is read there
    and the text handed to ``on_text`` on the loop thread.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        on_text: Callable[[Path, str], None],
        debounce_ms: int = 150,
    ):
        self.loop = loop
        self.on_text = on_text
        self.handler = DebounceHandler(self._changed, debounce_ms)
        self.observer = Observer()
        self._dirs: set[Path] = set()
        self._task: asyncio.Task[None] | None = None

    def add(self, path: Path) -> None:
        path = path.resolve()
        self.handler.add(path)
        if path.parent not in self._dirs:
            self._dirs.add(path.parent)
            self.observer.schedule(self.handler, str(path.parent), recursive=False)

    def _changed(self, path: Path) -> None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            # deleted or mid-save; the next event brings the new content
            log_event("watch_read_failed", level=logging.WARNING, path=str(path), error=str(e))
            return
        self.loop.call_soon_threadsafe(self.on_text, path, text)

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(0.05)
            await asyncio.to_thread(self.handler.check_and_flush)

    def start(self) -> None:
        self.observer.start()
        self._task = self.loop.create_task(self._poll())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.handler.flush()
        self.observer.stop()
        self.observer.join()
