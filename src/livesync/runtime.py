"""Runtime wiring helper for CLI applications."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .config import LiveSyncConfig, load_config
from .logging_utils import log_event
from .sync.scheduler import AsyncioScheduler
from .sync.session import SessionRegistry, SyncSession


@dataclass
class Runtime:
    """Container for all wired components."""
    config: LiveSyncConfig
    sessions: SessionRegistry

    def open(self, path: Path | str) -> SyncSession:
        return self.sessions.open(path)

    def reload(self, path: Path, text: str) -> None:
        """New text for an open document, e.g. from the file watcher."""
        session = self.sessions.get(path)
        if session is None:
            return
        if text == session.text:
            return
        log_event("file_changed", path=str(path))
        session.update_source(text)


def build_runtime(
    documents: Iterable[Path] = (),
    config_path: Path | None = None,
) -> Runtime:
    """Build and wire all components, opening ``documents``."""
    documents = [Path(p) for p in documents]
    document_dir = documents[0].parent if documents else None

    config = load_config(config_path=config_path, document_dir=document_dir)
    sessions = SessionRegistry(AsyncioScheduler, config)
    runtime = Runtime(config=config, sessions=sessions)

    for path in documents:
        runtime.open(path)

    return runtime
