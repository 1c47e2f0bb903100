"""Configuration loader for livesync.toml."""

import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

CONFIG_NAME = "livesync.toml"


@dataclass
class SyncConfig:
    """Rate limiting shared by both sync directions (milliseconds)."""
    min_sync_interval_ms: int = 100
    debounce_ms: int = 50
    settle_ms: int = 300

    @property
    def min_sync_interval(self) -> float:
        return self.min_sync_interval_ms / 1000.0

    @property
    def debounce(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def settle(self) -> float:
        return self.settle_ms / 1000.0


@dataclass
class VisibilityConfig:
    """
    Heuristics for picking the "current" block on the rendered surface.

    Fractions are of the viewport height, measured from its top edge.
    """
    threshold: float = 0.0
    band_top: float = 0.10
    band_bottom: float = 0.20
    fallback_fraction: float = 0.30


@dataclass
class PreviewConfig:
    """Preview behaviour."""
    sync_scroll: bool = True
    open_browser: bool = False
    browser: str | None = None


@dataclass
class ServerConfig:
    """Preview server binding."""
    host: str = "127.0.0.1"
    port: int = 8765


@dataclass
class WatchConfig:
    """File watcher configuration."""
    debounce_ms: int = 150


@dataclass
class LiveSyncConfig:
    """Complete livesync configuration."""
    sync: SyncConfig = field(default_factory=SyncConfig)
    visibility: VisibilityConfig = field(default_factory=VisibilityConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    source: Path | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["source"] = str(self.source) if self.source else None
        return data


def _non_negative(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"[{section}] {key} must be a non-negative integer, got {value!r}")
    return value


def _port(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 65535:
        raise ConfigError(f"[server] port must be an integer between 1 and 65535, got {value!r}")
    return value


def _fraction(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        raise ConfigError(f"[{section}] {key} must be a number between 0 and 1, got {value!r}")
    return float(value)


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def parse_config(toml_data: dict[str, Any], source: Path | None = None) -> LiveSyncConfig:
    """Build a validated config from already-parsed TOML data."""
    sync_data = _section(toml_data, "sync")
    sync = SyncConfig(
        min_sync_interval_ms=_non_negative(
            "sync", "min_sync_interval_ms", sync_data.get("min_sync_interval_ms", 100)
        ),
        debounce_ms=_non_negative("sync", "debounce_ms", sync_data.get("debounce_ms", 50)),
        settle_ms=_non_negative("sync", "settle_ms", sync_data.get("settle_ms", 300)),
    )

    vis_data = _section(toml_data, "visibility")
    visibility = VisibilityConfig(
        threshold=_fraction("visibility", "threshold", vis_data.get("threshold", 0.0)),
        band_top=_fraction("visibility", "band_top", vis_data.get("band_top", 0.10)),
        band_bottom=_fraction("visibility", "band_bottom", vis_data.get("band_bottom", 0.20)),
        fallback_fraction=_fraction(
            "visibility", "fallback_fraction", vis_data.get("fallback_fraction", 0.30)
        ),
    )
    if visibility.band_top > visibility.band_bottom:
        raise ConfigError("[visibility] band_top must not be below band_bottom")

    preview_data = _section(toml_data, "preview")
    sync_scroll = preview_data.get("sync_scroll", True)
    if not isinstance(sync_scroll, bool):
        raise ConfigError(f"[preview] sync_scroll must be a boolean, got {sync_scroll!r}")
    open_browser = preview_data.get("open_browser", False)
    if not isinstance(open_browser, bool):
        raise ConfigError(f"[preview] open_browser must be a boolean, got {open_browser!r}")
    browser = preview_data.get("browser")
    if browser is not None and not isinstance(browser, str):
        raise ConfigError(f"[preview] browser must be a string, got {browser!r}")

    server_data = _section(toml_data, "server")
    server = ServerConfig(
        host=str(server_data.get("host", "127.0.0.1")),
        port=_port(server_data.get("port", 8765)),
    )

    watch_data = _section(toml_data, "watch")
    watch = WatchConfig(
        debounce_ms=_non_negative("watch", "debounce_ms", watch_data.get("debounce_ms", 150)),
    )

    return LiveSyncConfig(
        sync=sync,
        visibility=visibility,
        preview=PreviewConfig(sync_scroll=sync_scroll, open_browser=open_browser, browser=browser or None),
        server=server,
        watch=watch,
        source=source,
    )


def load_config(config_path: Path | None = None, document_dir: Path | None = None) -> LiveSyncConfig:
    """
    Load configuration from livesync.toml.

    Search order:
    1. config_path (if provided)
    2. cwd/livesync.toml
    3. document_dir/livesync.toml

    Args:
        config_path: Explicit path to config file
        document_dir: Directory of the previewed document for fallback search

    Returns:
        LiveSyncConfig with defaults filled in
    """
    if config_path is not None and not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    search_paths = []
    if config_path:
        search_paths.append(config_path)
    search_paths.append(Path.cwd() / CONFIG_NAME)
    if document_dir:
        search_paths.append(document_dir / CONFIG_NAME)

    for path in search_paths:
        if path.exists():
            try:
                with open(path, "rb") as f:
                    toml_data = tomllib.load(f)
            except tomllib.TOMLDecodeError as e:
                raise ConfigError(f"Invalid TOML in {path}: {e}") from e
            return parse_config(toml_data, source=path)

    return parse_config({})
