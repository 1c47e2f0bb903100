"""livesync error hierarchy.

All livesync-specific errors inherit from LiveSyncError for easy catching.
"""


class LiveSyncError(Exception):
    """Base error for all livesync operations."""


class ConfigError(LiveSyncError):
    """Invalid configuration value or unreadable config file."""


class ProtocolError(LiveSyncError):
    """Malformed or unknown message on a sync transport."""


class DocumentError(LiveSyncError):
    """A document could not be read or is not open."""
