"""livesync - live Markdown preview with synchronized scrolling."""

__version__ = "0.1.0"
