"""Version info for Swing Replay."""

__version__ = "0.2.0"
