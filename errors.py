"""
Exception types shared across the capture pipeline.
"""


class ReplayError(Exception):
    """Base class for Swing Replay errors."""


class DeviceInitError(ReplayError):
    """An audio or camera device could not be opened."""


class BufferNotFullError(ReplayError):
    """A clip was requested before the ring buffer held a full window."""

    def __init__(self, frame_count: int, capacity: int):
        super().__init__(f"frame buffer is not full ({frame_count}/{capacity})")
        self.frame_count = frame_count
        self.capacity = capacity


class ClipWriteError(ReplayError):
    """The clip writer failed to open or to write a frame."""


class PipelineStartError(ReplayError):
    """The pipeline could not be started within the restart budget."""
