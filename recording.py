"""
Ring frame buffer and clip writing for Swing Replay.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Deque, List, Optional, Sequence, Union

import cv2
import numpy as np

from errors import BufferNotFullError, ClipWriteError

logger = logging.getLogger(__name__)

CLIP_FOURCC = "MJPG"
CLIP_EXTENSION = ".avi"
CLIP_TIME_FORMAT = "%Y-%m-%d %H-%M-%S"


@dataclass(frozen=True)
class ClipFile:
    """A clip persisted to disk by a successful buffer save."""
    path: Path
    frame_count: int
    width: int
    height: int
    fps: float


def clip_path(clips_dir: Union[str, Path], stream_name: str,
              when: Optional[datetime] = None) -> Path:
    """Build ``<clips_dir>/<stream name> <YYYY-MM-DD HH-MM-SS>.avi``."""
    clips_dir = Path(clips_dir)
    try:
        clips_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ClipWriteError(f"cannot create clips directory {clips_dir}: {e}") from e
    stamp = (when or datetime.now()).strftime(CLIP_TIME_FORMAT)
    return clips_dir / f"{stream_name} {stamp}{CLIP_EXTENSION}"


def write_clip(path: Union[str, Path], frames: Sequence[np.ndarray],
               width: int, height: int, fps: float) -> ClipFile:
    """Encode ``frames`` in order into an MJPG clip at ``path``."""
    path = Path(path)
    fourcc = cv2.VideoWriter_fourcc(*CLIP_FOURCC)
    out = cv2.VideoWriter(str(path), fourcc, float(fps), (int(width), int(height)))
    if not out.isOpened():
        out.release()
        raise ClipWriteError(f"could not open video writer for {path}")

    try:
        for idx, frame in enumerate(frames):
            try:
                if frame.shape[1] != width or frame.shape[0] != height:
                    frame = cv2.resize(frame, (int(width), int(height)))
                out.write(frame)
            except cv2.error as e:
                raise ClipWriteError(f"error writing frame ({idx}) to {path}: {e}") from e
    finally:
        out.release()

    return ClipFile(path=path, frame_count=len(frames), width=int(width),
                    height=int(height), fps=float(fps))


class RingFrameBuffer:
    """Fixed-capacity window of the most recent captured frames.

    One capture thread appends; a save may run concurrently from the same
    stream. The lock is held for the append and for taking the save
    snapshot, but not while the snapshot is encoded to disk.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = int(capacity)
        self._frames: Deque[np.ndarray] = deque(maxlen=self.capacity)
        self._lock = threading.Lock()

    @classmethod
    def for_duration(cls, seconds: float, fps: int) -> "RingFrameBuffer":
        return cls(int(seconds * fps))

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    def is_full(self) -> bool:
        return len(self._frames) == self.capacity

    def append(self, frame: np.ndarray):
        # deque(maxlen) drops the oldest reference once full
        with self._lock:
            self._frames.append(frame.copy())

    def snapshot(self) -> List[np.ndarray]:
        """Return the retained frames, oldest first."""
        with self._lock:
            return list(self._frames)

    def save(self, destination: Union[str, Path], width: int, height: int,
             fps: float) -> ClipFile:
        """Write the full window to ``destination``.

        Raises BufferNotFullError (and writes nothing) until the buffer holds
        ``capacity`` frames.
        """
        with self._lock:
            if len(self._frames) < self.capacity:
                raise BufferNotFullError(len(self._frames), self.capacity)
            frames = list(self._frames)

        logger.info("Frame buffer full (%d frames), writing %s (%dx%d @ %.2f fps)",
                    len(frames), destination, width, height, fps)
        return write_clip(destination, frames, width, height, fps)

    def clear(self):
        with self._lock:
            self._frames.clear()
