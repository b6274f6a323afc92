"""
Looping slow-motion playback of a saved clip into a display surface.
"""

import logging
import threading
from pathlib import Path
from typing import Union

import cv2
from PyQt6.QtCore import QThread, pyqtSignal

logger = logging.getLogger(__name__)


class ClipPlayback(QThread):
    """Streams a clip's frames to ``target`` in a loop until stopped.

    ``target`` is anything with ``offer(frame, timeout) -> bool``, normally a
    DisplaySurface. Frames are spaced ``1 / fps / speed`` seconds apart.
    """

    playback_finished = pyqtSignal(str)  # stream name

    def __init__(self, stream_name: str, path: Union[str, Path], fps: float,
                 speed: float, target):
        super().__init__()
        if fps <= 0 or speed <= 0:
            raise ValueError(f"fps and speed must be positive (fps={fps}, speed={speed})")
        self.stream_name = stream_name
        self.path = Path(path)
        self.fps = fps
        self.speed = speed
        self.target = target
        self.frame_delay = 1.0 / fps / speed

        self.frames_delivered = 0
        self.loops = 0
        self._cancel = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def run(self):
        logger.info("Starting %s playback of %s at %.2fx (%.1f ms/frame)",
                    self.stream_name, self.path.name, self.speed, self.frame_delay * 1000)
        try:
            while not self._cancel.is_set():
                video = cv2.VideoCapture(str(self.path))
                try:
                    if not video.isOpened():
                        logger.error("Error opening video file %s", self.path)
                        return
                    if not self._play_once(video):
                        return
                finally:
                    video.release()
                self.loops += 1
                logger.debug("Restarting %s video playback", self.stream_name)
        except Exception as e:
            logger.exception("%s playback crashed: %s", self.stream_name, e)
        finally:
            logger.info("%s video playback stopped (%d frames shown)",
                        self.stream_name, self.frames_delivered)
            self.playback_finished.emit(self.stream_name)

    def _play_once(self, video) -> bool:
        """Deliver every frame of one pass. False once cancelled."""
        while True:
            ret, frame = video.read()
            if not ret:
                return True
            if frame is None or frame.size == 0:
                continue

            if not self._deliver(frame):
                return False
            self.frames_delivered += 1

            if self._cancel.wait(self.frame_delay):
                return False

    def _deliver(self, frame) -> bool:
        # Wait in frame-period slices so a stop is seen within one frame.
        while not self._cancel.is_set():
            if self.target.offer(frame, timeout=self.frame_delay):
                return True
            if self.target.closed:
                logger.info("%s display closed, ending playback", self.stream_name)
                return False
        return False

    def stop(self):
        """Cancel and wait; no frame is delivered once this returns."""
        logger.info("Stopping %s video playback", self.stream_name)
        self._cancel.set()
        self.wait()
