"""
Reusable UI components for Swing Replay.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from PyQt6.QtWidgets import QLabel
from PyQt6.QtCore import Qt
from PyQt6.QtGui import QImage, QPixmap

from handoff import Handoff

logger = logging.getLogger(__name__)


# ============================================================================
# Display Surface
# ============================================================================

class DisplaySurface(QLabel):
    """Playback display fed frame by frame from a worker thread.

    Producers call ``offer`` from any thread; it blocks until the GUI thread
    picks the frame up in ``poll``. Everything else must run on the GUI
    thread.
    """

    def __init__(self, name: str, parent=None):
        super().__init__(parent)
        self.name = name
        self.setMinimumSize(640, 360)
        self.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.setStyleSheet("background-color: #1a1a1a; border-radius: 8px; color: #888;")
        self.setScaledContents(False)
        self.setText(f"{name}: waiting for a swing")

        self._intake = Handoff(name)
        self._last_frame: Optional[np.ndarray] = None
        self._quit_requested = False
        self.frames_shown = 0

    @property
    def closed(self) -> bool:
        return self._intake.closed

    @property
    def quit_requested(self) -> bool:
        return self._quit_requested

    def offer(self, frame: np.ndarray, timeout: Optional[float] = None) -> bool:
        """Hand a frame to the surface; True once the GUI thread took it."""
        return self._intake.put(frame, timeout=timeout)

    def poll(self) -> bool:
        """Render a waiting frame, if any. Returns True when quit was requested."""
        frame = self._intake.poll()
        if frame is not None:
            self.display_frame(frame)
        return self._quit_requested

    def close_intake(self):
        self._intake.close()

    def display_frame(self, frame: np.ndarray):
        if frame is None:
            return

        self._last_frame = frame
        self.frames_shown += 1
        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        h, w, ch = rgb_frame.shape
        bytes_per_line = ch * w

        q_img = QImage(rgb_frame.data, w, h, bytes_per_line, QImage.Format.Format_RGB888)
        scaled = q_img.scaled(
            self.size(),
            Qt.AspectRatioMode.KeepAspectRatio,
            Qt.TransformationMode.SmoothTransformation,
        )
        self.setPixmap(QPixmap.fromImage(scaled))

    def request_quit(self):
        self._quit_requested = True

