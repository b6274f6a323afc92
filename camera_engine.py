"""
Camera capture streams: continuous capture into a ring buffer, saving the
buffer on request and starting a looping playback of the saved clip.
"""

import logging
import os
import threading
import time
from typing import Optional

import cv2
import numpy as np
from PyQt6.QtCore import Qt, QThread, pyqtSignal

# Tell FFMPEG to use TCP for RTSP (more reliable, less packet loss than UDP)
os.environ.setdefault("OPENCV_FFMPEG_CAPTURE_OPTIONS", "rtsp_transport;tcp")

from audio_engine import Detection
from config import AppConfig, CameraPreset
from errors import BufferNotFullError, ClipWriteError, DeviceInitError
from playback import ClipPlayback
from recording import RingFrameBuffer, clip_path

logger = logging.getLogger(__name__)


# ============================================================================
# Device helpers
# ============================================================================

def open_camera(preset: CameraPreset, config: AppConfig):
    """Open a USB device index or a network URL and apply capture settings.

    Raises DeviceInitError if no backend can deliver a frame.
    """
    is_network = isinstance(preset.id, str)
    if is_network:
        backends = [("default", cv2.CAP_ANY), ("FFMPEG", cv2.CAP_FFMPEG)]
    else:
        backends = [("DSHOW", cv2.CAP_DSHOW), ("MSMF", cv2.CAP_MSMF), ("default", cv2.CAP_ANY)]

    cap = None
    for backend_name, backend in backends:
        candidate = cv2.VideoCapture(preset.id, backend)
        ok = False
        try:
            if candidate.isOpened():
                if is_network:
                    candidate.set(cv2.CAP_PROP_BUFFERSIZE, 1)
                ok, _ = candidate.read()
                if ok:
                    logger.info("Camera %s (%s): opened with %s", preset.name, preset.id, backend_name)
                    cap = candidate
                    break
                logger.debug("Camera %s: %s opened but read failed", preset.id, backend_name)
        except cv2.error as e:
            logger.debug("Camera %s: %s backend exception: %s", preset.id, backend_name, e)
        finally:
            if not ok:
                candidate.release()

    if cap is None:
        raise DeviceInitError(f"error opening {preset.name} camera ({preset.id})")

    if not is_network:
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, float(config.frame_width))
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, float(config.frame_height))
        cap.set(cv2.CAP_PROP_FPS, float(config.fps))

    width = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    height = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    fps = cap.get(cv2.CAP_PROP_FPS)
    logger.info("Camera details %s (device=%s): resolution %.0fx%.0f, FPS %.2f",
                preset.name, preset.id, width, height, fps)
    return cap


def apply_transforms(frame: np.ndarray, preset: CameraPreset) -> np.ndarray:
    """Apply the preset's zoom, rotation, and flip."""
    zoom = preset.zoom
    rotation = preset.rotation % 360

    # Zoom (center crop)
    if zoom > 1.0:
        h, w = frame.shape[:2]
        crop_w = int(w / zoom)
        crop_h = int(h / zoom)
        x1 = (w - crop_w) // 2
        y1 = (h - crop_h) // 2
        frame = frame[y1:y1 + crop_h, x1:x1 + crop_w]
        frame = cv2.resize(frame, (w, h), interpolation=cv2.INTER_LINEAR)

    if rotation == 90:
        frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)
    elif rotation == 180:
        frame = cv2.rotate(frame, cv2.ROTATE_180)
    elif rotation == 270:
        frame = cv2.rotate(frame, cv2.ROTATE_90_COUNTERCLOCKWISE)
    elif rotation != 0:
        h, w = frame.shape[:2]
        center = (w // 2, h // 2)
        M = cv2.getRotationMatrix2D(center, -rotation, 1.0)
        frame = cv2.warpAffine(frame, M, (w, h))

    if preset.flip_h and preset.flip_v:
        frame = cv2.flip(frame, -1)
    elif preset.flip_h:
        frame = cv2.flip(frame, 1)
    elif preset.flip_v:
        frame = cv2.flip(frame, 0)

    return frame


def save_delay(post_event_seconds: float, detection: Detection, now: float) -> float:
    """Seconds still to wait so the buffer holds the post-event frames."""
    return post_event_seconds - (now - detection.occurred_at)


# ============================================================================
# Capture Stream Thread
# ============================================================================

class CaptureStream(QThread):
    """Thread capturing one camera into its ring buffer.

    Each loop iteration checks, in order: the stop signal, the save signal,
    then reads one frame. ``request_save`` coalesces; ``stop`` blocks until
    the loop has exited.
    """

    clip_saved = pyqtSignal(str, str)  # stream name, clip path
    fps_update = pyqtSignal(str, float)  # stream name, measured fps
    playback_finished = pyqtSignal(str)  # stream name

    FPS_LOG_INTERVAL = 5.0

    def __init__(self, preset: CameraPreset, cap, config: AppConfig, surface):
        super().__init__()
        self.preset = preset
        self.name = preset.name
        self.cap = cap
        self.config = config
        self.surface = surface
        self.post_event_seconds = config.post_event_seconds
        self.buffer = RingFrameBuffer(config.buffer_capacity)
        self.playback: Optional[ClipPlayback] = None

        self._stop_requested = threading.Event()
        self._save_requested = threading.Event()
        self._frame_size = (config.frame_width, config.frame_height)

        self.total_frames = 0
        self._fps_frame_count = 0
        self._fps_interval_start = time.time()
        self.current_fps = 0.0

    @property
    def capture_fps(self) -> float:
        fps = self.cap.get(cv2.CAP_PROP_FPS)
        return fps if fps and fps > 0 else float(self.config.fps)

    # --- Control signals ---

    def request_save(self):
        """Ask the loop to save its buffer; repeated requests coalesce."""
        self._save_requested.set()

    def save_after(self, detection: Detection, now: Optional[float] = None):
        """Sleep until the post-event window has been captured, then save."""
        now = time.time() if now is None else now
        delay = save_delay(self.post_event_seconds, detection, now)
        if delay > 0:
            logger.info("Delaying %s save by %.2fs", self.name, delay)
            time.sleep(delay)
        else:
            # The clip will be short of post-event frames by -delay seconds.
            logger.warning("%s save is %.2fs late, saving what is buffered", self.name, -delay)
        self.request_save()

    def stop(self):
        """Stop capturing and wait for the loop to acknowledge."""
        self._stop_requested.set()
        if self.isRunning():
            self.wait()
        else:
            self._stop_playback()
            self.cap.release()

    # --- Loop ---

    def run(self):
        logger.info("Starting video capture for %s (buffer %d frames)", self.name, self.buffer.capacity)
        try:
            while self.step():
                pass
        except Exception as e:
            logger.exception("Capture stream %s crashed: %s", self.name, e)
        finally:
            self._stop_playback()
            self.cap.release()
            logger.info("Video capture stopped for %s (%d frames)", self.name, self.total_frames)

    def step(self) -> bool:
        """Run one loop iteration. Returns False once stopped."""
        if self._stop_requested.is_set():
            return False

        if self._save_requested.is_set():
            self._save_requested.clear()
            self._save_and_play()
            return True

        ret, frame = self.cap.read()
        if not ret or frame is None:
            return True

        frame = apply_transforms(frame, self.preset)
        self.buffer.append(frame)
        self._frame_size = (frame.shape[1], frame.shape[0])
        self.total_frames += 1
        self._track_fps()
        return True

    def _save_and_play(self):
        self._stop_playback()

        width, height = self._frame_size
        logger.info("Saving video for %s", self.name)
        try:
            path = clip_path(self.config.clips_dir, self.name)
            clip = self.buffer.save(path, width, height, self.capture_fps)
        except (BufferNotFullError, ClipWriteError, OSError) as e:
            # capture keeps running; the next detection retries the save
            logger.warning("Error saving %s video: %s", self.name, e)
            return

        logger.info("Saved %s (%d frames)", clip.path, clip.frame_count)
        self.clip_saved.emit(self.name, str(clip.path))

        self.playback = ClipPlayback(self.name, clip.path, clip.fps,
                                     self.config.playback_speed, self.surface)
        self.playback.playback_finished.connect(
            self.playback_finished, Qt.ConnectionType.DirectConnection)
        self.playback.start()

    def _stop_playback(self):
        if self.playback is not None:
            self.playback.stop()
            self.playback = None

    def _track_fps(self):
        self._fps_frame_count += 1
        now = time.time()
        elapsed = now - self._fps_interval_start
        if elapsed >= self.FPS_LOG_INTERVAL:
            self.current_fps = self._fps_frame_count / elapsed
            logger.info("Camera %s: %.1f FPS (frames: %d)", self.name, self.current_fps, self.total_frames)
            self.fps_update.emit(self.name, self.current_fps)
            self._fps_frame_count = 0
            self._fps_interval_start = now
