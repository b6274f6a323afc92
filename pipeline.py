"""
Pipeline orchestration: device start-up, detection fan-out, and the
bounded restart policy.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from PyQt6.QtCore import QThread, pyqtSignal

from audio_engine import AudioDetector, Detection
from camera_engine import CaptureStream, open_camera
from config import AppConfig
from errors import DeviceInitError, PipelineStartError
from handoff import Handoff

logger = logging.getLogger(__name__)


# ============================================================================
# Detection Dispatcher Thread
# ============================================================================

class DetectionDispatcher(QThread):
    """Consumes detections and triggers a delayed save on every stream."""

    detected = pyqtSignal(float)  # loudness in dB

    POLL_TIMEOUT = 0.2

    def __init__(self, detections: Handoff, streams: List[CaptureStream]):
        super().__init__()
        self.detections = detections
        self.streams = streams
        self._stop_requested = threading.Event()

    def run(self):
        while not self._stop_requested.is_set():
            detection = self.detections.take(timeout=self.POLL_TIMEOUT)
            if detection is None:
                if self.detections.closed:
                    break
                continue
            self.dispatch(detection)

    def dispatch(self, detection: Detection) -> List[threading.Thread]:
        """Start one save-delay thread per stream; they run independently."""
        logger.info("High decibel sound detected (%.1f dB), saving videos...", detection.loudness_db)
        self.detected.emit(detection.loudness_db)
        threads = []
        for stream in self.streams:
            t = threading.Thread(
                target=stream.save_after, args=(detection,),
                name=f"save-{stream.name}", daemon=True,
            )
            t.start()
            threads.append(t)
        return threads

    def stop(self):
        self._stop_requested.set()
        self.wait()


# ============================================================================
# Pipeline
# ============================================================================

class Pipeline:
    """One instance of audio detector, capture streams and dispatcher.

    ``surfaces`` maps each camera preset name to its display surface.
    """

    def __init__(self, config: AppConfig, surfaces: Dict[str, object],
                 camera_opener: Callable = open_camera,
                 detector_factory: Callable = AudioDetector):
        self.config = config
        self.surfaces = surfaces
        self.camera_opener = camera_opener
        self.detector_factory = detector_factory

        self.detections = Handoff("detections")
        self.detector: Optional[AudioDetector] = None
        self.streams: List[CaptureStream] = []
        self.dispatcher: Optional[DetectionDispatcher] = None
        self.running = False

    def start(self):
        """Open all devices and start every thread.

        Raises DeviceInitError if the microphone or any camera fails to
        open; devices opened so far are released first.
        """
        detector = self.detector_factory(self.config, self.detections)
        opened = []
        try:
            detector.open()
            for preset in self.config.cameras:
                opened.append((preset, self.camera_opener(preset, self.config)))
        except DeviceInitError:
            for _, cap in opened:
                cap.release()
            detector.close()
            raise

        self.detector = detector
        self.streams = [
            CaptureStream(preset, cap, self.config, self.surfaces[preset.name])
            for preset, cap in opened
        ]
        self.dispatcher = DetectionDispatcher(self.detections, self.streams)

        self.detector.start()
        for stream in self.streams:
            stream.start()
        self.dispatcher.start()
        self.running = True
        logger.info("Pipeline started with %d cameras", len(self.streams))

    def stop(self):
        """Stop every thread; each stop blocks until acknowledged."""
        if not self.running:
            return
        self.running = False
        self.detections.close()
        if self.detector is not None:
            self.detector.stop()
        if self.dispatcher is not None:
            self.dispatcher.stop()
        for stream in self.streams:
            stream.stop()
        logger.info("Pipeline stopped")


def start_with_retry(factory: Callable[[], Pipeline], max_attempts: int,
                     backoff: float, backoff_max: float,
                     sleep: Callable[[float], None] = time.sleep) -> Pipeline:
    """Build and start a pipeline, retrying with exponential backoff.

    Raises PipelineStartError once ``max_attempts`` starts have failed.
    """
    delay = backoff
    for attempt in range(1, max_attempts + 1):
        pipeline = factory()
        try:
            pipeline.start()
            return pipeline
        except DeviceInitError as e:
            logger.error("Pipeline start attempt %d/%d failed: %s", attempt, max_attempts, e)
            if attempt == max_attempts:
                break
            logger.info("Restarting pipeline in %.1fs", delay)
            sleep(delay)
            delay = min(delay * 2, backoff_max)
    raise PipelineStartError(f"pipeline failed to start after {max_attempts} attempts")
