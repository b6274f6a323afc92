"""
Audio loudness detection engine.

A PortAudio callback keeps a rolling window of the most recent samples; a
ticking thread measures the window's level in decibels and hands off a
Detection whenever it exceeds the threshold, at most once per debounce
interval.
"""

import logging
import math
import random
import threading
import time
from dataclasses import dataclass
from typing import Optional, Dict, List

import numpy as np
from PyQt6.QtCore import QThread, pyqtSignal

from config import AppConfig
from errors import DeviceInitError
from handoff import Handoff

logger = logging.getLogger(__name__)

try:
    import pyaudio
    AUDIO_AVAILABLE = True
except ImportError:
    AUDIO_AVAILABLE = False
    logger.warning("PyAudio not available. Audio triggering disabled.")

# 16-bit full scale; samples are read as 32-bit ints, so a loud hit on a
# 32-bit stream measures in the +90 dB range against this reference.
REFERENCE_LEVEL = 32768.0


@dataclass(frozen=True)
class Detection:
    """A loudness spike above the threshold."""
    loudness_db: float
    occurred_at: float  # time.time()


def calculate_rms(samples: np.ndarray) -> float:
    """Root mean square of the samples (0.0 for an empty window)."""
    if len(samples) == 0:
        return 0.0
    samples_f = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(samples_f ** 2)))


def calculate_decibels(samples: np.ndarray) -> float:
    """RMS level in dB relative to REFERENCE_LEVEL; silence is -inf."""
    rms = calculate_rms(samples)
    if rms == 0:
        return -math.inf
    return 20 * math.log10(rms / REFERENCE_LEVEL)


# ============================================================================
# Audio Detector Thread
# ============================================================================

class AudioDetector(QThread):
    """Thread that ticks over the rolling audio window and emits detections."""

    level_update = pyqtSignal(float)  # dB

    def __init__(self, config: AppConfig, detections: Handoff):
        super().__init__()
        self.config = config
        self.detections = detections
        self.threshold_db = config.audio_threshold_db
        self.min_interval = config.min_detection_interval
        self._stop_requested = threading.Event()

        self._lock = threading.Lock()
        self._window = np.zeros(0, dtype=np.float64)
        self._window_size = config.audio_window_samples
        self._last_detection: Optional[float] = None
        self._last_level = -math.inf

        self._pa = None
        self._stream = None

    # --- Rolling window (writer side) ---

    def feed(self, samples: np.ndarray):
        """Append samples to the rolling window, keeping the newest ones."""
        data = np.asarray(samples, dtype=np.float64)
        with self._lock:
            window = np.concatenate((self._window, data))
            if len(window) > self._window_size:
                window = window[-self._window_size:]
            self._window = window

    def _on_audio(self, in_data, frame_count, time_info, status):
        self.feed(np.frombuffer(in_data, dtype=np.int32))
        return None, pyaudio.paContinue

    # --- Detection (reader side) ---

    def current_level(self) -> float:
        with self._lock:
            return calculate_decibels(self._window)

    def evaluate(self, now: Optional[float] = None) -> Optional[Detection]:
        """Measure the window and return a Detection if one is due.

        A detection needs a level strictly above the threshold and more than
        ``min_interval`` seconds since the previous one.
        """
        now = time.time() if now is None else now
        decibels = self.current_level()

        if random.random() > 0.8:
            logger.debug("Sound level: %.1f dB", decibels)

        self._last_level = decibels
        if decibels <= self.threshold_db:
            return None
        if self._last_detection is not None and now - self._last_detection <= self.min_interval:
            return None

        self._last_detection = now
        return Detection(loudness_db=decibels, occurred_at=now)

    def tick(self) -> Optional[Detection]:
        detection = self.evaluate()
        self.level_update.emit(self._last_level)
        if detection is not None:
            logger.info("Sound above threshold: %.1f dB", detection.loudness_db)
            # Blocks until the dispatcher accepts it.
            if not self.detections.put(detection):
                logger.debug("Detection hand-off closed, dropping %.1f dB", detection.loudness_db)
        return detection

    # --- Device lifecycle ---

    def open(self):
        """Open the input device. Raises DeviceInitError on failure."""
        if not AUDIO_AVAILABLE:
            raise DeviceInitError("PyAudio is not installed")

        try:
            self._pa = pyaudio.PyAudio()
            for dev in enumerate_audio_devices(self._pa):
                logger.info("Audio input device %d: %s (%d ch, %d Hz)",
                            dev["index"], dev["name"], dev["channels"], dev["sample_rate"])

            kwargs = {
                "format": pyaudio.paInt32,
                "channels": 1,
                "rate": self.config.audio_sample_rate,
                "input": True,
                "frames_per_buffer": self.config.audio_chunk_size,
                "stream_callback": self._on_audio,
                "start": False,
            }
            if self.config.audio_device_index is not None:
                kwargs["input_device_index"] = self.config.audio_device_index
                info = self._pa.get_device_info_by_index(self.config.audio_device_index)
            else:
                info = self._pa.get_default_input_device_info()
            logger.info("Using input device: %s, default sample rate: %d Hz",
                        info.get("name"), int(info.get("defaultSampleRate", 0)))

            self._stream = self._pa.open(**kwargs)
        except Exception as e:
            self.close()
            raise DeviceInitError(f"error opening audio stream: {e}") from e

    def close(self):
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except Exception as e:
                logger.debug("Audio stream close error: %s", e)
            self._stream = None
        if self._pa is not None:
            self._pa.terminate()
            self._pa = None

    def run(self):
        if self._stream is None:
            logger.error("Audio detector started without an open stream")
            return

        self._stream.start_stream()
        logger.info("Recording audio at %d Hz (threshold %.1f dB)",
                    self.config.audio_sample_rate, self.threshold_db)

        interval = self.config.detect_interval
        next_tick = time.monotonic() + interval
        try:
            while not self._stop_requested.is_set():
                delay = next_tick - time.monotonic()
                if delay > 0 and self._stop_requested.wait(delay):
                    break
                self.tick()
                # a stalled hand-off skips missed ticks instead of bursting
                next_tick = max(next_tick + interval, time.monotonic())
        except Exception as e:
            logger.exception("Audio detector thread crashed: %s", e)
        finally:
            self.close()
            logger.info("Audio detection stopped")

    def stop(self):
        # run() never clears this, so a stop that races start() still ends it
        self._stop_requested.set()
        self.wait()


def enumerate_audio_devices(pa=None) -> List[Dict]:
    """Return list of available audio input devices."""
    devices = []
    if not AUDIO_AVAILABLE:
        return devices
    own = pa is None
    try:
        p = pa or pyaudio.PyAudio()
        for i in range(p.get_device_count()):
            info = p.get_device_info_by_index(i)
            if info.get("maxInputChannels", 0) > 0:
                devices.append({
                    "index": i,
                    "name": info.get("name", f"Device {i}"),
                    "channels": info.get("maxInputChannels", 0),
                    "sample_rate": int(info.get("defaultSampleRate", 44100)),
                })
        if own:
            p.terminate()
    except Exception as e:
        logger.warning("Failed to enumerate audio devices: %s", e)
    return devices
