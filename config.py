"""
Configuration and settings persistence for Swing Replay.
"""

import json
import logging
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Any

logger = logging.getLogger(__name__)

APP_DIR = Path.home() / "SwingReplay"
SETTINGS_FILE = APP_DIR / "settings.json"
LOG_DIR = APP_DIR / "logs"


@dataclass
class CameraPreset:
    """Saved camera configuration."""
    id: Any  # int for USB, str for network URL
    name: str = ""
    zoom: float = 1.0
    rotation: int = 0  # 0, 90, 180, 270
    flip_h: bool = False
    flip_v: bool = False

    def __post_init__(self):
        if not self.name:
            self.name = f"camera {self.id}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "zoom": self.zoom,
            "rotation": self.rotation,
            "flip_h": self.flip_h,
            "flip_v": self.flip_v,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CameraPreset":
        return cls(
            id=data.get("id", 0),
            name=data.get("name", ""),
            zoom=data.get("zoom", 1.0),
            rotation=data.get("rotation", 0),
            flip_h=data.get("flip_h", False),
            flip_v=data.get("flip_v", False),
        )


# Scalar AppConfig fields persisted to settings.json
SETTINGS_KEYS = (
    "fps", "frame_width", "frame_height", "seconds_to_record",
    "post_event_seconds", "playback_speed", "clips_dir",
    "audio_threshold_db", "min_detection_interval", "audio_sample_rate",
    "audio_chunk_size", "audio_window_seconds", "detect_interval",
    "audio_device_index", "render_interval_ms", "window_geometry",
    "restart_max_attempts", "restart_backoff", "restart_backoff_max",
)


def default_cameras() -> List[CameraPreset]:
    # Both cameras are mounted upside down on the rig.
    return [
        CameraPreset(id=0, name="front", rotation=180),
        CameraPreset(id=1, name="back", rotation=180),
    ]


@dataclass
class AppConfig:
    """Application configuration settings."""
    # Capture settings
    fps: int = 120
    frame_width: int = 1280
    frame_height: int = 720
    seconds_to_record: float = 4.0
    post_event_seconds: Optional[float] = None  # None -> half of seconds_to_record

    # Playback settings
    playback_speed: float = 0.25
    clips_dir: str = "videos"

    # Audio settings
    audio_threshold_db: float = 90.0
    min_detection_interval: float = 5.0
    audio_sample_rate: int = 44100
    audio_chunk_size: int = 1024
    audio_window_seconds: float = 0.1
    detect_interval: float = 0.1
    audio_device_index: Optional[int] = None

    # Display settings
    render_interval_ms: int = 5
    window_geometry: Optional[List[int]] = None

    # Pipeline restart policy
    restart_max_attempts: int = 5
    restart_backoff: float = 1.0
    restart_backoff_max: float = 30.0

    # Camera settings
    cameras: List[CameraPreset] = field(default_factory=default_cameras)

    def __post_init__(self):
        self._validate()

    def _validate(self):
        """Clamp values to safe ranges."""
        self.fps = max(1, min(240, int(self.fps)))
        self.frame_width = max(160, int(self.frame_width))
        self.frame_height = max(120, int(self.frame_height))
        self.seconds_to_record = max(0.5, min(30.0, float(self.seconds_to_record)))
        if self.post_event_seconds is None:
            self.post_event_seconds = self.seconds_to_record / 2
        self.post_event_seconds = max(0.0, min(self.seconds_to_record, float(self.post_event_seconds)))
        self.playback_speed = max(0.05, min(10.0, float(self.playback_speed)))
        self.audio_threshold_db = max(0.0, min(200.0, float(self.audio_threshold_db)))
        self.min_detection_interval = max(0.0, min(60.0, float(self.min_detection_interval)))
        self.audio_sample_rate = max(8000, min(96000, int(self.audio_sample_rate)))
        self.audio_chunk_size = max(256, min(8192, int(self.audio_chunk_size)))
        self.audio_window_seconds = max(0.01, min(2.0, float(self.audio_window_seconds)))
        self.detect_interval = max(0.01, min(1.0, float(self.detect_interval)))
        self.render_interval_ms = max(1, min(100, int(self.render_interval_ms)))
        self.restart_max_attempts = max(1, min(100, int(self.restart_max_attempts)))
        self.restart_backoff = max(0.0, float(self.restart_backoff))
        self.restart_backoff_max = max(self.restart_backoff, float(self.restart_backoff_max))

    @property
    def buffer_capacity(self) -> int:
        """Frames kept by each ring buffer: fps * seconds_to_record."""
        return int(self.fps * self.seconds_to_record)

    @property
    def audio_window_samples(self) -> int:
        return int(self.audio_sample_rate * self.audio_window_seconds)

    def get_camera_preset(self, name: str) -> Optional[CameraPreset]:
        """Get preset for a specific stream name."""
        for c in self.cameras:
            if c.name == name:
                return c
        return None

    def to_dict(self) -> dict:
        data = {"cameras": [c.to_dict() for c in self.cameras]}
        for key in SETTINGS_KEYS:
            data[key] = getattr(self, key)
        return data

    def update_from_dict(self, data: dict):
        """Load settings from a dict (from JSON)."""
        if "cameras" in data:
            self.cameras = [CameraPreset.from_dict(c) for c in data["cameras"]]
        for key in SETTINGS_KEYS:
            if key in data:
                setattr(self, key, data[key])
        self._validate()


def load_settings(config: AppConfig, path: Path = None):
    """Load settings from disk into config."""
    path = path or SETTINGS_FILE
    if path.exists():
        try:
            with open(path, "r") as f:
                data = json.load(f)
            config.update_from_dict(data)
            logger.info("Settings loaded from %s", path)
        except (json.JSONDecodeError, ValueError, TypeError) as e:
            logger.warning("Corrupt settings file, starting fresh: %s", e)
            corrupt_path = path.with_suffix(".corrupt")
            try:
                path.rename(corrupt_path)
                logger.info("Renamed corrupt settings to %s", corrupt_path)
            except OSError:
                pass
        except OSError as e:
            logger.warning("Failed to load settings: %s", e)


def save_settings(config: AppConfig, path: Path = None):
    """Save config to disk using atomic temp-file-then-rename."""
    path = path or SETTINGS_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=path.parent, suffix=".tmp", prefix="settings_"
        )
        try:
            with open(fd, "w") as f:
                json.dump(config.to_dict(), f, indent=2)
            Path(tmp_path).replace(path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug("Settings saved to %s", path)
    except Exception as e:
        logger.warning("Failed to save settings: %s", e)
