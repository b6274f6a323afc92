"""Shared pytest fixtures for Swing Replay tests."""

import os
import sys
import threading
from pathlib import Path

import cv2
import numpy as np
import pytest

# Widgets are created without a display in CI.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

# ---------------------------------------------------------------------------
# 1. sys_path -- ensure the project root is importable
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from handoff import Handoff  # noqa: E402


# ---------------------------------------------------------------------------
# 2. app_config -- small, fast AppConfig writing clips to a temp directory
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def app_config(tmp_path):
    """AppConfig with a 5-frame buffer (10 fps x 0.5 s) and temp clips dir."""
    from config import AppConfig, CameraPreset

    return AppConfig(
        fps=10,
        seconds_to_record=0.5,
        post_event_seconds=0.2,
        playback_speed=1.0,
        clips_dir=str(tmp_path / "videos"),
        cameras=[CameraPreset(id=0, name="front"), CameraPreset(id=1, name="back")],
    )


# ---------------------------------------------------------------------------
# 3. Fakes for the camera device and display surface
# ---------------------------------------------------------------------------


class FakeCamera:
    """Stands in for cv2.VideoCapture: yields numbered solid-grey frames."""

    def __init__(self, width=64, height=48, fps=30.0, ready=True):
        self.width = width
        self.height = height
        self.fps = fps
        self.ready = ready
        self.reads = 0
        self.released = False

    def read(self):
        self.reads += 1
        if not self.ready:
            return False, None
        value = (self.reads * 10) % 256
        return True, np.full((self.height, self.width, 3), value, dtype=np.uint8)

    def get(self, prop):
        return {
            cv2.CAP_PROP_FPS: self.fps,
            cv2.CAP_PROP_FRAME_WIDTH: float(self.width),
            cv2.CAP_PROP_FRAME_HEIGHT: float(self.height),
        }.get(prop, 0.0)

    def set(self, prop, value):
        return True

    def isOpened(self):
        return not self.released

    def release(self):
        self.released = True


class FakeSurface:
    """Display surface stand-in: the test thread plays the renderer."""

    def __init__(self, name="surface"):
        self.name = name
        self.intake = Handoff(name)

    @property
    def closed(self):
        return self.intake.closed

    def offer(self, frame, timeout=None):
        return self.intake.put(frame, timeout=timeout)

    def take(self, timeout=1.0):
        return self.intake.take(timeout=timeout)

    def close(self):
        self.intake.close()


@pytest.fixture
def fake_camera():
    return FakeCamera()


@pytest.fixture
def fake_surface():
    surface = FakeSurface()
    yield surface
    surface.close()


# ---------------------------------------------------------------------------
# 4. grey_frames -- distinguishable frames and a clip writer helper
# ---------------------------------------------------------------------------


@pytest.fixture(scope="function")
def grey_frames():
    """Four 64x48 frames, each a distinct flat grey level."""
    return [np.full((48, 64, 3), level, dtype=np.uint8) for level in (10, 90, 170, 250)]


@pytest.fixture
def clip_file(tmp_path, grey_frames):
    """A 4-frame MJPG clip at 30 fps."""
    from recording import write_clip

    return write_clip(tmp_path / "front clip.avi", grey_frames, 64, 48, 30.0)


def run_in_thread(fn, *args):
    t = threading.Thread(target=fn, args=args, daemon=True)
    t.start()
    return t
