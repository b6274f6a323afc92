"""Tests for config.py — AppConfig, CameraPreset, load/save settings."""

import json

import pytest

from config import AppConfig, CameraPreset, load_settings, save_settings


# ---------------------------------------------------------------------------
# 1. Default values
# ---------------------------------------------------------------------------

def test_app_config_defaults():
    cfg = AppConfig()

    assert cfg.fps == 120
    assert (cfg.frame_width, cfg.frame_height) == (1280, 720)
    assert cfg.seconds_to_record == 4.0
    assert cfg.post_event_seconds == 2.0
    assert cfg.playback_speed == 0.25
    assert cfg.audio_threshold_db == 90.0
    assert cfg.min_detection_interval == 5.0
    assert cfg.audio_sample_rate == 44100
    assert cfg.detect_interval == 0.1
    assert cfg.clips_dir == "videos"
    assert cfg.audio_device_index is None


def test_default_cameras_are_front_and_back():
    cfg = AppConfig()

    assert [c.name for c in cfg.cameras] == ["front", "back"]
    assert [c.id for c in cfg.cameras] == [0, 1]
    assert all(c.rotation == 180 for c in cfg.cameras)


def test_derived_sizes():
    cfg = AppConfig(fps=120, seconds_to_record=6)

    assert cfg.buffer_capacity == 720
    assert cfg.audio_window_samples == 4410


# ---------------------------------------------------------------------------
# 2. _validate clamps
# ---------------------------------------------------------------------------

def test_validate_clamps_fps():
    assert AppConfig(fps=0).fps == 1
    assert AppConfig(fps=999).fps == 240


def test_post_event_clamped_to_record_window():
    assert AppConfig(seconds_to_record=3, post_event_seconds=10).post_event_seconds == 3.0
    assert AppConfig(post_event_seconds=-1).post_event_seconds == 0.0


def test_validate_clamps_playback_speed():
    assert AppConfig(playback_speed=0.0).playback_speed == 0.05
    assert AppConfig(playback_speed=50).playback_speed == 10.0


def test_restart_backoff_max_not_below_initial():
    cfg = AppConfig(restart_backoff=10.0, restart_backoff_max=2.0)
    assert cfg.restart_backoff_max == 10.0


# ---------------------------------------------------------------------------
# 3. CameraPreset
# ---------------------------------------------------------------------------

def test_camera_preset_default_name():
    assert CameraPreset(id=3).name == "camera 3"


def test_camera_preset_from_dict_defaults():
    preset = CameraPreset.from_dict({"id": "rtsp://cam/stream"})

    assert preset.id == "rtsp://cam/stream"
    assert preset.zoom == 1.0
    assert preset.rotation == 0
    assert preset.flip_h is False


def test_get_camera_preset():
    cfg = AppConfig()
    assert cfg.get_camera_preset("back").id == 1
    assert cfg.get_camera_preset("side") is None


# ---------------------------------------------------------------------------
# 4. Persistence
# ---------------------------------------------------------------------------

def test_save_then_load(tmp_path):
    path = tmp_path / "settings.json"
    cfg = AppConfig(audio_threshold_db=82.5, playback_speed=0.5)
    cfg.cameras[1].flip_h = True
    save_settings(cfg, path)

    loaded = AppConfig()
    load_settings(loaded, path)

    assert loaded.audio_threshold_db == 82.5
    assert loaded.playback_speed == 0.5
    assert loaded.cameras[1].flip_h is True
    assert not list(tmp_path.glob("settings_*.tmp"))


def test_load_clamps_values(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"fps": 10000, "seconds_to_record": 0.01}))

    cfg = AppConfig()
    load_settings(cfg, path)

    assert cfg.fps == 240
    assert cfg.seconds_to_record == 0.5


def test_corrupt_settings_renamed(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("{not json")

    cfg = AppConfig()
    load_settings(cfg, path)

    assert cfg.fps == 120
    assert not path.exists()
    assert (tmp_path / "settings.corrupt").exists()


def test_load_missing_file_keeps_defaults(tmp_path):
    cfg = AppConfig()
    load_settings(cfg, tmp_path / "absent.json")
    assert cfg.audio_threshold_db == 90.0


def test_settings_file_overrides_timing_and_restart_fields(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "frame_width": 640,
        "frame_height": 480,
        "audio_sample_rate": 48000,
        "audio_window_seconds": 0.2,
        "detect_interval": 0.05,
        "render_interval_ms": 16,
        "restart_max_attempts": 8,
        "restart_backoff": 0.5,
        "restart_backoff_max": 10.0,
    }))

    cfg = AppConfig()
    load_settings(cfg, path)

    assert (cfg.frame_width, cfg.frame_height) == (640, 480)
    assert cfg.audio_sample_rate == 48000
    assert cfg.audio_window_samples == 9600
    assert cfg.detect_interval == 0.05
    assert cfg.render_interval_ms == 16
    assert (cfg.restart_max_attempts, cfg.restart_backoff, cfg.restart_backoff_max) == (8, 0.5, 10.0)


def test_to_dict_includes_every_persisted_field():
    data = AppConfig(detect_interval=0.2, restart_max_attempts=3).to_dict()

    assert data["detect_interval"] == 0.2
    assert data["restart_max_attempts"] == 3
    for key in ("audio_sample_rate", "audio_window_seconds", "render_interval_ms",
                "restart_backoff", "restart_backoff_max", "frame_width", "frame_height"):
        assert key in data
