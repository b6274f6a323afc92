"""
Swing Replay - Dual-Camera Strike Replay
========================================
Listens for the sound of a club strike and, for a front and a back camera,
saves the seconds of video around the strike, then loops the clip in slow
motion next to each other while live capture carries on.
"""

import sys
import logging
import logging.handlers
from pathlib import Path
from typing import Dict, Optional

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QStatusBar,
)
from PyQt6.QtCore import Qt, QTimer
from PyQt6.QtGui import QColor, QKeySequence, QPalette, QShortcut

from config import AppConfig, LOG_DIR, load_settings, save_settings
from errors import PipelineStartError
from pipeline import Pipeline, start_with_retry
from ui_components import DisplaySurface
from version import __version__


# ============================================================================
# Logging Setup
# ============================================================================

def setup_logging():
    """Configure logging with file and console handlers."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_file = LOG_DIR / "swing_replay.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # File handler (rotating)
    fh = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=5, encoding="utf-8"
    )
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s", datefmt="%H:%M:%S"
    ))
    root.addHandler(fh)

    # Console handler
    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
    root.addHandler(ch)


logger = logging.getLogger(__name__)


# ============================================================================
# Replay Window
# ============================================================================

class ReplayWindow(QMainWindow):
    """Main window: one display surface per camera plus a level readout.

    The render timer is the only place surfaces are polled, so all drawing
    stays on the GUI thread.
    """

    def __init__(self, config: AppConfig):
        super().__init__()
        self.config = config
        self.pipeline: Optional[Pipeline] = None
        self.surfaces: Dict[str, DisplaySurface] = {}
        self.stream_labels: Dict[str, QLabel] = {}
        self._stream_state: Dict[str, dict] = {}

        self._setup_ui()
        self._setup_timers()
        self._setup_shortcuts()

    def _setup_ui(self):
        self.setWindowTitle(f"Swing Replay {__version__}")
        self.setMinimumSize(1320, 480)

        central = QWidget()
        layout = QHBoxLayout(central)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(8)

        for preset in self.config.cameras:
            column = QVBoxLayout()
            title = QLabel(f"Video Player {preset.name.title()}")
            title.setStyleSheet("color: #4a9eff; font-weight: bold;")
            surface = DisplaySurface(preset.name)
            stream_label = QLabel(f"{preset.name} | live")
            stream_label.setStyleSheet("color: #888;")
            column.addWidget(title)
            column.addWidget(stream_label)
            column.addWidget(surface, stretch=1)
            layout.addLayout(column)
            self.surfaces[preset.name] = surface
            self.stream_labels[preset.name] = stream_label
            self._stream_state[preset.name] = {"fps": None, "clip": None}

        self.setCentralWidget(central)

        self.level_label = QLabel("Level: -- dB")
        self.detection_label = QLabel("No strike detected yet")
        status = QStatusBar()
        status.addWidget(self.level_label)
        status.addPermanentWidget(self.detection_label)
        self.setStatusBar(status)

        if self.config.window_geometry:
            self.setGeometry(*self.config.window_geometry)

    def _setup_timers(self):
        self.render_timer = QTimer()
        self.render_timer.setTimerType(Qt.TimerType.PreciseTimer)
        self.render_timer.timeout.connect(self._render_tick)
        self.render_timer.start(self.config.render_interval_ms)

    def _setup_shortcuts(self):
        sc = QShortcut(QKeySequence("Q"), self)
        sc.activated.connect(self._request_quit)

    def attach(self, pipeline: Pipeline):
        """Connect a running pipeline's signals to the status bar."""
        self.pipeline = pipeline
        pipeline.detector.level_update.connect(self._on_level)
        pipeline.dispatcher.detected.connect(self._on_detected)
        for stream in pipeline.streams:
            stream.clip_saved.connect(self._on_clip_saved)
            stream.fps_update.connect(self._on_fps)
            stream.playback_finished.connect(self._on_playback_finished)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render_tick(self):
        quit_requested = False
        for surface in self.surfaces.values():
            if surface.poll():
                quit_requested = True
        if quit_requested:
            self.close()

    def _request_quit(self):
        for surface in self.surfaces.values():
            surface.request_quit()

    # ------------------------------------------------------------------
    # Pipeline signals
    # ------------------------------------------------------------------

    def _on_level(self, decibels: float):
        self.level_label.setText(f"Level: {decibels:.1f} dB")

    def _on_detected(self, decibels: float):
        self.detection_label.setText(f"Strike detected at {decibels:.1f} dB")

    def _on_clip_saved(self, name: str, path: str):
        self.statusBar().showMessage(f"Saved {name} clip: {path}", 5000)
        self._update_stream_label(name, clip=Path(path).name)

    def _on_fps(self, name: str, fps: float):
        self._update_stream_label(name, fps=fps)

    def _on_playback_finished(self, name: str):
        self._update_stream_label(name, clip=None)

    def _update_stream_label(self, name: str, **changes):
        state = self._stream_state.get(name)
        if state is None:
            return
        state.update(changes)
        parts = [name]
        if state["fps"] is not None:
            parts.append(f"{state['fps']:.1f} FPS")
        parts.append(f"replaying {state['clip']}" if state["clip"] else "live")
        self.stream_labels[name].setText(" | ".join(parts))

    def closeEvent(self, event):
        g = self.geometry()
        self.config.window_geometry = [g.x(), g.y(), g.width(), g.height()]
        save_settings(self.config)

        self.render_timer.stop()
        for surface in self.surfaces.values():
            surface.close_intake()
        if self.pipeline is not None:
            self.pipeline.stop()

        logger.info("Application closing")
        event.accept()


# ============================================================================
# Entry Point
# ============================================================================

def main() -> int:
    setup_logging()
    logger.info("Swing Replay %s starting", __version__)

    config = AppConfig()
    load_settings(config)

    app = QApplication(sys.argv)
    app.setStyle("Fusion")

    palette = QPalette()
    palette.setColor(QPalette.ColorRole.Window, QColor(30, 30, 30))
    palette.setColor(QPalette.ColorRole.WindowText, QColor(200, 200, 200))
    palette.setColor(QPalette.ColorRole.Base, QColor(25, 25, 25))
    palette.setColor(QPalette.ColorRole.Text, QColor(200, 200, 200))
    app.setPalette(palette)

    window = ReplayWindow(config)
    try:
        pipeline = start_with_retry(
            lambda: Pipeline(config, window.surfaces),
            config.restart_max_attempts,
            config.restart_backoff,
            config.restart_backoff_max,
        )
    except PipelineStartError as e:
        logger.critical("Giving up: %s", e)
        return 1

    window.attach(pipeline)
    window.show()
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
