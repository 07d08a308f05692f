"""Shared pytest fixtures for CursorReel tests."""

import threading
from typing import List

import cv2
import numpy as np
import pytest

from app.models import (
    ButtonState,
    ClickEvent,
    CursorKeyframe,
    CursorShape,
    CursorTrack,
    RecordingMetadata,
    VideoInfo,
    ZoomSection,
    ZoomTrack,
)
from app.screen_geometry import RecordingGeometry
from app.settings import CursorConfig, ZoomConfig
from app.telemetry import TelemetrySnapshot


# ── Fake telemetry ─────────────────────────────────────────────────


class ScriptedTelemetrySource:
    """Replays a fixed list of snapshots, then repeats the last one.

    An entry that is an ``Exception`` instance is raised instead of
    returned, to simulate a failed poll.
    """

    def __init__(self, script: List[object]) -> None:
        self._script = list(script)
        self._index = 0
        self._lock = threading.Lock()
        self.started = 0
        self.stopped = 0
        self.polls = 0

    def start(self) -> None:
        self.started += 1

    def stop(self) -> None:
        self.stopped += 1

    def get_snapshot(self) -> TelemetrySnapshot:
        with self._lock:
            self.polls += 1
            item = self._script[min(self._index, len(self._script) - 1)]
            self._index += 1
        if isinstance(item, Exception):
            raise item
        return item


def snap(x: float = 0.0, y: float = 0.0, left: bool = False, right: bool = False,
         middle: bool = False, icon: str = "arrow") -> TelemetrySnapshot:
    return TelemetrySnapshot(x=x, y=y, buttons=ButtonState(left, right, middle), cursor_icon=icon)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ── Geometry ───────────────────────────────────────────────────────


@pytest.fixture
def video_info() -> VideoInfo:
    """A 1920x1080, 30 fps, 5 s recording."""
    return VideoInfo(path="rec.mp4", width=1920, height=1080, frame_rate=30.0, duration=5000.0)


@pytest.fixture
def full_screen() -> RecordingGeometry:
    return RecordingGeometry(screen_width=1920, screen_height=1080)


# ── Timelines ──────────────────────────────────────────────────────


@pytest.fixture
def linear_keyframes() -> List[CursorKeyframe]:
    """Cursor moving 0→100 px along x in the first second."""
    return [
        CursorKeyframe(timestamp=0.0, x=0.0, y=0.0),
        CursorKeyframe(timestamp=1000.0, x=100.0, y=0.0),
    ]


@pytest.fixture
def sample_metadata(video_info: VideoInfo) -> RecordingMetadata:
    """Small hand-written timeline with a click and one zoom section."""
    return RecordingMetadata(
        video=video_info,
        cursor=CursorTrack(
            keyframes=[
                CursorKeyframe(timestamp=0.0, x=100.0, y=100.0, shape=CursorShape.ARROW),
                CursorKeyframe(timestamp=1500.0, x=800.0, y=600.0, shape=CursorShape.POINTER),
                CursorKeyframe(timestamp=5000.0, x=900.0, y=650.0, shape=CursorShape.POINTER),
            ],
            config=CursorConfig(),
        ),
        zoom=ZoomTrack(
            sections=[ZoomSection(start_time=2000.0, end_time=4000.0,
                                  target_x=800.0, target_y=600.0, level=2.0)],
            config=ZoomConfig(),
        ),
        clicks=[
            ClickEvent(timestamp=1600.0, x=800.0, y=600.0, button="left", action="down"),
            ClickEvent(timestamp=1700.0, x=800.0, y=600.0, button="left", action="up"),
        ],
        created_at=1_700_000_000_000.0,
    )


# ── Video files ────────────────────────────────────────────────────


def write_test_video(path: str, width: int = 64, height: int = 48,
                     fps: float = 30.0, frames: int = 15) -> str:
    """Write a small MJPG AVI with a moving gradient so frames differ."""
    writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), fps, (width, height))
    assert writer.isOpened()
    for i in range(frames):
        frame = np.zeros((height, width, 3), dtype=np.uint8)
        frame[:, :, 1] = (i * 10) % 256
        frame[:, : width // 2, 2] = 200
        writer.write(frame)
    writer.release()
    return path


@pytest.fixture
def tiny_video(tmp_path) -> str:
    """64x48, 30 fps, 15 frames (500 ms)."""
    return write_test_video(str(tmp_path / "recording.avi"))


@pytest.fixture
def tiny_video_info(tiny_video: str) -> VideoInfo:
    return VideoInfo(path=tiny_video, width=64, height=48, frame_rate=30.0, duration=500.0)
