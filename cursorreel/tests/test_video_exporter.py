"""Tests for app.video_exporter — end-to-end renders through ffmpeg."""

import os
import threading

import pytest

from PySide6.QtCore import QCoreApplication

import app.utils
from app.errors import CompositingError, ExportCancelled
from app.models import (
    ClickEvent,
    CursorKeyframe,
    CursorTrack,
    RecordingMetadata,
    VideoInfo,
    ZoomSection,
    ZoomTrack,
)
from app.screen_geometry import RecordingGeometry
from app.settings import MouseEffectsConfig
from app.timeline import synthesize_timeline
from app.utils import probe_video
from app.video_exporter import VideoExporter, partial_path_for, render_video


@pytest.fixture(autouse=True)
def software_encoder():
    """Skip hardware probing; every test encodes with libx264."""
    app.utils._available_encoders = ["libx264"]
    yield
    app.utils._available_encoders = None


@pytest.fixture
def tiny_metadata(tiny_video_info: VideoInfo) -> RecordingMetadata:
    fx = MouseEffectsConfig()
    fx.click_circles.enabled = True
    return RecordingMetadata(
        video=tiny_video_info,
        cursor=CursorTrack(keyframes=[
            CursorKeyframe(timestamp=0, x=5, y=5),
            CursorKeyframe(timestamp=500, x=50, y=40),
        ]),
        zoom=ZoomTrack(sections=[ZoomSection(100, 400, 40, 30, 2.0)]),
        clicks=[ClickEvent(timestamp=200, x=30, y=25)],
        effects=fx,
    )


class TestPaths:
    def test_partial_path(self) -> None:
        assert partial_path_for(os.path.join("out", "demo.mp4")) == os.path.join("out", "demo.partial.mp4")


class TestRenderVideo:
    def test_end_to_end(self, tmp_path, tiny_video: str, tiny_metadata: RecordingMetadata) -> None:
        output = str(tmp_path / "export.mp4")
        out = render_video(tiny_video, tiny_metadata, output, encoder_id="libx264", workers=2)
        assert out == output
        assert os.path.exists(output)
        assert not os.path.exists(partial_path_for(output))
        info = probe_video(output)
        assert (info["width"], info["height"]) == (64, 48)
        assert info["frames"] == pytest.approx(15, abs=1)

    def test_output_size_rounded_even(self, tmp_path, tiny_video: str,
                                      tiny_metadata: RecordingMetadata) -> None:
        output = str(tmp_path / "small.mp4")
        render_video(tiny_video, tiny_metadata, output, output_size=(33, 25))
        info = probe_video(output)
        assert (info["width"], info["height"]) == (34, 26)

    def test_extension_forced_to_mp4(self, tmp_path, tiny_video: str,
                                     tiny_metadata: RecordingMetadata) -> None:
        out = render_video(tiny_video, tiny_metadata, str(tmp_path / "clip.mov"))
        assert out.endswith("clip.mp4")
        assert os.path.exists(out)

    def test_zero_move_recording_exports(self, tmp_path, tiny_video: str,
                                         tiny_video_info: VideoInfo) -> None:
        meta = synthesize_timeline([], tiny_video_info, RecordingGeometry(64, 48))
        out = render_video(tiny_video, meta, str(tmp_path / "static.mp4"))
        assert probe_video(out)["frames"] > 0

    def test_progress_is_monotonic(self, tmp_path, tiny_video: str,
                                   tiny_metadata: RecordingMetadata) -> None:
        seen = []
        render_video(tiny_video, tiny_metadata, str(tmp_path / "p.mp4"),
                     progress=lambda pct, msg: seen.append(pct))
        assert seen == sorted(seen)
        assert seen[-1] == 100
        assert all(0 <= p <= 100 for p in seen)

    def test_cancel_removes_partial(self, tmp_path, tiny_video: str,
                                    tiny_metadata: RecordingMetadata) -> None:
        output = str(tmp_path / "cancelled.mp4")
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ExportCancelled):
            render_video(tiny_video, tiny_metadata, output, cancel_event=cancel)
        assert not os.path.exists(output)
        assert not os.path.exists(partial_path_for(output))

    def test_missing_source(self, tmp_path, tiny_metadata: RecordingMetadata) -> None:
        with pytest.raises(CompositingError):
            render_video(str(tmp_path / "nope.avi"), tiny_metadata, str(tmp_path / "o.mp4"))

    def test_invalid_timeline(self, tmp_path, tiny_video: str,
                              tiny_metadata: RecordingMetadata) -> None:
        tiny_metadata.cursor.keyframes = []
        with pytest.raises(CompositingError):
            render_video(tiny_video, tiny_metadata, str(tmp_path / "o.mp4"))


class TestVideoExporter:
    @pytest.fixture(autouse=True)
    def qapp(self):
        yield QCoreApplication.instance() or QCoreApplication([])

    def test_finished_signal(self, tmp_path, tiny_video: str,
                             tiny_metadata: RecordingMetadata) -> None:
        exporter = VideoExporter()
        results, errors, progress = [], [], []
        exporter.finished.connect(results.append)
        exporter.error.connect(errors.append)
        exporter.progress.connect(progress.append)

        exporter.export(tiny_video, tiny_metadata, str(tmp_path / "bg.mp4"), workers=1)
        assert exporter.wait(60)
        assert errors == []
        assert results == [str(tmp_path / "bg.mp4")]
        assert progress[-1] == pytest.approx(1.0)

    def test_error_signal(self, tmp_path, tiny_metadata: RecordingMetadata) -> None:
        exporter = VideoExporter()
        errors = []
        exporter.error.connect(errors.append)
        exporter.export(str(tmp_path / "missing.avi"), tiny_metadata, str(tmp_path / "x.mp4"))
        assert exporter.wait(30)
        assert len(errors) == 1
        assert not exporter.is_running
