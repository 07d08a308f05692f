"""Tests for app.compositor — per-frame decisions and rendering."""

import dataclasses
import json
import logging

import numpy as np
import pytest

from app.compositor import TimelineCompositor
from app.errors import CompositingError
from app.metadata_file import load_metadata
from app.models import (
    ClickEvent,
    CursorKeyframe,
    CursorShape,
    CursorTrack,
    RecordingMetadata,
    VideoInfo,
    ZoomSection,
    ZoomTrack,
)
from app.settings import (
    CursorConfig,
    MouseEffectsConfig,
    ZoomConfig,
)


def _with_video(meta: RecordingMetadata, **changes) -> RecordingMetadata:
    return dataclasses.replace(meta, video=dataclasses.replace(meta.video, **changes))


class _FixedAutoZoom:
    def __init__(self) -> None:
        self.calls = 0

    def suggest(self, clicks, video, config):
        self.calls += 1
        return [ZoomSection(0, video.duration, 100, 100, 3.0)]


class TestConstruction:
    @pytest.mark.parametrize("changes", [{"duration": 0}, {"duration": -1}, {"frame_rate": 0}])
    def test_bad_video(self, sample_metadata: RecordingMetadata, changes) -> None:
        with pytest.raises(CompositingError):
            TimelineCompositor(_with_video(sample_metadata, **changes))

    def test_no_keyframes(self, sample_metadata: RecordingMetadata) -> None:
        meta = dataclasses.replace(sample_metadata, cursor=CursorTrack(keyframes=[]))
        with pytest.raises(CompositingError):
            TimelineCompositor(meta)

    def test_missing_effects_default_disabled(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        assert comp.effects == MouseEffectsConfig()

    def test_missing_zoom_config_disables_zoom(self, tmp_path, sample_metadata: RecordingMetadata,
                                               caplog) -> None:
        data = sample_metadata.to_dict()
        del data["zoom"]["config"]
        path = tmp_path / "rec.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        meta = load_metadata(str(path))
        assert meta.zoom.config is None

        with caplog.at_level(logging.WARNING, logger="app.compositor"):
            comp = TimelineCompositor(meta)
        assert not comp.zoom_config.enabled
        assert "zoom disabled" in caplog.text
        # The authored section is kept but never engages.
        assert len(comp.zoom.sections) == 1
        assert comp.decide(3000.0).camera.is_identity

    def test_explicit_configs_override(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata, cursor_config=CursorConfig(size=64),
                                  zoom_config=ZoomConfig.disabled())
        assert comp.cursor_config.size == 64
        assert not comp.zoom_config.enabled

    def test_auto_zoom_only_without_sections(self, sample_metadata: RecordingMetadata) -> None:
        strategy = _FixedAutoZoom()
        TimelineCompositor(sample_metadata, zoom_config=ZoomConfig(auto_zoom=True), auto_zoom=strategy)
        assert strategy.calls == 0

        empty = dataclasses.replace(sample_metadata, zoom=ZoomTrack(sections=[]))
        comp = TimelineCompositor(empty, zoom_config=ZoomConfig(auto_zoom=True), auto_zoom=strategy)
        assert strategy.calls == 1
        assert len(comp.zoom.sections) == 1

    def test_invalid_section_rejected(self, sample_metadata: RecordingMetadata) -> None:
        bad = dataclasses.replace(sample_metadata, zoom=ZoomTrack(
            sections=[ZoomSection(3000, 1000, 0, 0, 2.0)]))
        with pytest.raises(CompositingError):
            TimelineCompositor(bad)


class TestTiming:
    def test_frame_times(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        assert comp.frame_time(0) == 0.0
        assert comp.frame_time(30) == pytest.approx(1000.0)
        assert comp.frame_count == 151

    def test_clamp(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        assert comp.clamp_time(-5) == 0.0
        assert comp.clamp_time(9999) == 5000.0
        assert comp.decide(9999).time_ms == 5000.0


class TestCursor:
    def test_interpolated_position_and_shape(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        state = comp.cursor_at(750)
        assert state.x == pytest.approx(450.0)
        assert state.y == pytest.approx(350.0)
        assert state.shape is CursorShape.ARROW
        assert comp.cursor_at(2000).shape is CursorShape.POINTER

    def test_forced_shape(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata, cursor_config=CursorConfig(shape="ibeam"))
        assert comp.cursor_at(2000).shape is CursorShape.IBEAM

    def test_click_animation(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        assert comp.cursor_at(1700).scale < 1.0
        off = TimelineCompositor(sample_metadata, cursor_config=CursorConfig(click_animation=False))
        assert off.cursor_at(1700).scale == 1.0

    def test_hide_when_static(self, video_info: VideoInfo) -> None:
        meta = RecordingMetadata(
            video=video_info,
            cursor=CursorTrack(keyframes=[CursorKeyframe(0, 10, 10), CursorKeyframe(1000, 500, 10),
                                          CursorKeyframe(5000, 500, 10)]),
            zoom=ZoomTrack(),
        )
        comp = TimelineCompositor(meta, cursor_config=CursorConfig(hide_when_static=True))
        assert comp.cursor_at(1500).visible
        assert not comp.cursor_at(3000).visible

    def test_smoothing_lags(self, sample_metadata: RecordingMetadata) -> None:
        raw = TimelineCompositor(sample_metadata).cursor_at(750).x
        smooth = TimelineCompositor(sample_metadata,
                                    cursor_config=CursorConfig(smoothing=1.0)).cursor_at(750).x
        assert smooth < raw


class TestDecide:
    def test_decisions_are_deterministic(self, sample_metadata: RecordingMetadata) -> None:
        a = TimelineCompositor(sample_metadata)
        b = TimelineCompositor(sample_metadata)
        for i in range(0, 150, 7):
            assert a.decide(a.frame_time(i)) == b.decide(b.frame_time(i))

    def test_zoom_engages_inside_section(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        decisions = [comp.decide(comp.frame_time(i)) for i in range(comp.frame_count)]
        assert decisions[30].camera.is_identity
        assert decisions[100].camera.level > 1.5

    def test_effects_reported(self, sample_metadata: RecordingMetadata) -> None:
        fx = MouseEffectsConfig()
        fx.click_circles.enabled = True
        fx.highlight_ring.enabled = True
        comp = TimelineCompositor(sample_metadata, effects=fx)
        d = comp.decide(1650)
        assert len(d.click_circles) == 1
        assert len(d.rings) == 1
        assert d.trail == []

    def test_warm_up_matches_sequential(self, sample_metadata: RecordingMetadata) -> None:
        seq = TimelineCompositor(sample_metadata)
        views = [seq.decide(seq.frame_time(i)).camera for i in range(90)]
        chunk = TimelineCompositor(sample_metadata)
        chunk.warm_up(chunk.frame_time(70))
        for i in range(71, 90):
            assert chunk.decide(chunk.frame_time(i)).camera.level == pytest.approx(views[i].level)


class TestRender:
    def test_identity_keeps_size(self, sample_metadata: RecordingMetadata) -> None:
        meta = _with_video(sample_metadata, width=320, height=180)
        meta = dataclasses.replace(meta, zoom=ZoomTrack(), clicks=[])
        comp = TimelineCompositor(meta)
        frame = np.zeros((180, 320, 3), dtype=np.uint8)
        out = comp.render(frame, comp.decide(0))
        assert out.shape == (180, 320, 3)
        assert out.max() > 0  # cursor drawn

    def test_output_size(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        frame = np.zeros((1080, 1920, 3), dtype=np.uint8)
        out = comp.render(frame, comp.decide(0), out_size=(640, 360))
        assert out.shape == (360, 640, 3)

    def test_mismatched_source_resized(self, sample_metadata: RecordingMetadata) -> None:
        comp = TimelineCompositor(sample_metadata)
        frame = np.zeros((540, 960, 3), dtype=np.uint8)
        out = comp.render(frame, comp.decide(0))
        assert out.shape == (1080, 1920, 3)

    def test_zoomed_frame_is_cropped(self) -> None:
        video = VideoInfo(path="", width=200, height=100, frame_rate=30, duration=3000)
        meta = RecordingMetadata(
            video=video,
            cursor=CursorTrack(keyframes=[CursorKeyframe(0, 190, 90)],
                               config=CursorConfig(size=8)),
            zoom=ZoomTrack(sections=[ZoomSection(0, 3000, 50, 25, 2.0)]),
            clicks=[ClickEvent(5000, 0, 0)],
        )
        comp = TimelineCompositor(meta)
        for i in range(comp.frame_count - 1):
            d = comp.decide(comp.frame_time(i))
        frame = np.zeros((100, 200, 3), dtype=np.uint8)
        frame[:, 100:] = 255  # right half white
        out = comp.render(frame, d)
        assert out.shape == (100, 200, 3)
        # Camera sits on the left half, so the white half is out of view
        assert out[:, :150].max() == 0
