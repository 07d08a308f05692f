"""Tests for app.metadata_file — JSON persistence beside the video."""

import json
import os

import pytest

from app.clock import apply_frame_offset
from app.errors import CompositingError
from app.metadata_file import (
    load_metadata,
    metadata_path_for,
    read_metadata,
    save_metadata,
    save_metadata_for_video,
)
from app.models import RecordingMetadata


class TestPaths:
    def test_metadata_path_for(self) -> None:
        assert metadata_path_for(os.path.join("a", "rec.mp4")) == os.path.join("a", "rec.json")


class TestSaveLoad:
    def test_roundtrip_without_offset(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        path = save_metadata(sample_metadata, str(tmp_path / "rec.json"))
        assert read_metadata(path) == sample_metadata
        assert load_metadata(path, frame_offset=0) == sample_metadata

    def test_no_temp_file_left(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        save_metadata(sample_metadata, str(tmp_path / "rec.json"))
        assert os.listdir(tmp_path) == ["rec.json"]

    def test_save_for_video(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        path = save_metadata_for_video(sample_metadata, str(tmp_path / "clip.mp4"))
        assert path == str(tmp_path / "clip.json")
        assert os.path.exists(path)

    def test_load_applies_default_offset(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        path = save_metadata(sample_metadata, str(tmp_path / "rec.json"))
        loaded = load_metadata(path)
        delta = 2000.0 / 30.0
        assert loaded.cursor.keyframes[1].timestamp == pytest.approx(1500 + delta)
        assert loaded.clicks[0].timestamp == pytest.approx(1600 + delta)

    def test_save_strips_offset(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        path = str(tmp_path / "rec.json")
        save_metadata(apply_frame_offset(sample_metadata, 2), path)
        with open(path, encoding="utf-8") as f:
            stored = json.load(f)
        assert stored["cursor"]["keyframes"][1]["timestamp"] == pytest.approx(1500.0)

    def test_load_save_load_is_stable(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        path = save_metadata(sample_metadata, str(tmp_path / "rec.json"))
        first = load_metadata(path)
        save_metadata(first, path)
        second = load_metadata(path)
        assert [k.timestamp for k in second.cursor.keyframes] == pytest.approx(
            [k.timestamp for k in first.cursor.keyframes])
        assert second.zoom.sections[0].start_time == pytest.approx(first.zoom.sections[0].start_time)

    def test_negative_offset_rejected(self, tmp_path, sample_metadata: RecordingMetadata) -> None:
        path = save_metadata(sample_metadata, str(tmp_path / "rec.json"))
        with pytest.raises(CompositingError):
            load_metadata(path, frame_offset=-1)


class TestBadFiles:
    def test_missing(self, tmp_path) -> None:
        with pytest.raises(CompositingError, match="not found"):
            read_metadata(str(tmp_path / "nope.json"))

    def test_not_json(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{ not json", encoding="utf-8")
        with pytest.raises(CompositingError):
            load_metadata(str(path))

    def test_missing_video(self, tmp_path) -> None:
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"cursor": {}}), encoding="utf-8")
        with pytest.raises(CompositingError):
            read_metadata(str(path))
