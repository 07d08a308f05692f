"""Tests for the command-line entry point."""

import os
from unittest.mock import patch

import pytest

import app.utils
import main
from app.metadata_file import save_metadata_for_video
from app.models import RecordingMetadata
from app.preferences import Preferences
from app.screen_geometry import RecordingGeometry
from app.timeline import synthesize_timeline


@pytest.fixture
def prefs(tmp_path):
    ini = str(tmp_path / "prefs.ini")
    with patch("main.Preferences", lambda: Preferences.from_ini(ini)):
        yield Preferences.from_ini(ini)


@pytest.fixture
def recorded(tiny_video: str, tiny_video_info) -> str:
    meta = synthesize_timeline([], tiny_video_info, RecordingGeometry(64, 48))
    save_metadata_for_video(meta, tiny_video)
    return tiny_video


class TestInspect:
    def test_summary(self, tmp_path, sample_metadata: RecordingMetadata, capsys) -> None:
        path = save_metadata_for_video(sample_metadata, str(tmp_path / "rec.mp4"))
        assert main.main(["inspect", path]) == 0
        out = capsys.readouterr().out
        assert "keyframes   3 (arrow, pointer)" in out
        assert "1 down / 1 up" in out
        assert "1 section(s)" in out
        assert "effects     none" in out

    def test_missing_file(self, tmp_path) -> None:
        assert main.main(["inspect", str(tmp_path / "none.json")]) == 1


class TestExport:
    def test_export(self, recorded: str, prefs, tmp_path) -> None:
        app.utils._available_encoders = ["libx264"]
        try:
            output = str(tmp_path / "final.mp4")
            assert main.main(["export", recorded, "-o", output, "--encoder", "libx264",
                              "--spring", "snappy"]) == 0
        finally:
            app.utils._available_encoders = None
        assert os.path.exists(output)
        assert Preferences.from_ini(str(tmp_path / "prefs.ini")).last_export_dir == str(tmp_path)

    def test_export_without_metadata(self, tiny_video: str, prefs) -> None:
        assert main.main(["export", tiny_video]) == 1

    def test_bad_size_argument(self) -> None:
        with pytest.raises(SystemExit):
            main.main(["export", "x.mp4", "--size", "wide"])
