"""Tests for app.preferences — QSettings-backed user preferences."""

import os

import pytest

from app.preferences import Preferences


@pytest.fixture
def ini_path(tmp_path) -> str:
    return str(tmp_path / "cursorreel.ini")


class TestPreferences:
    def test_defaults(self, ini_path: str) -> None:
        prefs = Preferences.from_ini(ini_path)
        assert prefs.frame_offset == 2
        assert prefs.encoder_id == ""
        assert prefs.workers == 0
        assert prefs.sample_interval_ms == pytest.approx(8.0)
        assert prefs.last_export_dir == ""

    def test_persisted(self, ini_path: str) -> None:
        prefs = Preferences.from_ini(ini_path)
        prefs.frame_offset = 4
        prefs.encoder_id = "h264_nvenc"
        prefs.workers = 3
        prefs.sample_interval_ms = 16
        prefs.sync()

        again = Preferences.from_ini(ini_path)
        assert again.frame_offset == 4
        assert again.encoder_id == "h264_nvenc"
        assert again.workers == 3
        assert again.sample_interval_ms == pytest.approx(16.0)

    def test_zero_frame_offset_allowed(self, ini_path: str) -> None:
        prefs = Preferences.from_ini(ini_path)
        prefs.frame_offset = 0
        assert prefs.frame_offset == 0

    def test_negative_frame_offset_rejected(self, ini_path: str) -> None:
        with pytest.raises(ValueError):
            Preferences.from_ini(ini_path).frame_offset = -1

    def test_non_positive_interval_rejected(self, ini_path: str) -> None:
        with pytest.raises(ValueError):
            Preferences.from_ini(ini_path).sample_interval_ms = 0

    def test_remember_export(self, ini_path: str, tmp_path) -> None:
        prefs = Preferences.from_ini(ini_path)
        prefs.remember_export(str(tmp_path / "exports" / "demo.mp4"))
        assert prefs.last_export_dir == os.path.join(str(tmp_path), "exports")
