"""Tests for app.screen_geometry with mss patched out."""

from unittest.mock import MagicMock, patch

import pytest

from app.screen_geometry import (
    RecordingGeometry,
    Region,
    geometry_for_monitor,
    get_monitors,
)


def _fake_mss(monitors):
    sct = MagicMock()
    sct.monitors = monitors
    ctx = MagicMock()
    ctx.__enter__.return_value = sct
    ctx.__exit__.return_value = False
    return ctx


_MONITORS = [
    {"left": 0, "top": 0, "width": 4480, "height": 1440},
    {"left": 0, "top": 0, "width": 2560, "height": 1440},
    {"left": 2560, "top": 0, "width": 1920, "height": 1080},
]


class TestGetMonitors:
    @patch("app.screen_geometry.mss.mss")
    def test_skips_virtual_screen(self, mock_mss) -> None:
        mock_mss.return_value = _fake_mss(_MONITORS)
        monitors = get_monitors()
        assert [m["index"] for m in monitors] == [1, 2]
        assert monitors[1]["left"] == 2560


class TestGeometryForMonitor:
    @patch("app.screen_geometry.mss.mss")
    def test_primary_full_screen(self, mock_mss) -> None:
        mock_mss.return_value = _fake_mss(_MONITORS)
        g = geometry_for_monitor(1)
        assert g == RecordingGeometry(screen_width=2560, screen_height=1440)

    @patch("app.screen_geometry.mss.mss")
    def test_secondary_becomes_region(self, mock_mss) -> None:
        mock_mss.return_value = _fake_mss(_MONITORS)
        g = geometry_for_monitor(2, scale_factor=2.0)
        assert g.region == Region(2560, 0, 1920, 1080)
        assert g.scale_factor == 2.0

    @patch("app.screen_geometry.mss.mss")
    def test_region_offset_by_monitor_origin(self, mock_mss) -> None:
        mock_mss.return_value = _fake_mss(_MONITORS)
        g = geometry_for_monitor(2, region=Region(100, 50, 800, 600))
        assert g.region == Region(2660, 50, 800, 600)

    @patch("app.screen_geometry.mss.mss")
    def test_unknown_monitor(self, mock_mss) -> None:
        mock_mss.return_value = _fake_mss(_MONITORS)
        with pytest.raises(ValueError):
            geometry_for_monitor(7)


class TestSerialization:
    def test_roundtrip_with_region(self) -> None:
        g = RecordingGeometry(1440, 900, scale_factor=2.0, region=Region(1, 2, 3, 4))
        assert RecordingGeometry.from_dict(g.to_dict()) == g

    def test_region_omitted(self) -> None:
        assert "region" not in RecordingGeometry(800, 600).to_dict()
