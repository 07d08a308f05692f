"""User preferences persisted with ``QSettings``.

Holds machine-level choices that are not part of any one recording:
the cursor frame offset, preferred encoder, worker count, sampling
interval and the last export directory.
"""

import os
from typing import Optional

from PySide6.QtCore import QSettings

from .clock import DEFAULT_CURSOR_FRAME_OFFSET
from .models import DEFAULT_SAMPLE_INTERVAL_MS

ORGANIZATION = "CursorReel"
APPLICATION = "CursorReel"


class Preferences:
    """Typed accessors over a ``QSettings`` store.

    Pass *settings* to use a specific store (tests use an INI file);
    otherwise the platform's native per-user location is used.
    """

    def __init__(self, settings: Optional[QSettings] = None) -> None:
        self._settings = settings or QSettings(ORGANIZATION, APPLICATION)

    @staticmethod
    def from_ini(path: str) -> "Preferences":
        return Preferences(QSettings(path, QSettings.Format.IniFormat))

    def sync(self) -> None:
        self._settings.sync()

    # ── values ──────────────────────────────────────────────────────

    @property
    def frame_offset(self) -> int:
        value = self._settings.value("cursorFrameOffset", DEFAULT_CURSOR_FRAME_OFFSET, type=int)
        return max(0, value)

    @frame_offset.setter
    def frame_offset(self, frames: int) -> None:
        if frames < 0:
            raise ValueError(f"frame offset must be >= 0, got {frames}")
        self._settings.setValue("cursorFrameOffset", int(frames))

    @property
    def encoder_id(self) -> str:
        return self._settings.value("encoderId", "", type=str)

    @encoder_id.setter
    def encoder_id(self, enc_id: str) -> None:
        self._settings.setValue("encoderId", enc_id)

    @property
    def workers(self) -> int:
        return self._settings.value("exportWorkers", 0, type=int)

    @workers.setter
    def workers(self, n: int) -> None:
        self._settings.setValue("exportWorkers", max(0, int(n)))

    @property
    def sample_interval_ms(self) -> float:
        return self._settings.value("sampleIntervalMs", float(DEFAULT_SAMPLE_INTERVAL_MS), type=float)

    @sample_interval_ms.setter
    def sample_interval_ms(self, ms: float) -> None:
        if ms <= 0:
            raise ValueError(f"sample interval must be positive, got {ms}")
        self._settings.setValue("sampleIntervalMs", float(ms))

    @property
    def last_export_dir(self) -> str:
        return self._settings.value("lastExportDir", "", type=str)

    def remember_export(self, output_path: str) -> None:
        self._settings.setValue("lastExportDir", os.path.dirname(os.path.abspath(output_path)))
