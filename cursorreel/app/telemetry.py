"""Pointer telemetry sources.

A telemetry source answers one question per poll: where is the pointer,
which buttons are held, and what does the cursor look like.  The
sampling loop only depends on the :class:`TelemetrySource` protocol;
:class:`Win32TelemetrySource` is the built-in implementation.

Coordinates come from ``GetCursorPos`` in **physical pixels** (not
DPI-scaled) so they match what mss and the capture encoder see.
"""

import logging
import sys
from dataclasses import dataclass, field
from typing import Dict, Protocol

from .models import ButtonState

logger = logging.getLogger(__name__)

if sys.platform == "win32":
    import ctypes
    import ctypes.wintypes as wintypes


@dataclass(frozen=True)
class TelemetrySnapshot:
    x: float
    y: float
    buttons: ButtonState = field(default_factory=ButtonState)
    cursor_icon: str = "arrow"


class TelemetrySource(Protocol):
    """Contract for anything the sampling loop can poll.

    ``get_snapshot()`` may raise; the caller logs and skips that cycle.
    """

    def start(self) -> None: ...

    def stop(self) -> None: ...

    def get_snapshot(self) -> TelemetrySnapshot: ...


# ── Win32 implementation ────────────────────────────────────────────

VK_LBUTTON = 0x01
VK_RBUTTON = 0x02
VK_MBUTTON = 0x04
CURSOR_SHOWING = 0x00000001

# IDC_* resource ids → cursor icon names understood by CursorShape
_IDC_NAMES: Dict[int, str] = {
    32512: "arrow",           # IDC_ARROW
    32513: "ibeam",           # IDC_IBEAM
    32514: "arrow",           # IDC_WAIT
    32515: "crosshair",       # IDC_CROSS
    32516: "resizeup",        # IDC_UPARROW
    32642: "resizenorthwest", # IDC_SIZENWSE
    32643: "resizenortheast", # IDC_SIZENESW
    32644: "resizeleftright", # IDC_SIZEWE
    32645: "resizeupdown",    # IDC_SIZENS
    32646: "move",            # IDC_SIZEALL
    32648: "notallowed",      # IDC_NO
    32649: "pointer",         # IDC_HAND
    32650: "arrow",           # IDC_APPSTARTING
    32651: "help",            # IDC_HELP
}

if sys.platform == "win32":
    class CURSORINFO(ctypes.Structure):
        _fields_ = [
            ("cbSize", wintypes.DWORD),
            ("flags", wintypes.DWORD),
            ("hCursor", wintypes.HANDLE),
            ("ptScreenPos", wintypes.POINT),
        ]


class Win32TelemetrySource:
    """Polls cursor position, button state and cursor icon via user32."""

    def __init__(self) -> None:
        if sys.platform != "win32":
            raise RuntimeError("Win32TelemetrySource requires Windows")
        self._user32 = ctypes.windll.user32
        self._handle_names: Dict[int, str] = {}

    def start(self) -> None:
        # Shared system cursors have stable handles; resolve them once.
        self._handle_names.clear()
        for idc, name in _IDC_NAMES.items():
            handle = self._user32.LoadCursorW(None, ctypes.c_void_p(idc))
            if handle:
                self._handle_names.setdefault(int(handle), name)
        logger.info("Win32 telemetry started (%d cursor handles resolved)",
                    len(self._handle_names))

    def stop(self) -> None:
        self._handle_names.clear()

    def _button_down(self, vk: int) -> bool:
        return bool(self._user32.GetAsyncKeyState(vk) & 0x8000)

    def _cursor_icon(self) -> str:
        info = CURSORINFO()
        info.cbSize = ctypes.sizeof(CURSORINFO)
        if not self._user32.GetCursorInfo(ctypes.byref(info)):
            return "arrow"
        if not info.flags & CURSOR_SHOWING or not info.hCursor:
            return "arrow"
        return self._handle_names.get(int(info.hCursor), "arrow")

    def get_snapshot(self) -> TelemetrySnapshot:
        pt = wintypes.POINT()
        if not self._user32.GetCursorPos(ctypes.byref(pt)):
            raise OSError("GetCursorPos failed")
        buttons = ButtonState(
            left=self._button_down(VK_LBUTTON),
            right=self._button_down(VK_RBUTTON),
            middle=self._button_down(VK_MBUTTON),
        )
        return TelemetrySnapshot(
            x=float(pt.x),
            y=float(pt.y),
            buttons=buttons,
            cursor_icon=self._cursor_icon(),
        )


def default_telemetry_source() -> TelemetrySource:
    """Return the platform telemetry source."""
    if sys.platform == "win32":
        return Win32TelemetrySource()
    raise RuntimeError(f"No telemetry source available for platform {sys.platform!r}")
