"""Core data models for CursorReel.

Two families live here:

* **Raw capture data** (:class:`RawSample`, :class:`MoveEvent`,
  :class:`ButtonEvent`) — owned by one sampling session, in screen
  pixels, discarded once the timeline has been synthesized.
* **Persisted timeline** (:class:`RecordingMetadata` and its parts) —
  written once per recording as JSON beside the video and consumed
  read-only by the compositor.  All positions are in **video pixels**.

Timeline models support ``to_dict()`` / ``from_dict()`` with camelCase
keys; the aggregate adds ``to_json()`` / ``from_json()``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union
import json
import time

from .settings import CursorConfig, ZoomConfig, MouseEffectsConfig


METADATA_VERSION = "1.0.0"

BUTTONS = ("left", "right", "middle")
EDGE_DOWN = "down"
EDGE_UP = "up"

EASINGS = ("linear", "easeIn", "easeOut", "easeInOut")


# ── Cursor shapes ───────────────────────────────────────────────────


class CursorShape(str, Enum):
    """Every cursor icon name the telemetry source can report."""

    ARROW = "arrow"
    POINTER = "pointer"
    HAND = "hand"
    OPEN_HAND = "openhand"
    CLOSED_HAND = "closedhand"
    CROSSHAIR = "crosshair"
    IBEAM = "ibeam"
    IBEAM_VERTICAL = "ibeamvertical"
    MOVE = "move"
    RESIZE_LEFT = "resizeleft"
    RESIZE_RIGHT = "resizeright"
    RESIZE_LEFT_RIGHT = "resizeleftright"
    RESIZE_UP = "resizeup"
    RESIZE_DOWN = "resizedown"
    RESIZE_UP_DOWN = "resizeupdown"
    RESIZE = "resize"
    RESIZE_NORTH_EAST = "resizenortheast"
    RESIZE_SOUTH_WEST = "resizesouthwest"
    RESIZE_NORTH_WEST = "resizenorthwest"
    RESIZE_SOUTH_EAST = "resizesoutheast"
    COPY = "copy"
    DRAG_COPY = "dragcopy"
    DRAG_LINK = "draglink"
    HELP = "help"
    NOT_ALLOWED = "notallowed"
    CONTEXT_MENU = "contextmenu"
    POOF = "poof"
    SCREENSHOT = "screenshot"
    ZOOM_IN = "zoomin"
    ZOOM_OUT = "zoomout"

    @classmethod
    def from_icon(cls, name: Optional[str]) -> "CursorShape":
        """Total mapping from a reported icon name; unknown names become ARROW."""
        if not name:
            return cls.ARROW
        key = name.strip().lower().replace("_", "").replace("-", "")
        try:
            return cls(key)
        except ValueError:
            return cls.ARROW


# ── Raw capture data ────────────────────────────────────────────────


@dataclass(frozen=True)
class ButtonState:
    left: bool = False
    right: bool = False
    middle: bool = False

    def get(self, button: str) -> bool:
        return getattr(self, button)


@dataclass(frozen=True)
class RawSample:
    """One telemetry poll.  Coordinates are in screen pixels."""
    elapsed_ms: float
    x: float
    y: float
    buttons: ButtonState
    cursor_icon: str = "arrow"


@dataclass(frozen=True)
class MoveEvent:
    """Emitted for every sample, whether or not the pointer moved."""
    elapsed_ms: float
    x: float
    y: float
    cursor_icon: str = "arrow"


@dataclass(frozen=True)
class ButtonEvent:
    """A button changed state between two consecutive samples."""
    elapsed_ms: float
    x: float
    y: float
    button: str
    edge: str  # "down" | "up"
    cursor_icon: str = "arrow"


RawEvent = Union[MoveEvent, ButtonEvent]


# ── Persisted timeline ──────────────────────────────────────────────


@dataclass
class CursorKeyframe:
    """Cursor position and shape at a point in time (video pixels)."""
    timestamp: float  # ms since video start
    x: float
    y: float
    shape: CursorShape = CursorShape.ARROW
    easing: Optional[str] = None  # easing of the segment starting here

    def to_dict(self) -> dict:
        d = {"timestamp": self.timestamp, "x": self.x, "y": self.y, "shape": self.shape.value}
        if self.easing:
            d["easing"] = self.easing
        return d

    @staticmethod
    def from_dict(d: dict) -> "CursorKeyframe":
        easing = d.get("easing")
        if easing is not None and easing not in EASINGS:
            raise ValueError(f"Unknown easing {easing!r}")
        return CursorKeyframe(
            timestamp=d["timestamp"],
            x=d["x"],
            y=d["y"],
            shape=CursorShape.from_icon(d.get("shape")),
            easing=easing,
        )


@dataclass
class ClickEvent:
    """A button edge on the video timeline (video pixels)."""
    timestamp: float  # ms since video start
    x: float
    y: float
    button: str = "left"
    action: str = EDGE_DOWN

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "x": self.x,
            "y": self.y,
            "button": self.button,
            "action": self.action,
        }

    @staticmethod
    def from_dict(d: dict) -> "ClickEvent":
        return ClickEvent(
            timestamp=d["timestamp"],
            x=d["x"],
            y=d["y"],
            button=d.get("button", "left"),
            action=d.get("action", EDGE_DOWN),
        )


@dataclass
class ZoomSection:
    """A time range during which the camera zooms to a target."""
    start_time: float  # ms
    end_time: float    # ms
    target_x: float    # video pixels
    target_y: float
    level: float = 2.0

    def contains(self, time_ms: float) -> bool:
        return self.start_time <= time_ms <= self.end_time

    def to_dict(self) -> dict:
        return {
            "startTime": self.start_time,
            "endTime": self.end_time,
            "targetX": self.target_x,
            "targetY": self.target_y,
            "level": self.level,
        }

    @staticmethod
    def from_dict(d: dict) -> "ZoomSection":
        return ZoomSection(
            start_time=d["startTime"],
            end_time=d["endTime"],
            target_x=d["targetX"],
            target_y=d["targetY"],
            level=d.get("level", 2.0),
        )


@dataclass
class VideoInfo:
    """Geometry and timing of the recorded video.  ``duration`` is authoritative."""
    path: str
    width: int
    height: int
    frame_rate: float
    duration: float  # ms

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "width": self.width,
            "height": self.height,
            "frameRate": self.frame_rate,
            "duration": self.duration,
        }

    @staticmethod
    def from_dict(d: dict) -> "VideoInfo":
        return VideoInfo(
            path=d.get("path", ""),
            width=d["width"],
            height=d["height"],
            frame_rate=d["frameRate"],
            duration=d["duration"],
        )


@dataclass
class CursorTrack:
    keyframes: List[CursorKeyframe] = field(default_factory=list)
    config: CursorConfig = field(default_factory=CursorConfig)

    def to_dict(self) -> dict:
        return {
            "keyframes": [k.to_dict() for k in self.keyframes],
            "config": self.config.to_dict(),
        }

    @staticmethod
    def from_dict(d: dict) -> "CursorTrack":
        return CursorTrack(
            keyframes=[CursorKeyframe.from_dict(k) for k in d.get("keyframes", [])],
            config=CursorConfig.from_dict(d.get("config", {})),
        )


@dataclass
class ZoomTrack:
    """Zoom sections plus the zoom config they were authored with.

    ``config`` is ``None`` when the saved timeline carries none; the
    compositor then renders with zoom disabled.
    """

    sections: List[ZoomSection] = field(default_factory=list)
    config: Optional[ZoomConfig] = field(default_factory=ZoomConfig)

    def to_dict(self) -> dict:
        data: dict = {"sections": [s.to_dict() for s in self.sections]}
        if self.config is not None:
            data["config"] = self.config.to_dict()
        return data

    @staticmethod
    def from_dict(d: dict) -> "ZoomTrack":
        config = None
        if d.get("config") is not None:
            config = ZoomConfig.from_dict(d["config"])
        return ZoomTrack(
            sections=[ZoomSection.from_dict(s) for s in d.get("sections") or []],
            config=config,
        )


@dataclass
class RecordingMetadata:
    """Aggregate root of a synthesized recording.

    ``applied_offset_ms`` records the cursor frame offset applied when
    the file was loaded.  It is never serialized; the persistence layer
    strips it before writing so the offset cannot accumulate.
    """

    video: VideoInfo
    cursor: CursorTrack
    zoom: ZoomTrack
    clicks: List[ClickEvent] = field(default_factory=list)
    effects: Optional[MouseEffectsConfig] = None
    created_at: float = field(default_factory=lambda: time.time() * 1000)
    version: str = METADATA_VERSION
    applied_offset_ms: float = field(default=0.0, compare=False, repr=False)

    def to_dict(self) -> dict:
        data = {
            "version": self.version,
            "video": self.video.to_dict(),
            "cursor": self.cursor.to_dict(),
            "zoom": self.zoom.to_dict(),
            "clicks": [c.to_dict() for c in self.clicks],
            "createdAt": self.created_at,
        }
        if self.effects is not None:
            data["effects"] = self.effects.to_dict()
        return data

    @staticmethod
    def from_dict(d: dict) -> "RecordingMetadata":
        effects = None
        if d.get("effects") is not None:
            effects = MouseEffectsConfig.from_dict(d["effects"])
        return RecordingMetadata(
            version=d.get("version", METADATA_VERSION),
            video=VideoInfo.from_dict(d["video"]),
            cursor=CursorTrack.from_dict(d.get("cursor", {})),
            zoom=ZoomTrack.from_dict(d.get("zoom", {})),
            clicks=[ClickEvent.from_dict(c) for c in d.get("clicks", [])],
            effects=effects,
            created_at=d.get("createdAt", 0.0),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @staticmethod
    def from_json(s: str) -> "RecordingMetadata":
        return RecordingMetadata.from_dict(json.loads(s))


DEFAULT_FRAME_RATE = 30
DEFAULT_SAMPLE_INTERVAL_MS = 8
