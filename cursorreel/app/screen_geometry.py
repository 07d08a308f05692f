"""Screen geometry at capture time — monitor bounds and the recorded region."""

from dataclasses import dataclass
from typing import List, Optional

import mss


@dataclass(frozen=True)
class Region:
    """A rectangle in screen pixels."""
    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @staticmethod
    def from_dict(d: dict) -> "Region":
        return Region(x=d["x"], y=d["y"], width=d["width"], height=d["height"])


@dataclass(frozen=True)
class RecordingGeometry:
    """What was captured: the whole screen, or a crop region of it.

    Telemetry and region are in screen pixels; ``scale_factor`` is the
    display's backing scale and is informational only, because the
    video/screen ratio already folds it in.
    """
    screen_width: float
    screen_height: float
    scale_factor: float = 1.0
    region: Optional[Region] = None

    def to_dict(self) -> dict:
        d = {
            "screenWidth": self.screen_width,
            "screenHeight": self.screen_height,
            "scaleFactor": self.scale_factor,
        }
        if self.region is not None:
            d["region"] = self.region.to_dict()
        return d

    @staticmethod
    def from_dict(d: dict) -> "RecordingGeometry":
        region = Region.from_dict(d["region"]) if d.get("region") else None
        return RecordingGeometry(
            screen_width=d["screenWidth"],
            screen_height=d["screenHeight"],
            scale_factor=d.get("scaleFactor", 1.0),
            region=region,
        )


def get_monitors() -> List[dict]:
    """Return a list of available monitors with dimensions and positions."""
    with mss.mss() as sct:
        monitors: List[dict] = []
        for i, m in enumerate(sct.monitors):
            if i == 0:  # "all monitors" virtual screen
                continue
            monitors.append(
                {
                    "index": i,
                    "name": f"Display {i}  ({m['width']}×{m['height']})",
                    "width": m["width"],
                    "height": m["height"],
                    "left": m["left"],
                    "top": m["top"],
                }
            )
        return monitors


def geometry_for_monitor(
    monitor_index: int = 1,
    region: Optional[Region] = None,
    scale_factor: float = 1.0,
) -> RecordingGeometry:
    """Build a :class:`RecordingGeometry` for an mss monitor index.

    Telemetry reports absolute desktop coordinates, so the monitor's
    origin is folded into the region (a full-monitor capture on a
    secondary display becomes a region at that display's offset).
    """
    monitors = {m["index"]: m for m in get_monitors()}
    if monitor_index not in monitors:
        raise ValueError(f"No monitor with index {monitor_index}")
    mon = monitors[monitor_index]
    if region is None and (mon["left"] or mon["top"]):
        region = Region(mon["left"], mon["top"], mon["width"], mon["height"])
    elif region is not None:
        region = Region(region.x + mon["left"], region.y + mon["top"],
                        region.width, region.height)
    return RecordingGeometry(
        screen_width=mon["width"],
        screen_height=mon["height"],
        scale_factor=scale_factor,
        region=region,
    )
