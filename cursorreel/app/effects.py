"""Pointer effects — click circles, cursor trail and highlight ring.

Each effect is split in two: a pure function that decides what is
visible at a given time (so decisions can be tested without pixels),
and an OpenCV function that draws it onto a BGR frame.

* Click circles expand from each ``down`` click and fade linearly to
  zero over ``duration``.
* The trail is the last ``length`` cursor positions, one frame apart,
  each ``fadeSpeed`` more transparent than the one before.
* The highlight ring sits under the cursor and pulses ``pulseSpeed``
  times per second for as long as it is enabled.
"""

import bisect
import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import cv2
import numpy as np

from .cursor_renderer import interpolate_cursor
from .models import ClickEvent, CursorKeyframe
from .settings import ClickCirclesConfig, HighlightRingConfig, TrailConfig

MIN_VISIBLE_OPACITY = 0.02
RING_PULSE_AMPLITUDE = 0.15   # fraction of the base radius


@dataclass(frozen=True)
class ClickCircle:
    x: float
    y: float
    radius: float
    opacity: float


@dataclass(frozen=True)
class TrailPoint:
    x: float
    y: float
    opacity: float


@dataclass(frozen=True)
class HighlightRing:
    x: float
    y: float
    radius: float
    opacity: float


# ── Decisions ───────────────────────────────────────────────────────


def click_circles_at(
    downs: Sequence[ClickEvent],
    down_times: Sequence[float],
    time_ms: float,
    cfg: ClickCirclesConfig,
) -> List[ClickCircle]:
    """Circles visible at *time_ms*.  *downs* sorted, *down_times* their timestamps."""
    if not cfg.enabled or cfg.duration <= 0:
        return []
    lo = bisect.bisect_left(down_times, time_ms - cfg.duration)
    hi = bisect.bisect_right(down_times, time_ms)
    circles: List[ClickCircle] = []
    for click in downs[lo:hi]:
        p = (time_ms - click.timestamp) / cfg.duration
        opacity = 1.0 - p
        if opacity < MIN_VISIBLE_OPACITY:
            continue
        circles.append(ClickCircle(
            x=click.x,
            y=click.y,
            radius=cfg.size * (0.3 + 0.7 * p),
            opacity=opacity,
        ))
    return circles


def trail_at(
    keyframes: Sequence[CursorKeyframe],
    time_ms: float,
    cfg: TrailConfig,
    step_ms: float,
) -> List[TrailPoint]:
    """Ghost positions behind the cursor, newest first."""
    if not cfg.enabled or cfg.length <= 0 or not keyframes:
        return []
    keep = 1.0 - max(0.0, min(1.0, cfg.fade_speed))
    points: List[TrailPoint] = []
    for i in range(1, int(cfg.length) + 1):
        t = time_ms - i * step_ms
        if t < 0:
            break
        opacity = keep ** i
        if opacity < MIN_VISIBLE_OPACITY:
            break
        x, y, _ = interpolate_cursor(keyframes, t)
        points.append(TrailPoint(x=x, y=y, opacity=opacity))
    return points


def ring_at(x: float, y: float, time_ms: float, cfg: HighlightRingConfig) -> List[HighlightRing]:
    if not cfg.enabled:
        return []
    phase = math.sin(2.0 * math.pi * cfg.pulse_speed * time_ms / 1000.0)
    return [HighlightRing(
        x=x,
        y=y,
        radius=cfg.size * (1.0 + RING_PULSE_AMPLITUDE * phase),
        opacity=0.55 + 0.25 * phase,
    )]


# ── Drawing ─────────────────────────────────────────────────────────


def _blend_circle(
    frame_bgr: np.ndarray, x: float, y: float, radius: float,
    color: Tuple[int, int, int], thickness: int, opacity: float,
) -> None:
    """Draw a translucent circle by blending only the circle's bounding box."""
    fh, fw = frame_bgr.shape[:2]
    r = int(math.ceil(radius)) + max(thickness, 1) + 1
    cx, cy = int(round(x)), int(round(y))
    x1, y1 = max(0, cx - r), max(0, cy - r)
    x2, y2 = min(fw, cx + r + 1), min(fh, cy + r + 1)
    if x2 <= x1 or y2 <= y1 or radius <= 0:
        return
    roi = frame_bgr[y1:y2, x1:x2]
    overlay = roi.copy()
    cv2.circle(overlay, (cx - x1, cy - y1), int(round(radius)), color, thickness, cv2.LINE_AA)
    np.copyto(roi, cv2.addWeighted(overlay, opacity, roi, 1.0 - opacity, 0))


def draw_click_circles_cv(frame_bgr: np.ndarray, circles: Sequence[ClickCircle],
                          color: Tuple[int, int, int]) -> None:
    for c in circles:
        thickness = max(1, int(round(3.0 * c.opacity)))
        _blend_circle(frame_bgr, c.x, c.y, c.radius, color, thickness, c.opacity)


def draw_trail_cv(frame_bgr: np.ndarray, points: Sequence[TrailPoint],
                  color: Tuple[int, int, int], radius: float) -> None:
    # Oldest first so newer ghosts sit on top
    for p in reversed(points):
        _blend_circle(frame_bgr, p.x, p.y, radius, color, -1, p.opacity)


def draw_rings_cv(frame_bgr: np.ndarray, rings: Sequence[HighlightRing],
                  color: Tuple[int, int, int]) -> None:
    for ring in rings:
        thickness = max(2, int(round(ring.radius * 0.12)))
        _blend_circle(frame_bgr, ring.x, ring.y, ring.radius, color, thickness, ring.opacity)
