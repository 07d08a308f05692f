"""Cursor renderer — replays cursor keyframes and draws the cursor on frames.

Position between two keyframes is interpolated (linear unless the
earlier keyframe names an easing); shape is a step function that holds
the earlier keyframe's shape until the next keyframe.  Outside the
keyframe range the nearest endpoint is held.

Glyphs are drawn with OpenCV in a 32x32 design box, one template per
(glyph, pixel size, colour), with a soft drop shadow and a dark
outline.  Each glyph has a hotspot in the same box; the hotspot is the
pixel placed on the interpolated position.
"""

import bisect
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .models import CursorKeyframe, CursorShape


# ── Easing ──────────────────────────────────────────────────────────


def linear(t: float) -> float:
    return t


def ease_in(t: float) -> float:
    """Cubic ease-in: slow start."""
    return t * t * t


def ease_out(t: float) -> float:
    """Cubic ease-out: fast start, gentle arrival."""
    inv = 1.0 - t
    return 1.0 - inv * inv * inv


def ease_in_out(t: float) -> float:
    """Quadratic ease-in-out, symmetric around t=0.5."""
    if t < 0.5:
        return 2.0 * t * t
    return 1.0 - (-2.0 * t + 2.0) ** 2 / 2.0


EASING_FUNCTIONS: Dict[str, Callable[[float], float]] = {
    "linear": linear,
    "easeIn": ease_in,
    "easeOut": ease_out,
    "easeInOut": ease_in_out,
}


# ── Keyframe interpolation ──────────────────────────────────────────


def interpolate_cursor(
    keyframes: Sequence[CursorKeyframe], time_ms: float
) -> Optional[Tuple[float, float, CursorShape]]:
    """Return ``(x, y, shape)`` at *time_ms*, or None if there are no keyframes."""
    if not keyframes:
        return None
    first, last = keyframes[0], keyframes[-1]
    if time_ms <= first.timestamp:
        return first.x, first.y, first.shape
    if time_ms >= last.timestamp:
        return last.x, last.y, last.shape

    # Binary search for the right interval
    lo, hi = 0, len(keyframes) - 1
    while lo < hi - 1:
        mid = (lo + hi) // 2
        if keyframes[mid].timestamp <= time_ms:
            lo = mid
        else:
            hi = mid

    a, b = keyframes[lo], keyframes[hi]
    dt = b.timestamp - a.timestamp
    if dt <= 0:
        return a.x, a.y, a.shape
    t = (time_ms - a.timestamp) / dt
    eased = EASING_FUNCTIONS.get(a.easing or "linear", linear)(t)
    return a.x + (b.x - a.x) * eased, a.y + (b.y - a.y) * eased, a.shape


def is_static(
    keyframes: Sequence[CursorKeyframe],
    time_ms: float,
    window_ms: float = 1000.0,
    threshold_px: float = 2.0,
) -> bool:
    """True if the cursor stayed within *threshold_px* for the last *window_ms*.

    The path is piecewise linear, so checking the window endpoints and
    every keyframe inside the window is exact.
    """
    if not keyframes or time_ms < window_ms:
        return False
    here = interpolate_cursor(keyframes, time_ms)
    then = interpolate_cursor(keyframes, time_ms - window_ms)
    points = [(then[0], then[1])]
    points.extend(
        (k.x, k.y) for k in keyframes
        if time_ms - window_ms < k.timestamp < time_ms
    )
    hx, hy = here[0], here[1]
    return all(math.hypot(px - hx, py - hy) <= threshold_px for px, py in points)


# ── Click press animation ───────────────────────────────────────────

CLICK_ANIMATION_MS = 200.0
CLICK_MIN_SCALE = 0.7


def click_scale(
    down_times: Sequence[float],
    time_ms: float,
    duration: float = CLICK_ANIMATION_MS,
    min_scale: float = CLICK_MIN_SCALE,
) -> float:
    """Cursor scale for the press animation.

    Shrinks to *min_scale* over the first half after a ``down`` (ease
    out) and grows back over the second half (ease in).  *down_times*
    must be sorted.
    """
    idx = bisect.bisect_right(down_times, time_ms) - 1
    if idx < 0:
        return 1.0
    age = time_ms - down_times[idx]
    if age >= duration:
        return 1.0
    p = age / duration
    if p < 0.5:
        return 1.0 - (1.0 - min_scale) * ease_out(p * 2.0)
    return min_scale + (1.0 - min_scale) * ease_in((p - 0.5) * 2.0)


# ── Glyphs ──────────────────────────────────────────────────────────

CURSOR_OUTLINE = (30, 30, 30)        # near-black outline (BGR)
CURSOR_SHADOW_ALPHA = 80             # drop shadow opacity (0-255)
GLYPH_BOX = 32.0                     # design box for glyph coordinates

# Classic arrow, normalized so the full height = 1.0, tip at (0, 0).
_ARROW_POINTS = [
    (0.00, 0.00),    # tip (hotspot)
    (0.00, 1.00),    # left edge bottom
    (0.22, 0.74),    # notch entry
    (0.42, 1.08),    # lower arm
    (0.56, 0.96),    # arm tip
    (0.32, 0.63),    # inner notch
    (0.60, 0.63),    # right wing tip
]

_HAND_POINTS = [
    (8, 8), (9, 6), (11, 6), (12, 8), (12, 14), (21, 15), (23, 17),
    (22, 25), (19, 28), (11, 28), (7, 23), (4, 18), (5, 16), (8, 17),
]

_DOUBLE_ARROW_H = [
    (5, 16), (11, 10), (11, 14), (21, 14), (21, 10), (27, 16),
    (21, 22), (21, 18), (11, 18), (11, 22),
]


def _rotate(points, degrees: float, cx: float = 16.0, cy: float = 16.0):
    rad = math.radians(degrees)
    c, s = math.cos(rad), math.sin(rad)
    return [
        (cx + (x - cx) * c - (y - cy) * s, cy + (x - cx) * s + (y - cy) * c)
        for x, y in points
    ]


@dataclass(frozen=True)
class Glyph:
    """Vector description of a cursor in the 32x32 design box."""
    name: str
    hotspot: Tuple[float, float]
    polygons: Tuple[Tuple[Tuple[float, float], ...], ...] = ()
    strokes: Tuple[Tuple[Tuple[float, float], Tuple[float, float]], ...] = ()
    circles: Tuple[Tuple[float, float, float], ...] = ()  # cx, cy, r (rings)


def _poly(points) -> Tuple[Tuple[float, float], ...]:
    return tuple((float(x), float(y)) for x, y in points)


GLYPHS: Dict[str, Glyph] = {
    "arrow": Glyph("arrow", (10, 7), polygons=(
        _poly((10 + px * 20, 7 + py * 20) for px, py in _ARROW_POINTS),)),
    "pointer": Glyph("pointer", (9, 8), polygons=(_poly(_HAND_POINTS),)),
    "hand": Glyph("hand", (10, 10), polygons=(_poly(_HAND_POINTS),)),
    "ibeam": Glyph("ibeam", (13, 8), strokes=(
        ((13, 8), (13, 24)), ((10, 8), (16, 8)), ((10, 24), (16, 24)))),
    "ibeamvertical": Glyph("ibeamvertical", (8, 16), strokes=(
        ((8, 16), (24, 16)), ((8, 13), (8, 19)), ((24, 13), (24, 19)))),
    "crosshair": Glyph("crosshair", (16, 16), strokes=(
        ((16, 6), (16, 26)), ((6, 16), (26, 16)))),
    "move": Glyph("move", (16, 16), polygons=(
        _poly(_DOUBLE_ARROW_H), _poly(_rotate(_DOUBLE_ARROW_H, 90)))),
    "resize_h": Glyph("resize_h", (16, 16), polygons=(_poly(_DOUBLE_ARROW_H),)),
    "resize_v": Glyph("resize_v", (16, 16), polygons=(_poly(_rotate(_DOUBLE_ARROW_H, 90)),)),
    "resize_nesw": Glyph("resize_nesw", (16, 16), polygons=(_poly(_rotate(_DOUBLE_ARROW_H, -45)),)),
    "resize_nwse": Glyph("resize_nwse", (16, 16), polygons=(_poly(_rotate(_DOUBLE_ARROW_H, 45)),)),
    "notallowed": Glyph("notallowed", (16, 16), strokes=(((10, 10), (22, 22)),),
                        circles=((16, 16, 9),)),
    "magnifier": Glyph("magnifier", (10, 10), strokes=(((18, 18), (26, 26)),),
                       circles=((13, 13, 7),)),
}

# Every CursorShape draws as exactly one glyph.
SHAPE_GLYPHS: Dict[CursorShape, str] = {
    CursorShape.ARROW: "arrow",
    CursorShape.POINTER: "pointer",
    CursorShape.HAND: "hand",
    CursorShape.OPEN_HAND: "hand",
    CursorShape.CLOSED_HAND: "hand",
    CursorShape.CROSSHAIR: "crosshair",
    CursorShape.IBEAM: "ibeam",
    CursorShape.IBEAM_VERTICAL: "ibeamvertical",
    CursorShape.MOVE: "move",
    CursorShape.RESIZE_LEFT: "resize_h",
    CursorShape.RESIZE_RIGHT: "resize_h",
    CursorShape.RESIZE_LEFT_RIGHT: "resize_h",
    CursorShape.RESIZE_UP: "resize_v",
    CursorShape.RESIZE_DOWN: "resize_v",
    CursorShape.RESIZE_UP_DOWN: "resize_v",
    CursorShape.RESIZE: "resize_nwse",
    CursorShape.RESIZE_NORTH_EAST: "resize_nesw",
    CursorShape.RESIZE_SOUTH_WEST: "resize_nesw",
    CursorShape.RESIZE_NORTH_WEST: "resize_nwse",
    CursorShape.RESIZE_SOUTH_EAST: "resize_nwse",
    CursorShape.COPY: "arrow",
    CursorShape.DRAG_COPY: "arrow",
    CursorShape.DRAG_LINK: "arrow",
    CursorShape.HELP: "arrow",
    CursorShape.NOT_ALLOWED: "notallowed",
    CursorShape.CONTEXT_MENU: "arrow",
    CursorShape.POOF: "notallowed",
    CursorShape.SCREENSHOT: "crosshair",
    CursorShape.ZOOM_IN: "magnifier",
    CursorShape.ZOOM_OUT: "magnifier",
}


def glyph_for(shape: CursorShape) -> Glyph:
    return GLYPHS[SHAPE_GLYPHS.get(shape, "arrow")]


# ── OpenCV templates ────────────────────────────────────────────────


@dataclass
class CursorSprite:
    """Pre-rendered cursor: BGR image, alpha mask and hotspot offset in px."""
    bgr: np.ndarray
    alpha: np.ndarray
    hotspot_x: int
    hotspot_y: int


def build_cursor_sprite(glyph: Glyph, height: int,
                        fill_bgr: Tuple[int, int, int] = (255, 255, 255)) -> CursorSprite:
    """Pre-render *glyph* at *height* pixels (height of the design box).

    The image is trimmed to its bounding box; the hotspot is reported
    relative to the trimmed image.
    """
    h = max(int(height), 8)
    k = h / GLYPH_BOX
    shadow_off = max(2, int(h * 0.05))
    pad = shadow_off + 4
    size = h + pad * 2
    canvas = np.zeros((size, size, 4), dtype=np.uint8)

    def pts(points, off: int = 0) -> np.ndarray:
        return np.array(
            [[int(round(x * k)) + pad + off, int(round(y * k)) + pad + off] for x, y in points],
            dtype=np.int32,
        )

    stroke = max(2, int(round(2.2 * k)))
    outline_thick = max(2, int(round(1.6 * k)))

    def paint(off: int, color: tuple, extra: int) -> None:
        for poly in glyph.polygons:
            p = pts(poly, off)
            cv2.fillPoly(canvas, [p], color, cv2.LINE_AA)
            if extra:
                cv2.polylines(canvas, [p], True, color, extra, cv2.LINE_AA)
        for a, b in glyph.strokes:
            p = pts((a, b), off)
            cv2.line(canvas, (int(p[0][0]), int(p[0][1])), (int(p[1][0]), int(p[1][1])), color, stroke + extra, cv2.LINE_AA)
        for cx, cy, r in glyph.circles:
            c = pts(((cx, cy),), off)[0]
            cv2.circle(canvas, (int(c[0]), int(c[1])), int(round(r * k)), color, stroke + extra, cv2.LINE_AA)

    # Drop shadow, blurred
    paint(shadow_off, (0, 0, 0, CURSOR_SHADOW_ALPHA), outline_thick)
    alpha_ch = canvas[:, :, 3].copy()
    blur_k = max(3, int(h * 0.1)) | 1  # must be odd
    canvas[:, :, 3] = cv2.GaussianBlur(alpha_ch, (blur_k, blur_k), 0)

    # Outline, then fill
    paint(0, (*CURSOR_OUTLINE, 255), outline_thick)
    paint(0, (*fill_bgr, 255), 0)

    hx = int(round(glyph.hotspot[0] * k)) + pad
    hy = int(round(glyph.hotspot[1] * k)) + pad

    alpha = canvas[:, :, 3]
    rows = np.any(alpha > 0, axis=1)
    cols = np.any(alpha > 0, axis=0)
    if not rows.any():
        return CursorSprite(np.zeros((1, 1, 3), np.uint8), np.zeros((1, 1), np.uint8), 0, 0)
    rmin, rmax = np.where(rows)[0][[0, -1]]
    cmin, cmax = np.where(cols)[0][[0, -1]]
    cropped = canvas[rmin:rmax + 1, cmin:cmax + 1]
    return CursorSprite(
        bgr=np.ascontiguousarray(cropped[:, :, :3]),
        alpha=np.ascontiguousarray(cropped[:, :, 3]),
        hotspot_x=hx - int(cmin),
        hotspot_y=hy - int(rmin),
    )


class SpriteCache:
    """Memoizes sprites per (glyph, pixel size, colour)."""

    def __init__(self, fill_bgr: Tuple[int, int, int] = (255, 255, 255)) -> None:
        self._fill = fill_bgr
        self._sprites: Dict[Tuple[str, int], CursorSprite] = {}

    def get(self, shape: CursorShape, height: float) -> CursorSprite:
        glyph = glyph_for(shape)
        key = (glyph.name, max(8, int(round(height))))
        sprite = self._sprites.get(key)
        if sprite is None:
            sprite = build_cursor_sprite(glyph, key[1], self._fill)
            self._sprites[key] = sprite
        return sprite

    def __len__(self) -> int:
        return len(self._sprites)


def blend_sprite(frame_bgr: np.ndarray, bgr: np.ndarray, alpha: np.ndarray,
                 x1: int, y1: int, opacity: float = 1.0) -> None:
    """Alpha-blend an image onto *frame_bgr* in-place with its top-left at (x1, y1)."""
    fh, fw = frame_bgr.shape[:2]
    ch, cw = bgr.shape[:2]
    x2, y2 = x1 + cw, y1 + ch

    # Clip to frame
    src_x1 = max(0, -x1)
    src_y1 = max(0, -y1)
    x1 = max(0, x1)
    y1 = max(0, y1)
    x2 = min(fw, x2)
    y2 = min(fh, y2)
    if x2 <= x1 or y2 <= y1:
        return
    src_x2 = src_x1 + (x2 - x1)
    src_y2 = src_y1 + (y2 - y1)

    roi = frame_bgr[y1:y2, x1:x2]
    c_roi = bgr[src_y1:src_y2, src_x1:src_x2]
    a_roi = alpha[src_y1:src_y2, src_x1:src_x2]

    a = a_roi[:, :, np.newaxis].astype(np.float32) * (opacity / 255.0)
    blended = c_roi.astype(np.float32) * a + roi.astype(np.float32) * (1 - a)
    np.copyto(roi, blended.astype(np.uint8))


def draw_cursor_cv(frame_bgr: np.ndarray, sprite: CursorSprite, x: float, y: float,
                   opacity: float = 1.0) -> None:
    """Draw *sprite* with its hotspot on (x, y), in-place."""
    blend_sprite(
        frame_bgr, sprite.bgr, sprite.alpha,
        int(round(x)) - sprite.hotspot_x,
        int(round(y)) - sprite.hotspot_y,
        opacity,
    )


def down_click_times(clicks) -> List[float]:
    """Sorted timestamps of ``down`` edges, for :func:`click_scale`."""
    return sorted(c.timestamp for c in clicks if c.action == "down")
