"""Compositor — decides, per output frame, what gets drawn and where.

:meth:`TimelineCompositor.decide` turns a query time into a
:class:`FrameDecision` (cursor, camera, pointer effects) without
touching pixels.  :meth:`TimelineCompositor.render` applies a decision
to a source frame: effects and cursor are drawn in video space, then
the camera crop is scaled to the output size.

Query times are clamped to ``[0, duration]``.  Decisions are
deterministic for a given metadata + configuration; the only state is
the zoom camera, which requires forward-moving queries (see
:mod:`app.zoom_engine`).
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import cv2
import numpy as np

from .activity_analyzer import AutoZoomStrategy, ClickClusterAutoZoom
from .cursor_renderer import (
    SpriteCache,
    click_scale,
    down_click_times,
    draw_cursor_cv,
    interpolate_cursor,
    is_static,
)
from .effects import (
    ClickCircle,
    HighlightRing,
    TrailPoint,
    click_circles_at,
    draw_click_circles_cv,
    draw_rings_cv,
    draw_trail_cv,
    ring_at,
    trail_at,
)
from .errors import CompositingError
from .models import CursorShape, RecordingMetadata
from .settings import CursorConfig, MouseEffectsConfig, ZoomConfig, hex_to_bgr
from .zoom_engine import CameraSnapshot, CameraView, ZoomEngine

logger = logging.getLogger(__name__)

SMOOTHING_WINDOW_MS = 100.0   # lag at smoothing = 1.0
SMOOTHING_TAPS = 5
TRAIL_RADIUS_FRACTION = 0.18  # trail dot radius relative to cursor size


@dataclass(frozen=True)
class CursorState:
    x: float
    y: float
    shape: CursorShape
    scale: float
    visible: bool


@dataclass(frozen=True)
class FrameDecision:
    """Everything the renderer needs for one frame."""
    time_ms: float
    cursor: CursorState
    camera: CameraView
    click_circles: List[ClickCircle] = field(default_factory=list)
    trail: List[TrailPoint] = field(default_factory=list)
    rings: List[HighlightRing] = field(default_factory=list)


class TimelineCompositor:
    """Replays one recording's timeline.

    Explicit *cursor_config* / *zoom_config* / *effects* override the
    ones stored in the metadata.  A missing zoom or effects config is
    replaced by a disabled default (and logged).
    """

    def __init__(
        self,
        metadata: RecordingMetadata,
        cursor_config: Optional[CursorConfig] = None,
        zoom_config: Optional[ZoomConfig] = None,
        effects: Optional[MouseEffectsConfig] = None,
        auto_zoom: Optional[AutoZoomStrategy] = None,
    ) -> None:
        video = metadata.video
        if video.duration is None or video.duration <= 0:
            raise CompositingError(f"Video duration must be positive, got {video.duration} ({video.path})")
        if video.frame_rate is None or video.frame_rate <= 0:
            raise CompositingError(f"Video frame rate must be positive, got {video.frame_rate} ({video.path})")
        if not metadata.cursor.keyframes:
            raise CompositingError(f"No cursor keyframes in timeline for {video.path}")

        self.metadata = metadata
        self.video = video
        self.duration = float(video.duration)
        self.step_ms = 1000.0 / video.frame_rate
        self.keyframes = sorted(metadata.cursor.keyframes, key=lambda k: k.timestamp)

        self.cursor_config = cursor_config or metadata.cursor.config

        zoom_cfg = zoom_config or metadata.zoom.config
        if zoom_cfg is None:
            logger.warning("No zoom config; zoom disabled for this export")
            zoom_cfg = ZoomConfig.disabled()
        self.zoom_config = zoom_cfg

        fx = effects or metadata.effects
        if fx is None:
            logger.info("No mouse effects config; effects disabled for this export")
            fx = MouseEffectsConfig()
        self.effects = fx

        sections = list(metadata.zoom.sections or [])
        if zoom_cfg.enabled and zoom_cfg.auto_zoom and not sections:
            strategy = auto_zoom or ClickClusterAutoZoom()
            sections = strategy.suggest(metadata.clicks, video, zoom_cfg)
        self.zoom = ZoomEngine(
            sections, zoom_cfg, video.width, video.height,
            cursor_at=self._cursor_xy, step_ms=self.step_ms,
        )

        self._downs = sorted(
            (c for c in metadata.clicks if c.action == "down"), key=lambda c: c.timestamp
        )
        self._down_times = down_click_times(metadata.clicks)

        forced = self.cursor_config.shape
        self._forced_shape = (
            CursorShape.from_icon(forced) if forced and forced != "auto" else None
        )
        self._sprites = SpriteCache(hex_to_bgr(self.cursor_config.color))
        self._circle_bgr = hex_to_bgr(self.effects.click_circles.color)
        self._trail_bgr = hex_to_bgr(self.effects.trail.color)
        self._ring_bgr = hex_to_bgr(self.effects.highlight_ring.color)

    # ── time ────────────────────────────────────────────────────────

    def clamp_time(self, time_ms: float) -> float:
        return max(0.0, min(self.duration, time_ms))

    def frame_time(self, index: int) -> float:
        """Query time of output frame *index* (not clamped)."""
        return index * self.step_ms

    @property
    def frame_count(self) -> int:
        # Frames at 0, step, ..., duration inclusive
        return int(self.duration * self.video.frame_rate / 1000.0 + 1e-6) + 1

    # ── camera state (chunk boundaries) ─────────────────────────────

    def snapshot(self) -> CameraSnapshot:
        return self.zoom.snapshot()

    def restore(self, snap: CameraSnapshot) -> None:
        self.zoom.restore(snap)

    def warm_up(self, start_ms: float) -> None:
        """Prepare the camera to render from *start_ms* as if from the beginning."""
        self.zoom.warm_up(self.clamp_time(start_ms))

    # ── decisions ───────────────────────────────────────────────────

    def _cursor_xy(self, time_ms: float) -> Tuple[float, float]:
        smoothing = max(0.0, min(1.0, self.cursor_config.smoothing))
        if smoothing <= 0:
            x, y, _ = interpolate_cursor(self.keyframes, time_ms)
            return x, y
        lag = SMOOTHING_WINDOW_MS * smoothing
        sx = sy = 0.0
        for i in range(SMOOTHING_TAPS):
            x, y, _ = interpolate_cursor(
                self.keyframes, max(0.0, time_ms - lag * i / (SMOOTHING_TAPS - 1))
            )
            sx += x
            sy += y
        return sx / SMOOTHING_TAPS, sy / SMOOTHING_TAPS

    def cursor_at(self, time_ms: float) -> CursorState:
        t = self.clamp_time(time_ms)
        _, _, shape = interpolate_cursor(self.keyframes, t)
        x, y = self._cursor_xy(t)
        scale = click_scale(self._down_times, t) if self.cursor_config.click_animation else 1.0
        visible = not (self.cursor_config.hide_when_static and is_static(self.keyframes, t))
        return CursorState(
            x=x,
            y=y,
            shape=self._forced_shape or shape,
            scale=scale,
            visible=visible,
        )

    def decide(self, time_ms: float) -> FrameDecision:
        t = self.clamp_time(time_ms)
        cursor = self.cursor_at(t)
        camera = self.zoom.compute_at(t)
        fx = self.effects
        return FrameDecision(
            time_ms=t,
            cursor=cursor,
            camera=camera,
            click_circles=click_circles_at(self._downs, self._down_times, t, fx.click_circles),
            trail=trail_at(self.keyframes, t, fx.trail, self.step_ms) if cursor.visible else [],
            rings=ring_at(cursor.x, cursor.y, t, fx.highlight_ring) if cursor.visible else [],
        )

    # ── pixels ──────────────────────────────────────────────────────

    def render(self, frame_bgr: np.ndarray, decision: FrameDecision,
               out_size: Optional[Tuple[int, int]] = None) -> np.ndarray:
        """Draw *decision* onto *frame_bgr* (in-place) and return the output frame.

        *frame_bgr* must be in video pixel space (``video.width`` x
        ``video.height``); it is resized first if the decoder disagrees.
        """
        vw, vh = self.video.width, self.video.height
        if frame_bgr.shape[1] != vw or frame_bgr.shape[0] != vh:
            frame_bgr = cv2.resize(frame_bgr, (vw, vh), interpolation=cv2.INTER_AREA)

        cur = decision.cursor
        draw_rings_cv(frame_bgr, decision.rings, self._ring_bgr)
        if decision.trail:
            radius = max(2.0, self.cursor_config.size * TRAIL_RADIUS_FRACTION)
            draw_trail_cv(frame_bgr, decision.trail, self._trail_bgr, radius)
        draw_click_circles_cv(frame_bgr, decision.click_circles, self._circle_bgr)
        if cur.visible:
            sprite = self._sprites.get(cur.shape, self.cursor_config.size * cur.scale)
            draw_cursor_cv(frame_bgr, sprite, cur.x, cur.y)

        out_w, out_h = out_size or (vw, vh)
        cam = decision.camera
        if cam.is_identity and (out_w, out_h) == (vw, vh):
            return frame_bgr

        x, y, cw, ch = cam.crop
        x1, y1 = int(round(x)), int(round(y))
        x2 = min(vw, max(x1 + 1, int(round(x + cw))))
        y2 = min(vh, max(y1 + 1, int(round(y + ch))))
        cropped = frame_bgr[y1:y2, x1:x2]
        interp = cv2.INTER_LANCZOS4 if not cam.is_identity else cv2.INTER_AREA
        return cv2.resize(cropped, (out_w, out_h), interpolation=interp)
