"""Timeline synthesis — raw telemetry events to a keyframe timeline.

The sampler records a move on every poll, so a recording holds tens of
thousands of near-identical samples.  Synthesis keeps only what the
compositor needs:

* a start keyframe at ``t=0``,
* one keyframe per cursor-shape transition,
* a terminal keyframe at the video duration.

Position between keyframes is interpolated by the compositor.  Clicks
are carried through one-to-one.  All coordinates leave this module in
video pixel space; :class:`CoordinateTransform` is the only place that
conversion happens.
"""

import logging
import time
from typing import List, Optional, Sequence, Tuple

from .errors import SynthesisError
from .models import (
    ButtonEvent,
    ClickEvent,
    CursorKeyframe,
    CursorShape,
    CursorTrack,
    MoveEvent,
    RawEvent,
    RecordingMetadata,
    VideoInfo,
    ZoomTrack,
)
from .screen_geometry import RecordingGeometry
from .settings import CursorConfig, MouseEffectsConfig, ZoomConfig

logger = logging.getLogger(__name__)

# Consecutive moves further apart than this mean the sampler stalled.
GAP_WARNING_MS = 100.0


class CoordinateTransform:
    """Maps screen-pixel telemetry into video-pixel space.

    With a crop region the region origin is subtracted and the region is
    stretched to the video; otherwise the whole screen is.  Results are
    clamped into ``[0, width] x [0, height]``.
    """

    def __init__(self, video: VideoInfo, geometry: RecordingGeometry) -> None:
        self._w = float(video.width)
        self._h = float(video.height)
        region = geometry.region
        if region is not None:
            if region.width <= 0 or region.height <= 0:
                raise SynthesisError(f"Invalid crop region {region}")
            self._ox, self._oy = float(region.x), float(region.y)
            src_w, src_h = float(region.width), float(region.height)
        else:
            if geometry.screen_width <= 0 or geometry.screen_height <= 0:
                raise SynthesisError(
                    f"Invalid screen size {geometry.screen_width}x{geometry.screen_height}"
                )
            self._ox = self._oy = 0.0
            src_w, src_h = float(geometry.screen_width), float(geometry.screen_height)
        self._sx = self._w / src_w
        self._sy = self._h / src_h

    @property
    def scale(self) -> Tuple[float, float]:
        return self._sx, self._sy

    def apply(self, x: float, y: float) -> Tuple[float, float]:
        vx = (x - self._ox) * self._sx
        vy = (y - self._oy) * self._sy
        return max(0.0, min(self._w, vx)), max(0.0, min(self._h, vy))


def _validate_video(video: VideoInfo) -> None:
    if video.width <= 0 or video.height <= 0:
        raise SynthesisError(f"Invalid video dimensions {video.width}x{video.height} ({video.path})")
    if video.frame_rate <= 0:
        raise SynthesisError(f"Invalid frame rate {video.frame_rate} ({video.path})")
    if video.duration is None or video.duration <= 0:
        raise SynthesisError(f"Invalid video duration {video.duration} ({video.path})")


def build_keyframes(
    moves: Sequence[MoveEvent],
    transform: CoordinateTransform,
    duration: float,
) -> List[CursorKeyframe]:
    """Reduce move events to start, shape-transition and terminal keyframes."""
    clamped = 0

    def clamp_t(t: float) -> float:
        nonlocal clamped
        if t < 0 or t > duration:
            clamped += 1
            return max(0.0, min(duration, t))
        return t

    first = moves[0]
    fx, fy = transform.apply(first.x, first.y)
    keyframes = [CursorKeyframe(timestamp=0.0, x=fx, y=fy,
                                shape=CursorShape.from_icon(first.cursor_icon))]

    for move in moves[1:]:
        shape = CursorShape.from_icon(move.cursor_icon)
        if shape == keyframes[-1].shape:
            continue
        t = clamp_t(move.elapsed_ms)
        x, y = transform.apply(move.x, move.y)
        if t <= keyframes[-1].timestamp:
            # Transition landed on the previous keyframe's instant
            keyframes[-1] = CursorKeyframe(timestamp=keyframes[-1].timestamp, x=x, y=y, shape=shape)
        else:
            keyframes.append(CursorKeyframe(timestamp=t, x=x, y=y, shape=shape))

    last = moves[-1]
    lx, ly = transform.apply(last.x, last.y)
    last_shape = CursorShape.from_icon(last.cursor_icon)
    prev = keyframes[-1]
    moved = (lx, ly) != (prev.x, prev.y)
    if duration > prev.timestamp and (duration > last.elapsed_ms or moved):
        keyframes.append(CursorKeyframe(timestamp=duration, x=lx, y=ly, shape=last_shape))

    if clamped:
        logger.warning("%d keyframe timestamp(s) outside [0, %.0f]ms were clamped", clamped, duration)
    return keyframes


def _log_gaps(moves: Sequence[MoveEvent]) -> None:
    gaps = 0
    worst = 0.0
    for a, b in zip(moves, moves[1:]):
        dt = b.elapsed_ms - a.elapsed_ms
        if dt > GAP_WARNING_MS:
            gaps += 1
            worst = max(worst, dt)
    if gaps:
        logger.warning(
            "Sample density degraded: %d gap(s) over %.0fms (longest %.0fms)",
            gaps, GAP_WARNING_MS, worst,
        )


def synthesize_timeline(
    events: Sequence[RawEvent],
    video: VideoInfo,
    geometry: RecordingGeometry,
    cursor_config: Optional[CursorConfig] = None,
    zoom_config: Optional[ZoomConfig] = None,
    effects: Optional[MouseEffectsConfig] = None,
    created_at: Optional[float] = None,
) -> RecordingMetadata:
    """Build the persisted timeline for one recording.

    *events* must already be on the video timeline (start offset
    applied).  Raises :class:`SynthesisError` for unusable video
    geometry or duration.
    """
    _validate_video(video)
    transform = CoordinateTransform(video, geometry)
    duration = float(video.duration)

    moves = sorted((e for e in events if isinstance(e, MoveEvent)), key=lambda e: e.elapsed_ms)
    buttons = [e for e in events if isinstance(e, ButtonEvent)]

    if moves:
        _log_gaps(moves)
        keyframes = build_keyframes(moves, transform, duration)
    else:
        logger.warning("No move samples captured; using a static cursor at the video centre")
        keyframes = [CursorKeyframe(timestamp=0.0, x=video.width / 2.0,
                                    y=video.height / 2.0, shape=CursorShape.ARROW)]

    clicks: List[ClickEvent] = []
    for ev in buttons:
        x, y = transform.apply(ev.x, ev.y)
        clicks.append(ClickEvent(
            timestamp=max(0.0, min(duration, ev.elapsed_ms)),
            x=x,
            y=y,
            button=ev.button,
            action=ev.edge,
        ))
    clicks.sort(key=lambda c: c.timestamp)

    logger.info(
        "Synthesized timeline: %d moves -> %d keyframes, %d clicks, duration %.0fms",
        len(moves), len(keyframes), len(clicks), duration,
    )

    return RecordingMetadata(
        video=video,
        cursor=CursorTrack(keyframes=keyframes, config=cursor_config or CursorConfig()),
        zoom=ZoomTrack(sections=[], config=zoom_config or ZoomConfig()),
        clicks=clicks,
        effects=effects,
        created_at=created_at if created_at is not None else time.time() * 1000,
    )
