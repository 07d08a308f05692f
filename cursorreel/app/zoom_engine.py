"""Zoom engine — a spring-driven camera that follows zoom sections.

At every query time the engine finds the zoom section covering it
(first by start time when sections overlap).  Inside a section the
camera target is the section's target point (or the cursor, with
``followCursor``) at the section's level; outside every section the
target is the identity view: level 1, frame centre.

The camera approaches its target with a damped spring per axis
(``tension`` / ``friction`` / ``mass``, time scaled by
``followSpeed``), integrated with semi-implicit Euler in fixed
sub-steps.  A dead zone keeps small target changes from nudging the
camera.  The state is stateful in time, so chunked renders either
carry a :class:`CameraSnapshot` across the boundary or rebuild it with
:meth:`ZoomEngine.warm_up`.
"""

import logging
import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import CompositingError
from .models import ZoomSection
from .settings import ZoomConfig

logger = logging.getLogger(__name__)

MAX_SUBSTEP_MS = 1000.0 / 240.0   # integration step ceiling
REST_EPSILON = 1e-4               # snap to target below this distance/velocity
DEFAULT_STEP_MS = 1000.0 / 60.0   # warm-up step when no frame interval is given


# ── Helpers ─────────────────────────────────────────────────────────


def validate_sections(sections: Sequence[ZoomSection]) -> None:
    """Raise :class:`CompositingError` for malformed sections."""
    for i, s in enumerate(sections):
        if s.end_time < s.start_time:
            raise CompositingError(
                f"Zoom section {i} ends before it starts ({s.start_time} > {s.end_time})"
            )
        if not s.level or s.level <= 0 or not math.isfinite(s.level):
            raise CompositingError(f"Zoom section {i} has invalid level {s.level}")


def find_section(sections: Sequence[ZoomSection], time_ms: float) -> Optional[ZoomSection]:
    """First section (by start time, then list order) with ``start <= t <= end``.

    *sections* must already be sorted by start time.
    """
    for s in sections:
        if s.start_time > time_ms:
            break
        if s.contains(time_ms):
            return s
    return None


def apply_dead_zone(
    current: Tuple[float, float], desired: Tuple[float, float], dead_zone: float
) -> Tuple[float, float]:
    """Keep *current* unless *desired* is at least *dead_zone* px away."""
    if dead_zone <= 0:
        return desired
    if math.hypot(desired[0] - current[0], desired[1] - current[1]) < dead_zone:
        return current
    return desired


def crop_rect(
    center_x: float, center_y: float, level: float,
    width: int, height: int, padding: float = 0.0,
) -> Tuple[float, float, float, float]:
    """Return the ``(x, y, w, h)`` source crop for a camera, clamped inside the frame.

    *padding* widens the crop by that many px on each side (less zoom,
    more context around the target).
    """
    level = max(1.0, level)
    cw = min(float(width), width / level + 2.0 * padding)
    ch = min(float(height), height / level + 2.0 * padding)
    cx = max(cw / 2.0, min(width - cw / 2.0, center_x))
    cy = max(ch / 2.0, min(height - ch / 2.0, center_y))
    return cx - cw / 2.0, cy - ch / 2.0, cw, ch


# ── Camera state ────────────────────────────────────────────────────


@dataclass(frozen=True)
class CameraSnapshot:
    """Everything needed to resume the camera at ``time_ms``."""
    time_ms: float
    x: float
    y: float
    level: float
    vx: float
    vy: float
    vlevel: float
    target_x: float
    target_y: float
    target_level: float


@dataclass(frozen=True)
class CameraView:
    """Camera result for one frame."""
    center_x: float
    center_y: float
    level: float
    crop: Tuple[float, float, float, float]

    @property
    def is_identity(self) -> bool:
        return self.level <= 1.0 + 1e-3


class ZoomEngine:
    """Spring camera over a list of zoom sections for a *width* x *height* video.

    *cursor_at* supplies the cursor position for ``followCursor`` mode.
    Queries must move forward in time; a query earlier than the last one
    rebuilds the state from ``t=0``.
    """

    def __init__(
        self,
        sections: Sequence[ZoomSection],
        config: ZoomConfig,
        width: int,
        height: int,
        cursor_at: Optional[Callable[[float], Tuple[float, float]]] = None,
        step_ms: float = DEFAULT_STEP_MS,
    ) -> None:
        validate_sections(sections)
        self.sections: List[ZoomSection] = sorted(sections, key=lambda s: s.start_time)
        self.config = config
        self.width = width
        self.height = height
        self._cursor_at = cursor_at
        self._step_ms = step_ms
        self.reset()

    # ── state ───────────────────────────────────────────────────────

    def reset(self) -> None:
        """Put the camera at rest in the identity view at ``t=0``."""
        cx, cy = self.width / 2.0, self.height / 2.0
        self._time = 0.0
        self._x, self._y, self._level = cx, cy, 1.0
        self._vx = self._vy = self._vlevel = 0.0
        self._tx, self._ty, self._tlevel = cx, cy, 1.0
        self._started = False

    def snapshot(self) -> CameraSnapshot:
        return CameraSnapshot(
            time_ms=self._time, x=self._x, y=self._y, level=self._level,
            vx=self._vx, vy=self._vy, vlevel=self._vlevel,
            target_x=self._tx, target_y=self._ty, target_level=self._tlevel,
        )

    def restore(self, snap: CameraSnapshot) -> None:
        self._time = snap.time_ms
        self._x, self._y, self._level = snap.x, snap.y, snap.level
        self._vx, self._vy, self._vlevel = snap.vx, snap.vy, snap.vlevel
        self._tx, self._ty, self._tlevel = snap.target_x, snap.target_y, snap.target_level
        self._started = True

    def warm_up(self, time_ms: float) -> None:
        """Rebuild the state at *time_ms* by simulating from ``t=0``.

        Steps land on multiples of the frame interval, so a chunk that
        starts on a frame boundary reproduces a sequential render.
        """
        self.reset()
        k = 0
        while True:
            t = k * self._step_ms
            if t >= time_ms:
                break
            self.compute_at(t)
            k += 1
        self.compute_at(time_ms)

    # ── targets ─────────────────────────────────────────────────────

    def section_at(self, time_ms: float) -> Optional[ZoomSection]:
        return find_section(self.sections, time_ms)

    def _desired(self, time_ms: float) -> Tuple[float, float, float]:
        if not self.config.enabled:
            return self.width / 2.0, self.height / 2.0, 1.0
        section = self.section_at(time_ms)
        if section is None:
            return self.width / 2.0, self.height / 2.0, 1.0
        if self.config.follow_cursor and self._cursor_at is not None:
            x, y = self._cursor_at(time_ms)
        else:
            x, y = section.target_x, section.target_y
        return x, y, section.level

    def retarget(self, x: float, y: float, level: float) -> None:
        """Point the camera at (x, y, level), honouring the dead zone for position."""
        self._tx, self._ty = apply_dead_zone((self._tx, self._ty), (x, y), self.config.dead_zone)
        self._tlevel = level

    @property
    def target(self) -> Tuple[float, float, float]:
        return self._tx, self._ty, self._tlevel

    # ── physics ─────────────────────────────────────────────────────

    def _integrate(self, dt_ms: float) -> None:
        phys = self.config.physics
        mass = max(phys.mass, 1e-6)
        n = max(1, int(math.ceil(dt_ms / MAX_SUBSTEP_MS)))
        h = dt_ms / n / 1000.0
        for _ in range(n):
            ax = (-phys.tension * (self._x - self._tx) - phys.friction * self._vx) / mass
            ay = (-phys.tension * (self._y - self._ty) - phys.friction * self._vy) / mass
            al = (-phys.tension * (self._level - self._tlevel) - phys.friction * self._vlevel) / mass
            self._vx += ax * h
            self._vy += ay * h
            self._vlevel += al * h
            self._x += self._vx * h
            self._y += self._vy * h
            self._level += self._vlevel * h
        self._settle()

    def _settle(self) -> None:
        if abs(self._x - self._tx) < REST_EPSILON and abs(self._vx) < REST_EPSILON:
            self._x, self._vx = self._tx, 0.0
        if abs(self._y - self._ty) < REST_EPSILON and abs(self._vy) < REST_EPSILON:
            self._y, self._vy = self._ty, 0.0
        if abs(self._level - self._tlevel) < REST_EPSILON and abs(self._vlevel) < REST_EPSILON:
            self._level, self._vlevel = self._tlevel, 0.0

    def compute_at(self, time_ms: float) -> CameraView:
        """Advance the camera to *time_ms* and return the view."""
        if self._started and time_ms < self._time:
            logger.debug("Camera queried backwards (%.1f < %.1f); rebuilding", time_ms, self._time)
            self.warm_up(time_ms)
            return self.view()

        self.retarget(*self._desired(time_ms))
        if self._started:
            dt = (time_ms - self._time) * max(self.config.follow_speed, 0.0)
            if dt > 0:
                self._integrate(dt)
        self._time = time_ms
        self._started = True
        return self.view()

    def view(self) -> CameraView:
        level = max(1.0, self._level)
        return CameraView(
            center_x=self._x,
            center_y=self._y,
            level=level,
            crop=crop_rect(self._x, self._y, level, self.width, self.height,
                           self.config.padding if level > 1.0 + 1e-3 else 0.0),
        )
