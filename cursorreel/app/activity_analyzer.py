"""Auto-zoom — derive zoom sections from click activity.

This is a best-effort heuristic, used only when ``autoZoom`` is on and
no sections were authored.  Strategies are pluggable through
:class:`AutoZoomStrategy`; the built-in one zooms on click clusters:

* **Click clusters** — down-clicks within a 3-second sliding window.
  The section targets the centroid of the clicks, starts a little
  before the first click (transition + anticipation) and holds after
  the last one.

Nearby clusters that overlap in time are merged; distant ones are cut
at the next section's start so sections never overlap.  Consecutive
targets are dampened so the camera pans only as far as needed to keep
the new target in view.
"""

import logging
from typing import List, Protocol, Sequence, Tuple

from .models import ClickEvent, VideoInfo, ZoomSection
from .settings import ZoomConfig

logger = logging.getLogger(__name__)


# ── Tuning constants ────────────────────────────────────────────────

CLICK_WINDOW_MS = 3000    # sliding window for click-cluster detection
CLICK_MIN_COUNT = 1       # minimum clicks in window to trigger zoom
ZOOM_HOLD_CLICK_MS = 2000 # hold after the last click of a cluster
ANTICIPATION_MS = 100     # arrive this many ms *before* action starts so the viewer sees the trigger
PAN_MERGE_GAP_MS = 3000   # clusters closer than this chain their pans
SPATIAL_MERGE_DIST = 0.15 # normalized distance threshold for spatial proximity
PAN_VIEWPORT_MARGIN = 0.15  # margin fraction within viewport edge


class AutoZoomStrategy(Protocol):
    """Anything that can propose zoom sections for a recording."""

    def suggest(
        self, clicks: Sequence[ClickEvent], video: VideoInfo, config: ZoomConfig
    ) -> List[ZoomSection]: ...


def _dampen_pan(
    target_x: float, target_y: float, zoom: float,
    margin: float = PAN_VIEWPORT_MARGIN,
    from_x: float = 0.5, from_y: float = 0.5,
) -> Tuple[float, float]:
    """Compute pan to keep *target* visible within the zoomed viewport.

    Starts from (*from_x*, *from_y*) — the viewport center before this
    move — and shifts the minimum amount needed so the target lands
    inside the visible area with a small margin from the edge.
    All coordinates are normalized (0-1).
    """
    if zoom <= 1.0:
        return 0.5, 0.5

    half_vw = 0.5 / zoom
    half_vh = 0.5 / zoom
    eff_hw = half_vw * (1.0 - margin)
    eff_hh = half_vh * (1.0 - margin)

    pan_x, pan_y = from_x, from_y

    # Shift only if the target falls outside the effective visible band
    if target_x < pan_x - eff_hw:
        pan_x = target_x + eff_hw
    elif target_x > pan_x + eff_hw:
        pan_x = target_x - eff_hw

    if target_y < pan_y - eff_hh:
        pan_y = target_y + eff_hh
    elif target_y > pan_y + eff_hh:
        pan_y = target_y - eff_hh

    # Clamp so the viewport doesn't fly off the edge of the source
    pan_x = max(half_vw, min(1.0 - half_vw, pan_x))
    pan_y = max(half_vh, min(1.0 - half_vh, pan_y))

    return pan_x, pan_y


class _Cluster:
    __slots__ = ("first", "last", "sx", "sy", "count")

    def __init__(self, clicks: Sequence[ClickEvent]) -> None:
        self.first = clicks[0].timestamp
        self.last = clicks[-1].timestamp
        self.sx = sum(c.x for c in clicks)
        self.sy = sum(c.y for c in clicks)
        self.count = len(clicks)

    @property
    def centroid(self) -> Tuple[float, float]:
        return self.sx / self.count, self.sy / self.count

    def absorb(self, other: "_Cluster") -> None:
        self.last = max(self.last, other.last)
        self.sx += other.sx
        self.sy += other.sy
        self.count += other.count


class ClickClusterAutoZoom:
    """Zoom on bursts of down-clicks."""

    def __init__(
        self,
        window_ms: float = CLICK_WINDOW_MS,
        min_count: int = CLICK_MIN_COUNT,
        hold_ms: float = ZOOM_HOLD_CLICK_MS,
    ) -> None:
        self.window_ms = window_ms
        self.min_count = min_count
        self.hold_ms = hold_ms

    def _clusters(self, clicks: Sequence[ClickEvent]) -> List[_Cluster]:
        downs = sorted((c for c in clicks if c.action == "down"), key=lambda c: c.timestamp)
        clusters: List[_Cluster] = []
        i = 0
        while i < len(downs):
            j = i + 1
            while j < len(downs) and downs[j].timestamp - downs[i].timestamp <= self.window_ms:
                j += 1
            if j - i >= self.min_count:
                clusters.append(_Cluster(downs[i:j]))
            i = j
        return clusters

    def suggest(
        self, clicks: Sequence[ClickEvent], video: VideoInfo, config: ZoomConfig
    ) -> List[ZoomSection]:
        clusters = self._clusters(clicks)
        if not clusters:
            return []

        w, h = float(video.width), float(video.height)
        lead = config.transition_speed + ANTICIPATION_MS

        # Merge clusters whose sections would overlap and whose targets are close
        merged: List[_Cluster] = [clusters[0]]
        for cl in clusters[1:]:
            prev = merged[-1]
            overlaps = cl.first - lead <= prev.last + self.hold_ms
            px, py = prev.centroid
            cx, cy = cl.centroid
            close = ((px - cx) / w) ** 2 + ((py - cy) / h) ** 2 <= SPATIAL_MERGE_DIST ** 2
            if overlaps and close:
                prev.absorb(cl)
            else:
                merged.append(cl)

        sections: List[ZoomSection] = []
        prev_end = None
        from_x, from_y = 0.5, 0.5
        for cl in merged:
            start = max(0.0, cl.first - lead)
            end = min(float(video.duration), cl.last + self.hold_ms)
            if sections and start <= sections[-1].end_time:
                sections[-1].end_time = max(sections[-1].start_time, start - 1.0)
            if prev_end is None or start - prev_end > PAN_MERGE_GAP_MS:
                from_x, from_y = 0.5, 0.5
            cx, cy = cl.centroid
            nx, ny = _dampen_pan(cx / w, cy / h, config.level, from_x=from_x, from_y=from_y)
            from_x, from_y = nx, ny
            prev_end = end
            if end <= start:
                continue
            sections.append(ZoomSection(
                start_time=start,
                end_time=end,
                target_x=nx * w,
                target_y=ny * h,
                level=config.level,
            ))

        logger.info(
            "Auto-zoom heuristic: %d click cluster(s) -> %d zoom section(s)",
            len(clusters), len(sections),
        )
        return sections
