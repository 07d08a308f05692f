"""Clock reconciliation between the telemetry loop and the video.

Two independent corrections, applied at different times:

* **Start offset** (capture time) — the sampler starts before the
  encoder's first frame.  Raw event timestamps are shifted back by
  ``encoder_start - sampler_start`` and clamped at zero.
* **Frame offset** (load time) — the encoder's pipeline latency makes
  the cursor appear early.  Every timeline timestamp is pushed forward
  by a fixed number of frames when metadata is loaded.  The offset is
  never written to disk.
"""

import dataclasses
import logging
import time
from typing import Iterable, List

from .errors import ClockSkewWarning
from .models import RawEvent, RecordingMetadata

logger = logging.getLogger(__name__)

# A start offset above this is still applied, but logged as suspicious.
CLOCK_SKEW_WARNING_MS = 500.0

# Frames the cursor overlay is shifted forward at load time.
DEFAULT_CURSOR_FRAME_OFFSET = 2


def now_ms() -> float:
    """Monotonic clock shared by the sampler and the capture session."""
    return time.monotonic() * 1000.0


# ── Start offset ────────────────────────────────────────────────────


def compute_start_offset(encoder_start_ms: float, sampler_start_ms: float) -> float:
    """Return how far the encoder's first frame trails the sampler start.

    A negative raw offset (encoder reported earlier than the sampler)
    is clamped to zero.  Both anomalies are logged, neither is raised.
    """
    offset = encoder_start_ms - sampler_start_ms
    if offset < 0:
        logger.warning(
            "%s: encoder start %.1fms precedes sampler start %.1fms; clamping offset to 0",
            ClockSkewWarning.__name__, encoder_start_ms, sampler_start_ms,
        )
        return 0.0
    if offset > CLOCK_SKEW_WARNING_MS:
        logger.warning(
            "%s: start offset %.1fms exceeds %.0fms sanity threshold",
            ClockSkewWarning.__name__, offset, CLOCK_SKEW_WARNING_MS,
        )
    return offset


def apply_start_offset(events: Iterable[RawEvent], offset_ms: float) -> List[RawEvent]:
    """Shift raw event timestamps onto the video timeline (clamped at 0)."""
    shifted: List[RawEvent] = []
    clamped = 0
    for ev in events:
        ts = ev.elapsed_ms - offset_ms
        if ts < 0:
            clamped += 1
            ts = 0.0
        shifted.append(dataclasses.replace(ev, elapsed_ms=ts))
    if clamped:
        logger.warning(
            "%d event(s) preceded the first video frame and were clamped to t=0",
            clamped,
        )
    return shifted


# ── Frame offset ────────────────────────────────────────────────────


def frame_offset_ms(frames: float, frame_rate: float) -> float:
    """Convert a frame count to milliseconds at *frame_rate*."""
    if frame_rate <= 0:
        raise ValueError(f"frame_rate must be positive, got {frame_rate}")
    return frames * 1000.0 / frame_rate


def _shift_timeline(metadata: RecordingMetadata, delta_ms: float) -> RecordingMetadata:
    def shift(t: float) -> float:
        return max(0.0, t + delta_ms)

    keyframes = [
        dataclasses.replace(k, timestamp=shift(k.timestamp))
        for k in metadata.cursor.keyframes
    ]
    sections = [
        dataclasses.replace(s, start_time=shift(s.start_time), end_time=shift(s.end_time))
        for s in metadata.zoom.sections
    ]
    clicks = [dataclasses.replace(c, timestamp=shift(c.timestamp)) for c in metadata.clicks]
    return dataclasses.replace(
        metadata,
        cursor=dataclasses.replace(metadata.cursor, keyframes=keyframes),
        zoom=dataclasses.replace(metadata.zoom, sections=sections),
        clicks=clicks,
        applied_offset_ms=metadata.applied_offset_ms + delta_ms,
    )


def apply_frame_offset(metadata: RecordingMetadata, frames: float) -> RecordingMetadata:
    """Return a copy of *metadata* shifted forward by *frames* video frames.

    The input is left untouched.  The shift is remembered on
    ``applied_offset_ms`` so :func:`strip_frame_offset` can undo it.
    """
    if frames < 0:
        raise ValueError(f"frame offset must be >= 0, got {frames}")
    offset = frame_offset_ms(frames, metadata.video.frame_rate)
    if offset == 0:
        return dataclasses.replace(metadata)
    logger.info("Applying cursor frame offset: %s frames = %.2fms", frames, offset)
    return _shift_timeline(metadata, offset)


def strip_frame_offset(metadata: RecordingMetadata) -> RecordingMetadata:
    """Undo whatever frame offset was applied at load time."""
    if metadata.applied_offset_ms == 0:
        return metadata
    return _shift_timeline(metadata, -metadata.applied_offset_ms)
