"""Capture session — runs the sampling loop alongside an external encoder.

The encoder (screen capture + video encoding) is an external
collaborator behind the :class:`Encoder` protocol.  The session only
needs two things from it: when its first frame was taken, and where
the finished video went.

Order of operations:

1. start the sampling loop (records the sampler epoch),
2. start the encoder and record its start time on the same clock,
3. on stop: stop the sampler, then the encoder,
4. shift raw events by the start offset, synthesize the timeline,
   and save it as JSON next to the video.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from .clock import apply_start_offset, compute_start_offset, now_ms
from .errors import SynthesisError
from .metadata_file import save_metadata_for_video
from .models import DEFAULT_SAMPLE_INTERVAL_MS, RecordingMetadata, VideoInfo
from .mouse_tracker import MouseTracker
from .preferences import Preferences
from .screen_geometry import RecordingGeometry
from .settings import CursorConfig, MouseEffectsConfig, ZoomConfig
from .telemetry import TelemetrySource
from .timeline import synthesize_timeline
from .utils import probe_video

logger = logging.getLogger(__name__)


class Encoder(Protocol):
    """External screen encoder.

    ``start_recording`` returns an opaque handle.  If the handle has a
    ``started_at_ms`` attribute (on the :func:`app.clock.now_ms` clock)
    it is used as the first-frame time; otherwise the time at which
    ``start_recording`` returned is used.
    """

    def start_recording(self, config: Any) -> Any: ...

    def stop_recording(self, handle: Any) -> str: ...


@dataclass
class CaptureResult:
    video_path: str
    metadata_path: str
    metadata: RecordingMetadata
    start_offset_ms: float


class CaptureSession:
    """One recording: sampler + encoder + synthesis."""

    def __init__(
        self,
        source: TelemetrySource,
        encoder: Encoder,
        geometry: RecordingGeometry,
        interval_ms: float = DEFAULT_SAMPLE_INTERVAL_MS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._encoder = encoder
        self._geometry = geometry
        self._clock = clock
        self._tracker = MouseTracker(source, interval_ms=interval_ms, clock=clock)
        self._handle: Any = None
        self._encoder_start: float = 0.0

    @staticmethod
    def from_preferences(
        source: TelemetrySource,
        encoder: Encoder,
        geometry: RecordingGeometry,
        prefs: Preferences,
        clock: Callable[[], float] = now_ms,
    ) -> "CaptureSession":
        """Build a session sampling at the user's preferred interval."""
        return CaptureSession(source, encoder, geometry,
                              interval_ms=prefs.sample_interval_ms, clock=clock)

    @property
    def tracker(self) -> MouseTracker:
        return self._tracker

    @property
    def is_recording(self) -> bool:
        return self._handle is not None

    def start(self, encoder_config: Any = None) -> None:
        if self.is_recording:
            raise RuntimeError("Capture session already recording")
        self._tracker.start()
        try:
            self._handle = self._encoder.start_recording(encoder_config)
        except Exception:
            self._tracker.stop()
            raise
        started = getattr(self._handle, "started_at_ms", None)
        self._encoder_start = float(started) if started is not None else self._clock()
        logger.info("Recording started (sampler epoch %.1f, encoder start %.1f)",
                    self._tracker.start_time, self._encoder_start)

    def stop(
        self,
        cursor_config: Optional[CursorConfig] = None,
        zoom_config: Optional[ZoomConfig] = None,
        effects: Optional[MouseEffectsConfig] = None,
        video: Optional[VideoInfo] = None,
    ) -> CaptureResult:
        """Stop capture, synthesize the timeline and save it beside the video.

        *video* overrides probing of the encoder's output file.
        """
        if not self.is_recording:
            raise RuntimeError("Capture session is not recording")
        events = self._tracker.stop()
        stop_time = self._clock()
        handle, self._handle = self._handle, None
        video_path = self._encoder.stop_recording(handle)

        offset = compute_start_offset(self._encoder_start, self._tracker.start_time)
        events = apply_start_offset(events, offset)

        if video is None:
            video = self._probe(video_path, stop_time - self._encoder_start)
        metadata = synthesize_timeline(
            events, video, self._geometry,
            cursor_config=cursor_config, zoom_config=zoom_config, effects=effects,
        )
        metadata_path = save_metadata_for_video(metadata, video_path)
        return CaptureResult(video_path, metadata_path, metadata, offset)

    @staticmethod
    def _probe(video_path: str, wall_ms: float) -> VideoInfo:
        info = probe_video(video_path, duration_hint_ms=wall_ms)
        if info is None:
            raise SynthesisError(f"Cannot open recorded video {video_path}")
        return VideoInfo(
            path=video_path,
            width=int(info["width"]),
            height=int(info["height"]),
            frame_rate=float(info["fps"]),
            duration=float(info["duration"]),
        )
