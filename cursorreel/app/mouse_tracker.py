"""Mouse sampling loop — polls a telemetry source at a high target rate.

Each cycle takes one snapshot (position, buttons, cursor icon), records
a :class:`RawSample`, and derives raw events from it: button edges
first, then a move.  The next poll is scheduled ``interval_ms`` after
the previous one *completes*, so a slow source lowers the achieved rate
instead of piling up overlapping polls.

Runs on a dedicated worker thread; ``stop()`` joins it so the in-flight
cycle always finishes before the event sequence is frozen.
"""

import logging
import threading
from collections import Counter
from typing import Callable, List, Optional, Tuple

from .click_tracker import ButtonEdgeTracker
from .clock import now_ms
from .errors import CaptureError
from .models import (
    DEFAULT_SAMPLE_INTERVAL_MS,
    ButtonEvent,
    ButtonState,
    RawEvent,
    RawSample,
)
from .telemetry import TelemetrySource

logger = logging.getLogger(__name__)

_IDLE = "idle"
_STARTING = "starting"
_RUNNING = "running"
_STOPPING = "stopping"


class MouseTracker:
    """Sampling loop for one recording.

    *clock* returns milliseconds and must be the same clock the capture
    session uses for the encoder start time.
    """

    def __init__(
        self,
        source: TelemetrySource,
        interval_ms: float = DEFAULT_SAMPLE_INTERVAL_MS,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self._source = source
        self._interval = interval_ms
        self._clock = clock

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = _IDLE

        self._edges = ButtonEdgeTracker()
        self._samples: List[RawSample] = []
        self._events: List[RawEvent] = []
        self._frozen: Optional[Tuple[RawEvent, ...]] = None
        self._failed_cycles = 0
        self._start_time: float = 0.0
        self._stop_time: float = 0.0

    # ── public API ──────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._state == _RUNNING

    @property
    def interval_ms(self) -> float:
        return self._interval

    @property
    def start_time(self) -> float:
        """Clock reading taken when sampling began (the sampler epoch)."""
        return self._start_time

    @property
    def failed_cycles(self) -> int:
        return self._failed_cycles

    @property
    def samples(self) -> List[RawSample]:
        with self._lock:
            return list(self._samples)

    @property
    def events(self) -> Tuple[RawEvent, ...]:
        """Frozen sequence after ``stop()``, a snapshot while running."""
        if self._frozen is not None:
            return self._frozen
        with self._lock:
            return tuple(self._events)

    def start(self) -> None:
        """Reset the sequence, seed the baseline and launch the worker."""
        with self._lock:
            if self._state != _IDLE:
                logger.warning("MouseTracker.start() called while %s", self._state)
                return
            self._state = _STARTING
            self._samples.clear()
            self._events.clear()
            self._frozen = None
            self._failed_cycles = 0
            self._stop_event.clear()

        try:
            self._source.start()
        except Exception as exc:
            logger.warning("Telemetry source failed to start: %s", exc)

        self._start_time = self._clock()
        try:
            baseline = self._source.get_snapshot().buttons
        except Exception as exc:
            logger.warning("Baseline snapshot failed, assuming all buttons up: %s", exc)
            baseline = ButtonState()
        self._edges.reset(baseline)

        thread = threading.Thread(target=self._run, name="mouse-sampler", daemon=True)
        with self._lock:
            # Started under the lock so stop() never sees an unstarted thread.
            self._thread = thread
            self._state = _RUNNING
            thread.start()
        logger.info("Mouse sampling started (interval %.1fms)", self._interval)

    def stop(self) -> Tuple[RawEvent, ...]:
        """Stop sampling and return the frozen event sequence.

        Safe to call more than once.  Only the first caller tears the
        worker and source down; a call made before ``start()`` or while
        another stop is in progress logs a warning and returns the
        events collected so far.
        """
        with self._lock:
            state = self._state
            thread = self._thread
            if state == _RUNNING:
                self._state = _STOPPING
                self._thread = None
        if state != _RUNNING:
            if state != _IDLE:
                logger.warning("MouseTracker.stop() called while %s", state)
            elif self._frozen is None:
                logger.warning("MouseTracker.stop() called but sampling was never started")
            return self.events

        self._stop_event.set()
        thread.join()
        self._stop_time = self._clock()

        try:
            self._source.stop()
        except Exception as exc:
            logger.warning("Telemetry source failed to stop cleanly: %s", exc)

        with self._lock:
            self._frozen = tuple(self._events)
            self._state = _IDLE
        self._log_summary()
        return self._frozen

    def sample_once(self) -> bool:
        """Run one poll cycle.  Returns False if the snapshot failed."""
        try:
            snap = self._source.get_snapshot()
        except Exception as exc:
            self._failed_cycles += 1
            err = CaptureError(f"telemetry poll failed: {exc}")
            logger.debug("Skipping sample: %s", err)
            if self._failed_cycles == 1 or self._failed_cycles % 100 == 0:
                logger.warning("%s (%d failed so far)", err, self._failed_cycles)
            return False

        sample = RawSample(
            elapsed_ms=self._clock() - self._start_time,
            x=snap.x,
            y=snap.y,
            buttons=snap.buttons,
            cursor_icon=snap.cursor_icon,
        )
        with self._lock:
            self._samples.append(sample)
            self._events.extend(self._edges.feed(sample))
        return True

    # ── internal ────────────────────────────────────────────────────

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.sample_once()
            self._stop_event.wait(self._interval / 1000.0)

    def _log_summary(self) -> None:
        duration = max(self._stop_time - self._start_time, 1.0)
        n = len(self._samples)
        clicks = Counter(
            ev.button for ev in self._events
            if isinstance(ev, ButtonEvent) and ev.edge == "down"
        )
        logger.info(
            "Mouse sampling stopped: %d samples in %.0fms (%.1f Hz), %d failed, "
            "clicks left=%d right=%d middle=%d",
            n, duration, n * 1000.0 / duration, self._failed_cycles,
            clicks["left"], clicks["right"], clicks["middle"],
        )
