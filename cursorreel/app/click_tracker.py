"""Button edge detection — turns polled button state into click events.

Buttons are sampled, not hooked, so a click exists only as a change of
state between two consecutive samples.  A press and release that both
fall between polls is never seen; that is the accepted cost of polling.
"""

from typing import Iterable, List, Optional

from .models import (
    BUTTONS,
    EDGE_DOWN,
    EDGE_UP,
    ButtonEvent,
    ButtonState,
    MoveEvent,
    RawEvent,
    RawSample,
)


class ButtonEdgeTracker:
    """Remembers the previous button state and reports transitions."""

    def __init__(self, baseline: Optional[ButtonState] = None) -> None:
        self._last = baseline if baseline is not None else ButtonState()

    @property
    def last(self) -> ButtonState:
        return self._last

    def reset(self, baseline: Optional[ButtonState] = None) -> None:
        self._last = baseline if baseline is not None else ButtonState()

    def feed(self, sample: RawSample) -> List[RawEvent]:
        """Return the events for *sample*: button edges first, then the move."""
        events: List[RawEvent] = []
        for button in BUTTONS:
            now = sample.buttons.get(button)
            if now != self._last.get(button):
                events.append(ButtonEvent(
                    elapsed_ms=sample.elapsed_ms,
                    x=sample.x,
                    y=sample.y,
                    button=button,
                    edge=EDGE_DOWN if now else EDGE_UP,
                    cursor_icon=sample.cursor_icon,
                ))
        self._last = sample.buttons
        events.append(MoveEvent(
            elapsed_ms=sample.elapsed_ms,
            x=sample.x,
            y=sample.y,
            cursor_icon=sample.cursor_icon,
        ))
        return events


def events_from_samples(
    samples: Iterable[RawSample],
    baseline: Optional[ButtonState] = None,
) -> List[RawEvent]:
    """Convert a sample sequence into raw events.

    *baseline* is the button state observed before the first sample;
    all buttons up when omitted.
    """
    tracker = ButtonEdgeTracker(baseline)
    events: List[RawEvent] = []
    for sample in samples:
        events.extend(tracker.feed(sample))
    return events
