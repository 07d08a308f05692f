"""Exception types shared by the capture, synthesis and export stages.

Capture-time problems are logged and skipped, never raised out of the
sampling loop.  Synthesis and compositing errors abort only their own
pipeline and carry the offending values in the message.
"""


class CursorReelError(Exception):
    """Base class for all CursorReel errors."""


class CaptureError(CursorReelError):
    """A telemetry poll failed.  Logged by the sampling loop, not fatal."""


class SynthesisError(CursorReelError):
    """Video geometry or duration is unusable for timeline synthesis."""


class CompositingError(CursorReelError):
    """An export cannot proceed (bad duration, empty timeline, bad metadata)."""


class ExportCancelled(CursorReelError):
    """Raised when an export is cancelled cooperatively."""


class ClockSkewWarning(UserWarning):
    """Diagnostic category for suspicious start offsets.  Logged, never raised."""
