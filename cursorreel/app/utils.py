"""Shared utilities: ffmpeg discovery, encoder profiles, video probing."""

import logging
import subprocess
import sys
from typing import Dict, List, Optional, Tuple

import cv2

logger = logging.getLogger(__name__)


def ffmpeg_exe() -> str:
    """Return path to the ffmpeg binary bundled via imageio-ffmpeg."""
    import imageio_ffmpeg
    return imageio_ffmpeg.get_ffmpeg_exe()


def subprocess_kwargs() -> dict:
    """Extra kwargs to hide the console window on Windows."""
    kw: dict = {}
    if sys.platform == "win32":
        si = subprocess.STARTUPINFO()
        si.dwFlags |= subprocess.STARTF_USESHOWWINDOW
        kw["startupinfo"] = si
        kw["creationflags"] = subprocess.CREATE_NO_WINDOW
    return kw


def fmt_time(ms: float) -> str:
    """Format milliseconds as m:ss."""
    s = int(ms / 1000)
    m = s // 60
    return f"{m}:{s % 60:02d}"


# ── Hardware-accelerated encoder support ────────────────────────────

# Encoder ID → (display name, ffmpeg codec name, quality args)
# Quality args approximate CRF 18 equivalent for each encoder.
ENCODER_PROFILES: Dict[str, Tuple[str, str, List[str]]] = {
    "h264_nvenc":  ("NVIDIA NVENC",   "h264_nvenc",  ["-preset", "p4", "-cq", "18", "-b:v", "0"]),
    "h264_qsv":    ("Intel QuickSync", "h264_qsv",   ["-preset", "medium", "-global_quality", "18"]),
    "h264_amf":    ("AMD AMF",         "h264_amf",    ["-quality", "quality", "-qp_i", "18", "-qp_p", "18"]),
    "libx264":     ("Software (x264)", "libx264",     ["-preset", "medium", "-crf", "18"]),
}

# Order of preference for auto-detection
_HW_ENCODER_ORDER = ["h264_nvenc", "h264_qsv", "h264_amf"]

# Cached result so we only probe once per process
_available_encoders: List[str] | None = None


def detect_available_encoders() -> List[str]:
    """Probe ffmpeg for available H.264 encoders.

    Returns a list of encoder IDs (e.g. ``["h264_nvenc", "libx264"]``)
    in preference order.  The software fallback ``libx264`` is always
    included last.  Results are cached after the first call.
    """
    global _available_encoders
    if _available_encoders is not None:
        return _available_encoders

    available: List[str] = []
    try:
        ffmpeg = ffmpeg_exe()
        result = subprocess.run(
            [ffmpeg, "-hide_banner", "-encoders"],
            capture_output=True, timeout=10,
            **subprocess_kwargs(),
        )
        output = result.stdout.decode(errors="replace")
        for enc_id in _HW_ENCODER_ORDER:
            if enc_id in output:
                available.append(enc_id)
    except Exception as exc:
        logger.warning("Encoder probe failed: %s", exc)

    # Software encoder is always available
    available.append("libx264")
    _available_encoders = available
    return available


def best_hw_encoder() -> str:
    """Return the best available encoder ID, preferring HW acceleration.

    Falls back to ``"libx264"`` if no HW encoder is found.
    """
    encoders = detect_available_encoders()
    return encoders[0] if encoders else "libx264"


def encoder_display_name(enc_id: str) -> str:
    """Human-readable name for an encoder ID."""
    profile = ENCODER_PROFILES.get(enc_id)
    return profile[0] if profile else enc_id


def build_encoder_args(enc_id: str) -> List[str]:
    """Return ffmpeg arguments for the given encoder ID.

    Returns ``["-c:v", "<codec>", ...quality_args..., "-pix_fmt", "yuv420p"]``.
    """
    profile = ENCODER_PROFILES.get(enc_id)
    if profile is None:
        profile = ENCODER_PROFILES["libx264"]
    _, codec, quality_args = profile
    args = ["-c:v", codec] + quality_args + ["-pix_fmt", "yuv420p"]
    return args


def encoder_fallback_chain(enc_id: str) -> List[str]:
    """Encoders to try, in order, starting with *enc_id*.

    Other available encoders that come after *enc_id* in preference
    order follow it, and ``libx264`` always ends the chain.
    """
    available = detect_available_encoders()
    if enc_id in available:
        chain = available[available.index(enc_id):]
    else:
        chain = [enc_id] + [e for e in available if e != enc_id]
    if "libx264" not in chain:
        chain.append("libx264")
    return chain


def even(n: int) -> int:
    """Round up to an even number (H.264 with yuv420p needs even dimensions)."""
    return n + (n % 2)


# ── Video probing ───────────────────────────────────────────────────

# cv2 reports nonsense FPS for some containers; fall back to this.
FALLBACK_FPS = 30.0


def probe_video(path: str, duration_hint_ms: float = 0.0) -> Optional[Dict[str, float]]:
    """Return ``{"width", "height", "fps", "frames", "duration"}`` for *path*.

    ``duration`` is in ms.  When the container's frame count disagrees
    with *duration_hint_ms* (wall-clock length of the recording) by more
    than 10%, the hint wins.  Returns None if the file cannot be opened.
    """
    cap = cv2.VideoCapture(path)
    try:
        if not cap.isOpened():
            return None
        fps = cap.get(cv2.CAP_PROP_FPS)
        if fps <= 0 or fps > 240:
            fps = FALLBACK_FPS
        frames = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    finally:
        cap.release()

    duration = frames / fps * 1000.0 if frames > 0 else 0.0
    if duration_hint_ms > 0 and (duration <= 0 or not 0.9 <= duration / duration_hint_ms <= 1.1):
        logger.info("Using recording wall-clock duration %.0fms (container says %.0fms)",
                    duration_hint_ms, duration)
        duration = duration_hint_ms
    return {"width": width, "height": height, "fps": fps, "frames": frames, "duration": duration}
