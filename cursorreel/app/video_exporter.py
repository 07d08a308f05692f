"""Export a recording with the cursor timeline baked in — produces H.264 MP4.

:func:`render_video` is the synchronous job: decode the source with
OpenCV, let :class:`TimelineCompositor` decide and draw every frame,
and pipe raw BGR frames to ffmpeg.  :class:`VideoExporter` runs the
same job on a background thread and reports through Qt signals.

Camera decisions are made sequentially (the spring camera is stateful
in time); drawing and scaling of a batch of frames runs on a thread
pool, and frames are written back in order.  Output goes to a
``.partial`` sibling that replaces the target only on success, so a
cancelled or failed export never leaves a truncated file behind.
"""

import logging
import os
import subprocess
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np

from PySide6.QtCore import QObject, Signal

from .activity_analyzer import AutoZoomStrategy
from .compositor import TimelineCompositor
from .errors import CompositingError, ExportCancelled
from .models import RecordingMetadata
from .settings import CursorConfig, MouseEffectsConfig, ZoomConfig
from .utils import (
    build_encoder_args,
    encoder_display_name,
    encoder_fallback_chain,
    even,
    ffmpeg_exe,
    subprocess_kwargs,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]

# Progress milestones (percent)
PROGRESS_ANALYZING = 5
PROGRESS_OPENING = 10
PROGRESS_PREPARING = 15
PROGRESS_TIMELINE = 20
PROGRESS_RENDER_START = 25
PROGRESS_RENDER_SPAN = 60
PROGRESS_ENCODING = 90
PROGRESS_DONE = 100

FRAMES_PER_WORKER = 4     # batch size multiplier for parallel composition
LAUNCH_CHECK_S = 0.1      # wait before checking for an immediate ffmpeg exit


class _Progress:
    """Clamps reports to 0..100 and never lets the percentage go backwards."""

    def __init__(self, callback: Optional[ProgressCallback]) -> None:
        self._callback = callback
        self._last = -1
        self._last_msg = ""

    def __call__(self, percent: float, message: str) -> None:
        pct = int(max(0, min(100, percent)))
        pct = max(pct, self._last)
        if pct == self._last and message == self._last_msg:
            return
        self._last, self._last_msg = pct, message
        if self._callback is not None:
            self._callback(pct, message)


def partial_path_for(output_path: str) -> str:
    root, ext = os.path.splitext(output_path)
    return f"{root}.partial{ext or '.mp4'}"


def _launch_ffmpeg(enc_id: str, w: int, h: int, fps: float, path: str) -> subprocess.Popen:
    cmd = [
        ffmpeg_exe(), "-y",
        "-loglevel", "error",
        "-f", "rawvideo",
        "-vcodec", "rawvideo",
        "-s", f"{w}x{h}",
        "-pix_fmt", "bgr24",
        "-r", f"{fps:.6g}",
        "-i", "pipe:",
    ] + build_encoder_args(enc_id) + ["-movflags", "+faststart", "-f", "mp4", path]
    logger.info("Launching ffmpeg with encoder %s: %s", enc_id, " ".join(cmd))
    return subprocess.Popen(
        cmd,
        stdin=subprocess.PIPE,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        **subprocess_kwargs(),
    )


def _finish(proc: subprocess.Popen) -> str:
    """Close stdin, wait for ffmpeg and return its stderr text."""
    try:
        proc.stdin.close()
    except OSError:
        pass
    try:
        stderr_out = proc.communicate(timeout=60)[1]
    except subprocess.TimeoutExpired:
        proc.kill()
        stderr_out = proc.communicate()[1]
    return stderr_out.decode(errors="replace") if stderr_out else ""


def _kill(proc: subprocess.Popen) -> None:
    if proc.poll() is None:
        proc.kill()
    try:
        proc.communicate(timeout=10)
    except (subprocess.TimeoutExpired, ValueError, OSError):
        pass


def _encode_frames(
    proc: subprocess.Popen,
    cap: "cv2.VideoCapture",
    compositor: TimelineCompositor,
    out_size: Tuple[int, int],
    pool: ThreadPoolExecutor,
    batch_size: int,
    progress: _Progress,
    cancel_event: Optional[threading.Event],
) -> bool:
    """Feed every frame to ffmpeg.  Returns False if the pipe broke."""
    cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
    compositor.zoom.reset()
    total = max(1, compositor.frame_count)
    index = 0
    eof = False

    while not eof:
        frames: List[np.ndarray] = []
        decisions = []
        while len(frames) < batch_size:
            if cancel_event is not None and cancel_event.is_set():
                raise ExportCancelled("Export cancelled")
            ok, frame = cap.read()
            if not ok:
                eof = True
                break
            frames.append(frame)
            decisions.append(compositor.decide(compositor.frame_time(index)))
            index += 1
        if not frames:
            break

        composed = pool.map(lambda fd: compositor.render(fd[0], fd[1], out_size),
                            zip(frames, decisions))
        for out in composed:
            try:
                proc.stdin.write(out.tobytes())
            except (BrokenPipeError, OSError):
                return False

        progress(
            PROGRESS_RENDER_START + PROGRESS_RENDER_SPAN * min(1.0, index / total),
            f"Rendering frame {index}/{total}",
        )

    if index == 0:
        raise CompositingError("Source video contains no decodable frames")
    return True


def render_video(
    video_path: str,
    metadata: RecordingMetadata,
    output_path: str,
    cursor_config: Optional[CursorConfig] = None,
    zoom_config: Optional[ZoomConfig] = None,
    effects: Optional[MouseEffectsConfig] = None,
    output_size: Optional[Tuple[int, int]] = None,
    encoder_id: str = "libx264",
    workers: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    auto_zoom: Optional[AutoZoomStrategy] = None,
) -> str:
    """Render *video_path* with *metadata* composited on top into *output_path*.

    *metadata* is used as given: load it with
    :func:`app.metadata_file.load_metadata` so the frame offset is
    applied exactly once.  Returns the final output path.  Raises
    :class:`CompositingError` on failure and :class:`ExportCancelled`
    when *cancel_event* is set.
    """
    report = _Progress(progress)
    report(PROGRESS_ANALYZING, "Analyzing timeline")
    compositor = TimelineCompositor(
        metadata, cursor_config=cursor_config, zoom_config=zoom_config,
        effects=effects, auto_zoom=auto_zoom,
    )

    report(PROGRESS_OPENING, "Opening source video")
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise CompositingError(f"Cannot open {video_path}")

    if not output_path.lower().endswith(".mp4"):
        output_path = os.path.splitext(output_path)[0] + ".mp4"
    tmp_path = partial_path_for(output_path)

    video = metadata.video
    w, h = output_size or (video.width, video.height)
    w, h = even(int(w)), even(int(h))
    if w < 2 or h < 2:
        cap.release()
        raise CompositingError(f"Output dimensions too small for encoding: {w}x{h}")

    report(PROGRESS_PREPARING, "Preparing cursor")
    # Pre-build the sprite at its resting size
    compositor.render(np.zeros((video.height, video.width, 3), np.uint8),
                      compositor.decide(0.0), (w, h))
    compositor.zoom.reset()

    report(PROGRESS_TIMELINE, f"Timeline: {len(compositor.keyframes)} keyframes, "
                              f"{len(metadata.clicks)} clicks, {len(compositor.zoom.sections)} zoom sections")

    n_workers = workers or min(8, os.cpu_count() or 1)
    batch_size = max(1, n_workers * FRAMES_PER_WORKER)
    fps = video.frame_rate
    chain = encoder_fallback_chain(encoder_id)
    proc: Optional[subprocess.Popen] = None
    stderr_text = ""
    used = None

    try:
        with ThreadPoolExecutor(max_workers=n_workers, thread_name_prefix="compose") as pool:
            for i, enc_id in enumerate(chain):
                if i > 0:
                    report(PROGRESS_RENDER_START,
                           f"{encoder_display_name(chain[i - 1])} failed, trying {encoder_display_name(enc_id)}…")
                proc = _launch_ffmpeg(enc_id, w, h, fps, tmp_path)
                time.sleep(LAUNCH_CHECK_S)
                if proc.poll() is not None:
                    stderr_text = _finish(proc)
                    logger.warning("Encoder %s failed immediately (%s)", enc_id, stderr_text[:500].strip())
                    continue

                try:
                    pipe_ok = _encode_frames(proc, cap, compositor, (w, h), pool,
                                             batch_size, report, cancel_event)
                except BaseException:
                    _kill(proc)
                    raise
                report(PROGRESS_ENCODING, "Encoding")
                stderr_text = _finish(proc)
                if proc.returncode == 0 and pipe_ok:
                    used = enc_id
                    break
                logger.warning("Encoder %s failed mid-export (rc=%s): %s",
                               enc_id, proc.returncode, stderr_text[:300].strip())
    except ExportCancelled:
        logger.info("Export cancelled; discarding partial output")
        _remove_quietly(tmp_path)
        raise
    except BaseException:
        _remove_quietly(tmp_path)
        raise
    finally:
        cap.release()

    if used is None:
        _remove_quietly(tmp_path)
        err_msg = stderr_text.strip()[-800:] if stderr_text else "Unknown ffmpeg error"
        logger.error("Export failed (encoders tried: %s): %s", ", ".join(chain), err_msg)
        raise CompositingError(f"ffmpeg error ({chain[-1]}): {err_msg[:500]}")

    os.replace(tmp_path, output_path)
    if used != encoder_id:
        logger.info("Export completed with fallback encoder %s (originally %s)", used, encoder_id)
    report(PROGRESS_DONE, "Export complete")
    return output_path


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove partial output %s: %s", path, exc)


class VideoExporter(QObject):
    """Runs :func:`render_video` on a background thread."""

    progress = Signal(float)  # 0.0–1.0
    finished = Signal(str)    # output path
    error = Signal(str)
    status = Signal(str)      # stage text (e.g. encoder fallback)
    cancelled = Signal()

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._thread: Optional[threading.Thread] = None
        self._cancel = threading.Event()

    # ── public API ──────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def export(
        self,
        video_path: str,
        metadata: RecordingMetadata,
        output_path: str,
        **options,
    ) -> None:
        """Start export in a background thread.

        *options* are passed to :func:`render_video` (``encoder_id``,
        ``output_size``, ``workers``, config overrides).
        """
        if self.is_running:
            raise RuntimeError("An export is already running")
        self._cancel.clear()
        self._thread = threading.Thread(
            target=self._run,
            args=(video_path, metadata, output_path, options),
            name="video-export",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        """Ask the running export to stop at the next frame boundary."""
        self._cancel.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the export thread ends.  Returns False on timeout."""
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    # ── internal ────────────────────────────────────────────────────

    def _on_progress(self, percent: int, message: str) -> None:
        self.progress.emit(percent / 100.0)
        self.status.emit(message)

    def _run(self, video_path: str, metadata: RecordingMetadata,
             output_path: str, options: dict) -> None:
        try:
            out = render_video(
                video_path, metadata, output_path,
                progress=self._on_progress,
                cancel_event=self._cancel,
                **options,
            )
        except ExportCancelled:
            self.cancelled.emit()
        except Exception as exc:
            logger.exception("Export failed")
            self.error.emit(str(exc))
        else:
            self.finished.emit(out)
