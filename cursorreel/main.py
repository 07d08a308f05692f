"""CursorReel — replays recorded cursor telemetry onto screen recordings."""

import argparse
import dataclasses
import logging
import os
import sys
from typing import List, Optional, Tuple

from app.errors import CursorReelError
from app.metadata_file import load_metadata, metadata_path_for, read_metadata
from app.preferences import Preferences
from app.settings import SPRING_PRESETS, ZoomConfig
from app.utils import best_hw_encoder, encoder_display_name, fmt_time
from app.version import __version__
from app.video_exporter import render_video

logging.basicConfig(
    level=logging.INFO,
    format="%(name)s | %(levelname)s | %(message)s",
)

_logger = logging.getLogger(__name__)


def _global_exception_handler(exc_type, exc_value, exc_tb):
    """Log unhandled exceptions instead of crashing silently."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)
        return
    _logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))


def _parse_size(text: str) -> Tuple[int, int]:
    try:
        w, h = text.lower().split("x", 1)
        return int(w), int(h)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected WIDTHxHEIGHT, got {text!r}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cursorreel", description=__doc__)
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    exp = sub.add_parser("export", help="render a recording with its cursor timeline")
    exp.add_argument("video", help="recorded video file")
    exp.add_argument("--metadata", help="timeline JSON (default: beside the video)")
    exp.add_argument("-o", "--output", help="output MP4 (default: <video>-export.mp4)")
    exp.add_argument("--frame-offset", type=int, default=None,
                     help="frames to shift the cursor forward (default: preference)")
    exp.add_argument("--encoder", default=None, help="ffmpeg encoder id, or 'auto'")
    exp.add_argument("--workers", type=int, default=None, help="composition threads")
    exp.add_argument("--size", type=_parse_size, default=None, help="output WIDTHxHEIGHT")
    exp.add_argument("--spring", choices=sorted(SPRING_PRESETS), default=None,
                     help="override the zoom camera spring")
    exp.add_argument("--auto-zoom", action="store_true",
                     help="derive zoom sections from clicks when none were authored")

    ins = sub.add_parser("inspect", help="summarize a timeline JSON")
    ins.add_argument("metadata")
    return parser


def _progress_logger():
    last = [-10]

    def report(percent: int, message: str) -> None:
        if percent >= last[0] + 10 or percent == 100:
            last[0] = percent
            _logger.info("%3d%% %s", percent, message)

    return report


def _cmd_export(args: argparse.Namespace, prefs: Preferences) -> int:
    meta_path = args.metadata or metadata_path_for(args.video)
    frame_offset = args.frame_offset if args.frame_offset is not None else prefs.frame_offset
    metadata = load_metadata(meta_path, frame_offset=frame_offset)

    zoom_config = metadata.zoom.config
    if args.spring or args.auto_zoom:
        if zoom_config is None:
            _logger.warning("%s has no zoom config; ignoring --spring/--auto-zoom", meta_path)
        else:
            zoom_config = dataclasses.replace(
                zoom_config,
                physics=SPRING_PRESETS[args.spring] if args.spring else zoom_config.physics,
                auto_zoom=zoom_config.auto_zoom or args.auto_zoom,
            )

    encoder_id = args.encoder or prefs.encoder_id or "auto"
    if encoder_id == "auto":
        encoder_id = best_hw_encoder()
    _logger.info("Exporting with %s", encoder_display_name(encoder_id))

    output = args.output or os.path.splitext(args.video)[0] + "-export.mp4"
    out = render_video(
        args.video, metadata, output,
        zoom_config=zoom_config,
        output_size=args.size,
        encoder_id=encoder_id,
        workers=args.workers or prefs.workers or None,
        progress=_progress_logger(),
    )
    prefs.remember_export(out)
    prefs.sync()
    _logger.info("Wrote %s", out)
    return 0


def _zoom_state(config: Optional[ZoomConfig]) -> str:
    if config is None:
        return "no config"
    return "enabled" if config.enabled else "disabled"


def _cmd_inspect(args: argparse.Namespace) -> int:
    metadata = read_metadata(args.metadata)
    video = metadata.video
    kfs = metadata.cursor.keyframes
    print(f"version     {metadata.version}")
    print(f"video       {video.path} {video.width}x{video.height} @ {video.frame_rate:g} fps, "
          f"{fmt_time(video.duration)}")
    print(f"keyframes   {len(kfs)}" + (f" ({', '.join(sorted({k.shape.value for k in kfs}))})" if kfs else ""))
    downs = sum(1 for c in metadata.clicks if c.action == "down")
    print(f"clicks      {downs} down / {len(metadata.clicks) - downs} up")
    print(f"zoom        {len(metadata.zoom.sections)} section(s), "
          f"{_zoom_state(metadata.zoom.config)}")
    fx = metadata.effects
    enabled = [name for name, on in (
        ("click circles", fx and fx.click_circles.enabled),
        ("trail", fx and fx.trail.enabled),
        ("highlight ring", fx and fx.highlight_ring.enabled),
    ) if on]
    print(f"effects     {', '.join(enabled) or 'none'}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point."""
    sys.excepthook = _global_exception_handler
    args = _build_parser().parse_args(argv)
    try:
        if args.command == "export":
            return _cmd_export(args, Preferences())
        return _cmd_inspect(args)
    except CursorReelError as exc:
        _logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
