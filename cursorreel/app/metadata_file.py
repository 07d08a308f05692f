"""Recording metadata files — the synthesized timeline stored beside the video.

``recording.mp4`` gets ``recording.json`` in the same directory.  The
file holds the timeline exactly as synthesized; the cursor frame offset
is applied when loading and stripped again before saving.
"""

import json
import logging
import os

from .clock import DEFAULT_CURSOR_FRAME_OFFSET, apply_frame_offset, strip_frame_offset
from .errors import CompositingError
from .models import RecordingMetadata

logger = logging.getLogger(__name__)

METADATA_EXT = ".json"


def metadata_path_for(video_path: str) -> str:
    """Return the metadata path that belongs to *video_path*."""
    return os.path.splitext(video_path)[0] + METADATA_EXT


def save_metadata(metadata: RecordingMetadata, path: str) -> str:
    """Write *metadata* to *path* and return the path.

    Any load-time frame offset is removed first, so saving a loaded
    timeline writes the same timestamps that were read.
    """
    stored = strip_frame_offset(metadata)
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(stored.to_json())
    os.replace(tmp_path, path)
    logger.info("Saved metadata (%d keyframes, %d clicks) to %s",
                len(stored.cursor.keyframes), len(stored.clicks), path)
    return path


def save_metadata_for_video(metadata: RecordingMetadata, video_path: str) -> str:
    return save_metadata(metadata, metadata_path_for(video_path))


def read_metadata(path: str) -> RecordingMetadata:
    """Parse *path* without applying any offset."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.loads(f.read())
        return RecordingMetadata.from_dict(data)
    except FileNotFoundError as exc:
        raise CompositingError(f"Metadata file not found: {path}") from exc
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise CompositingError(f"Unreadable metadata file {path}: {exc}") from exc


def load_metadata(path: str, frame_offset: float = DEFAULT_CURSOR_FRAME_OFFSET) -> RecordingMetadata:
    """Read *path* and shift the timeline forward by *frame_offset* frames."""
    metadata = read_metadata(path)
    try:
        return apply_frame_offset(metadata, frame_offset)
    except ValueError as exc:
        raise CompositingError(f"Cannot apply frame offset to {path}: {exc}") from exc
