"""Best-effort media metadata and thumbnail extraction.

Nothing here is allowed to block processing: duration falls back to a fixed
default and thumbnail extraction walks a fixed ladder of offsets, taking the
first attempt that leaves an image Pillow can actually read.
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, List, NamedTuple, Optional, TypeVar

from django.conf import settings
from PIL import Image

from .errors import MissingSourceError, TransientError, UndecodableInputError

logger = logging.getLogger(__name__)

DEFAULT_DURATION = 10.0
MIN_THUMBNAIL_OFFSET = 0.5
FIXED_THUMBNAIL_OFFSET = 2.0

# ffprobe/ffmpeg stderr fragments that mean the file itself is unusable
UNDECODABLE_MARKERS = (
    "Invalid data found when processing input",
    "moov atom not found",
    "does not contain any stream",
)

T = TypeVar("T")


class StreamLayout(NamedTuple):
    video: int
    audio: int


@dataclass
class ThumbnailResult:
    path: Path
    offset: float
    verified: bool


def first_success(strategies: Iterable[Callable[[], Optional[T]]], *, label: str = "strategy") -> Optional[T]:
    """Run strategies in order and return the first non-``None`` result.

    A strategy that raises is logged and counts as a failure.
    """
    for strategy in strategies:
        try:
            result = strategy()
        except (TransientError, UndecodableInputError, OSError, ValueError, subprocess.SubprocessError) as exc:
            logger.debug("%s failed: %s", label, exc)
            continue
        if result is not None:
            return result
    return None


def ffprobe_json(path) -> dict:
    path = Path(path)
    if not path.exists():
        raise MissingSourceError(path)
    cmd = [
        settings.FFPROBE_BINARY,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    try:
        res = subprocess.run(
            cmd,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=settings.FFPROBE_TIMEOUT,
        )
    except FileNotFoundError as exc:
        raise TransientError(f"ffprobe not available: {exc}")
    except subprocess.TimeoutExpired:
        raise TransientError(f"ffprobe timed out on {path}")

    stderr = res.stderr.decode("utf-8", errors="ignore").strip()
    if res.returncode != 0:
        if any(marker in stderr for marker in UNDECODABLE_MARKERS):
            raise UndecodableInputError(res.returncode, stderr, stage="probe")
        raise TransientError(f"ffprobe exited with code {res.returncode}: {stderr}")
    try:
        return json.loads(res.stdout.decode("utf-8", errors="ignore") or "{}")
    except json.JSONDecodeError as exc:
        raise TransientError(f"ffprobe returned unreadable JSON: {exc}")


def _positive_float(value) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _format_duration(info: dict) -> Optional[float]:
    return _positive_float((info.get("format") or {}).get("duration"))


def _stream_duration(info: dict) -> Optional[float]:
    durations = [_positive_float(s.get("duration")) for s in info.get("streams") or []]
    durations = [d for d in durations if d]
    return max(durations) if durations else None


def probe_duration(path, default: float = DEFAULT_DURATION) -> float:
    """Duration in seconds; ``default`` whenever it cannot be determined."""
    try:
        info = ffprobe_json(path)
    except Exception as exc:  # probe must never take the caller down
        logger.warning("Duration probe failed for %s, assuming %.1fs: %s", path, default, exc)
        return default

    duration = first_success(
        [partial(_format_duration, info), partial(_stream_duration, info)],
        label="duration",
    )
    return duration if duration is not None else default


def probe_layout(path) -> StreamLayout:
    """Count video/audio streams. Raises on unreadable input, unlike ``probe_duration``."""
    info = ffprobe_json(path)
    video = audio = 0
    for stream in info.get("streams") or []:
        kind = stream.get("codec_type")
        if kind == "video" and not (stream.get("disposition") or {}).get("attached_pic"):
            video += 1
        elif kind == "audio":
            audio += 1
    return StreamLayout(video=video, audio=audio)


def thumbnail_offsets(duration: float) -> List[float]:
    """Target offset followed by the fallback ladder, in the order tried."""
    return [
        max(MIN_THUMBNAIL_OFFSET, round(duration * 0.1, 3)),
        MIN_THUMBNAIL_OFFSET,
        round(duration * 0.2, 3),
        round(duration * 0.5, 3),
        FIXED_THUMBNAIL_OFFSET,
    ]


def is_readable_image(path) -> bool:
    path = Path(path)
    if not path.is_file() or path.stat().st_size == 0:
        return False
    try:
        with Image.open(path) as img:
            img.verify()
    except (OSError, ValueError, SyntaxError):
        return False
    return True


def extract_frame(source, offset: float, output) -> bool:
    """Grab a single JPEG frame at ``offset`` seconds; True only if the file is readable."""
    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.unlink(missing_ok=True)
    cmd = [
        settings.FFMPEG_BINARY,
        "-y",
        "-ss", f"{offset:.3f}",
        "-i", str(source),
        "-frames:v", "1",
        "-q:v", "3",
        str(output),
    ]
    try:
        res = subprocess.run(
            cmd,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=settings.FFPROBE_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("Frame extraction at %.3fs failed to run: %s", offset, exc)
        return False
    return res.returncode == 0 and is_readable_image(output)


def generate_optimal_thumbnail(source, output, duration: Optional[float] = None) -> ThumbnailResult:
    """Extract a representative frame, walking the offset ladder on failure.

    If no rung yields a readable image the path of the 0.5s attempt is
    returned with ``verified=False`` so callers never wait on a retry loop.
    """
    if duration is None:
        duration = probe_duration(source)
    output = Path(output)

    def attempt(offset: float) -> Optional[ThumbnailResult]:
        if extract_frame(source, offset, output):
            return ThumbnailResult(path=output, offset=offset, verified=True)
        logger.info("Thumbnail at %.3fs unusable for %s, trying next offset", offset, source)
        return None

    result = first_success(
        [partial(attempt, offset) for offset in thumbnail_offsets(duration)],
        label="thumbnail",
    )
    if result is not None:
        return result
    logger.warning("No verifiable thumbnail for %s; returning %.1fs attempt", source, MIN_THUMBNAIL_OFFSET)
    # the ladder reuses one output path, so put the 0.5s frame back
    extract_frame(source, MIN_THUMBNAIL_OFFSET, output)
    return ThumbnailResult(path=output, offset=MIN_THUMBNAIL_OFFSET, verified=False)
