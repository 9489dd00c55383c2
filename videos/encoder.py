"""Run ffmpeg as a subprocess and turn its stderr into progress ticks."""

import logging
import os
import re
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Optional, Sequence

from django.conf import settings

from .errors import EncoderError, MissingSourceError, SpawnError, UndecodableInputError
from .filters import FilterGraph
from .probe import UNDECODABLE_MARKERS

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

STDERR_TAIL_LINES = 20
MAX_ERROR_CHARS = 4000

# Without a known duration: each second of encoded media counts this many
# percent, capped so the estimate never claims completion.
COARSE_PERCENT_PER_SECOND = 4.0
COARSE_CAP = 95.0

_TIME_MARKER = re.compile(r"time=\s*(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_STATS_PREFIXES = ("frame=", "size=", "out_time", "progress=")


def parse_time_marker(line: str) -> Optional[float]:
    """Elapsed seconds from an ffmpeg ``time=HH:MM:SS.xx`` marker."""
    match = _TIME_MARKER.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


class TimeMarkerParser:
    """Stage completion (0-100) from ffmpeg stderr lines.

    Exact when the output duration is known, otherwise a capped linear
    estimate.
    """

    def __init__(self, duration: Optional[float] = None):
        self.duration = duration if duration and duration > 0 else None

    def parse(self, line: str) -> Optional[float]:
        elapsed = parse_time_marker(line)
        if elapsed is None:
            return None
        if self.duration:
            return min(100.0, elapsed / self.duration * 100.0)
        return min(COARSE_CAP, elapsed * COARSE_PERCENT_PER_SECOND)


def _classify_failure(returncode, tail: str, stage: str):
    if any(marker in tail for marker in UNDECODABLE_MARKERS):
        return UndecodableInputError(returncode, tail, stage=stage)
    return EncoderError(returncode, tail, stage=stage)


def run_ffmpeg(
    args: Sequence[str],
    *,
    on_progress: Optional[ProgressCallback] = None,
    parser: Optional[TimeMarkerParser] = None,
    stage: str = "encode",
    timeout: Optional[float] = None,
) -> None:
    """Run ffmpeg to completion, reporting parsed progress as it goes.

    Raises ``SpawnError`` if the binary cannot start, ``UndecodableInputError``
    when ffmpeg rejects the input and ``EncoderError`` for any other nonzero
    exit. The last stderr lines are carried verbatim on the exception.
    """
    parser = parser or TimeMarkerParser()
    timeout = settings.FFMPEG_TIMEOUT if timeout is None else timeout
    cmd = [settings.FFMPEG_BINARY, *args]
    logger.info("Running ffmpeg %s: %s", stage, subprocess.list2cmdline(cmd))

    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
        )
    except OSError as exc:
        raise SpawnError(f"Could not start {settings.FFMPEG_BINARY}: {exc}")

    timed_out = threading.Event()

    def _kill():
        timed_out.set()
        proc.kill()

    timer = threading.Timer(timeout, _kill) if timeout else None
    if timer:
        timer.daemon = True
        timer.start()

    tail = deque(maxlen=STDERR_TAIL_LINES)
    try:
        for raw in proc.stderr:
            line = raw.strip()
            if not line:
                continue
            pct = parser.parse(line)
            if pct is not None:
                if on_progress:
                    on_progress(pct)
            elif not line.startswith(_STATS_PREFIXES):
                tail.append(line)
        returncode = proc.wait()
    finally:
        if timer:
            timer.cancel()
        if proc.stderr:
            proc.stderr.close()

    if timed_out.is_set():
        raise EncoderError(returncode, f"timed out after {timeout}s", stage=stage)
    if returncode != 0:
        message = "\n".join(tail)[-MAX_ERROR_CHARS:]
        logger.error("ffmpeg %s failed with code %s:\n%s", stage, returncode, message)
        raise _classify_failure(returncode, message, stage)


def staging_path(output: Path) -> Path:
    return output.with_name(f"{output.stem}.part{output.suffix}")


def encode(
    graph: FilterGraph,
    input_path,
    output_path,
    *,
    on_progress: Optional[ProgressCallback] = None,
    duration: Optional[float] = None,
) -> Path:
    """Encode one normalised input through ``graph``.

    Output is written to a ``.part`` file and moved into place only after
    ffmpeg exits cleanly, so a failed attempt never leaves a usable-looking
    file at ``output_path``.
    """
    input_path = Path(input_path)
    if not input_path.is_file():
        raise MissingSourceError(input_path)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    partial = staging_path(output_path)

    try:
        run_ffmpeg(
            graph.to_args(input_path, partial),
            on_progress=on_progress,
            parser=TimeMarkerParser(duration),
            stage="encode",
        )
        os.replace(partial, output_path)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    return output_path
