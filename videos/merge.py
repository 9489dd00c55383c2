"""Concatenate several uploads of one video into a single normalised stream."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .encoder import ProgressCallback, TimeMarkerParser, run_ffmpeg, staging_path
from .errors import InputError, MissingSourceError, TrackLayoutMismatchError
from .probe import StreamLayout, probe_duration, probe_layout
from .styles import LANDSCAPE_1080P, Resolution

logger = logging.getLogger(__name__)

MERGE_FPS = 30
MERGE_SAMPLE_RATE = 48000


@dataclass
class MergeResult:
    path: Path
    layout: StreamLayout
    duration: float


def check_layouts(paths: Sequence[Path]) -> StreamLayout:
    """Every input must carry one video track and the same number (0 or 1) of audio tracks."""
    layouts = [probe_layout(p) for p in paths]
    first = layouts[0]
    for path, layout in zip(paths, layouts):
        if layout.video != 1 or layout.audio > 1 or layout != first:
            raise TrackLayoutMismatchError(
                "Cannot merge inputs with different track layouts: "
                + ", ".join(f"{p.name}=v{l.video}/a{l.audio}" for p, l in zip(paths, layouts))
            )
    return first


def merge_args(paths: Sequence[Path], output: Path, layout: StreamLayout, resolution: Resolution) -> List[str]:
    width, height = resolution
    args = ["-y"]
    for path in paths:
        args += ["-i", str(path)]

    chains = []
    concat_inputs = ""
    for i in range(len(paths)):
        chains.append(
            f"[{i}:v]scale={width}:{height}:force_original_aspect_ratio=decrease,"
            f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={MERGE_FPS}[v{i}]"
        )
        concat_inputs += f"[v{i}]"
        if layout.audio:
            chains.append(f"[{i}:a]aresample={MERGE_SAMPLE_RATE},aformat=channel_layouts=stereo[a{i}]")
            concat_inputs += f"[a{i}]"

    outputs = "[outv][outa]" if layout.audio else "[outv]"
    chains.append(f"{concat_inputs}concat=n={len(paths)}:v=1:a={layout.audio}{outputs}")

    args += ["-filter_complex", ";".join(chains), "-map", "[outv]"]
    if layout.audio:
        args += ["-map", "[outa]", "-c:a", "aac", "-b:a", "128k"]
    args += ["-c:v", "libx264", "-preset", "medium", "-crf", "23", "-pix_fmt", "yuv420p"]
    args += ["-f", "mp4", str(output)]
    return args


def merge_sources(
    paths: Sequence,
    output,
    *,
    on_progress: Optional[ProgressCallback] = None,
    resolution: Resolution = LANDSCAPE_1080P,
) -> MergeResult:
    """Merge ``paths`` (in order) into ``output``.

    Inputs with mismatched track layouts are rejected with
    ``TrackLayoutMismatchError`` before ffmpeg runs.
    """
    paths = [Path(p) for p in paths]
    if len(paths) < 2:
        raise InputError("Merging needs at least two source files.")
    for path in paths:
        if not path.is_file():
            raise MissingSourceError(path)

    layout = check_layouts(paths)
    total = sum(probe_duration(p) for p in paths)

    output = Path(output)
    output.parent.mkdir(parents=True, exist_ok=True)
    partial = staging_path(output)
    logger.info("Merging %d files into %s (%.1fs total)", len(paths), output, total)

    try:
        run_ffmpeg(
            merge_args(paths, partial, layout, resolution),
            on_progress=on_progress,
            parser=TimeMarkerParser(total),
            stage="merge",
        )
        os.replace(partial, output)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    return MergeResult(path=output, layout=layout, duration=total)
