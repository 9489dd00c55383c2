"""One attempt at turning a queued video into a finished file.

``VideoWorker.execute`` is shared by the Celery task and the in-process
fallback runner and is the only code that moves a video between
``processing``, ``ready`` and ``failed``.
"""

import enum
import logging
from pathlib import Path
from typing import List, Optional

from django.conf import settings

from .encoder import encode
from .errors import InputError, TransientError, VideoNotFoundError
from .filters import build_filter_graph, music_bed_for
from .jobs import Job
from .merge import merge_sources
from .probe import generate_optimal_thumbnail, probe_duration, probe_layout
from .progress import PROGRESS_CEILING, ProgressSink, VideoStore
from .storage import localize_source, media_path, output_dir, publish, relative_to_media

logger = logging.getLogger(__name__)

# Progress checkpoints (percent) for multi-file jobs.
MERGE_START = 5
MERGE_DONE = 15
MERGED_ENCODE_BASELINE = 20

MERGED_NAME = "merged.mp4"
OUTPUT_NAME = "final.mp4"
THUMBNAIL_NAME = "thumbnail.jpg"


class Outcome(enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    RETRY = "retry"


def retry_delay(attempt: int) -> float:
    """Seconds to wait before attempt ``attempt + 1``: 2s, 4s, 8s, ..."""
    return settings.VIDEO_RETRY_BACKOFF * (2 ** (attempt - 1))


def scaled(sink: ProgressSink, start: float, end: float):
    """Map a stage's own 0-100 onto ``start..end`` of the overall progress."""

    def report(pct: float) -> None:
        sink.advance(start + (end - start) * max(0.0, min(100.0, pct)) / 100.0)

    return report


class VideoWorker:
    def __init__(self, store: Optional[VideoStore] = None):
        self.store = store or VideoStore()

    def execute(self, job: Job, *, attempt: int = 1, max_attempts: Optional[int] = None) -> Outcome:
        max_attempts = max_attempts or settings.VIDEO_MAX_ATTEMPTS
        sink = ProgressSink(job.video_id, store=self.store)
        temporaries: List[Path] = []
        try:
            video = self.store.get(job.video_id)
            sink.start(attempt)
            logger.info(
                "Processing video %s (attempt %d/%d, %d source file(s))",
                job.video_id, attempt, max_attempts, len(job.source_files),
            )
            self._process(job, video.merged_path, sink, temporaries)
        except VideoNotFoundError:
            logger.warning("Video %s no longer exists; dropping job", job.video_id)
            return Outcome.FAILED
        except InputError as exc:
            logger.warning("Video %s failed permanently: %s", job.video_id, exc)
            sink.fail(str(exc))
            return Outcome.FAILED
        except Exception as exc:
            # TransientError, plus unclassified failures (database hiccups, I/O).
            # error_message stays empty until the video actually fails.
            if attempt < max_attempts:
                logger.warning(
                    "Video %s attempt %d/%d failed, will retry: %s", job.video_id, attempt, max_attempts, exc
                )
                return Outcome.RETRY
            logger.exception("Video %s failed after %d attempt(s)", job.video_id, attempt)
            sink.fail(str(exc))
            return Outcome.FAILED
        finally:
            for path in temporaries:
                path.unlink(missing_ok=True)

        logger.info("Video %s is ready", job.video_id)
        return Outcome.COMPLETED

    def _process(self, job: Job, merged_ref: str, sink: ProgressSink, temporaries: List[Path]) -> None:
        plan = job.plan
        workdir = output_dir(job.video_id)

        if job.needs_merge:
            source = self._merge(job, merged_ref, workdir, sink, temporaries)
            baseline = MERGED_ENCODE_BASELINE
        else:
            source = self._localize(job.source_files[0].path, temporaries)
            baseline = 0

        duration = probe_duration(source)
        layout = probe_layout(source)
        music = music_bed_for(plan, settings.VIDEO_MUSIC_DIR)
        graph = build_filter_graph(plan, has_audio=layout.audio > 0, duration=duration, music_path=music)
        logger.debug("Video %s plan: %s", job.video_id, plan.to_dict())

        sink.advance(baseline)
        output = encode(
            graph,
            source,
            workdir / OUTPUT_NAME,
            on_progress=scaled(sink, baseline, PROGRESS_CEILING),
            duration=duration / plan.speed,
        )
        sink.advance(PROGRESS_CEILING)

        extra = {"duration": probe_duration(output, default=duration / plan.speed)}
        thumb = generate_optimal_thumbnail(output, workdir / THUMBNAIL_NAME, duration=extra["duration"])
        if thumb.verified:
            try:
                extra["thumbnail_path"] = publish(thumb.path, "image/jpeg")
            except TransientError as exc:
                logger.warning("Thumbnail upload for video %s skipped: %s", job.video_id, exc)

        sink.complete(publish(output, "video/mp4"), **extra)

    def _merge(self, job: Job, merged_ref: str, workdir: Path, sink: ProgressSink, temporaries) -> Path:
        if merged_ref and media_path(merged_ref).is_file():
            logger.info("Reusing merged file %s for video %s", merged_ref, job.video_id)
            sink.advance(MERGE_DONE)
            return media_path(merged_ref)

        inputs = [self._localize(f.path, temporaries) for f in job.source_files]
        sink.advance(MERGE_START)
        result = merge_sources(
            inputs,
            workdir / MERGED_NAME,
            on_progress=scaled(sink, MERGE_START, MERGE_DONE),
            resolution=job.plan.resolution,
        )
        sink.record(merged_path=relative_to_media(result.path))
        sink.advance(MERGE_DONE)
        return result.path

    @staticmethod
    def _localize(ref: str, temporaries: List[Path]) -> Path:
        path, is_temp = localize_source(ref)
        if is_temp:
            temporaries.append(path)
        return path
