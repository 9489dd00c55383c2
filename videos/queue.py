"""Job submission, with a Celery backend and an in-process fallback.

The broker is probed once, on first use. If it answers, jobs go through
Celery; otherwise every job for the life of the process runs on a
single-thread executor inside the web process. Callers get the same
``JobHandle`` either way.
"""

import logging
import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from functools import partial
from typing import Any, Dict, Iterable, Optional
from uuid import uuid4

from django.conf import settings
from django.db import DatabaseError, close_old_connections
from django.utils import timezone
from kombu.exceptions import OperationalError as BrokerError

from .errors import AlreadyProcessingError
from .jobs import Job, SourceFile, StylePreferences
from .models import Video
from .progress import ProgressSink, VideoStore
from .worker import VideoWorker

logger = logging.getLogger(__name__)

CELERY = "celery"
DIRECT = "direct"

COMPLETED_RETENTION = timedelta(hours=24)
FAILED_RETENTION = timedelta(days=7)
DIRECT_MODE_MESSAGE = "Queue not available - broker not connected"

CELERY_MAX_PRIORITY = 9


def celery_priority(priority: int) -> int:
    """Higher job priority runs first; the redis transport treats 0 as highest."""
    return CELERY_MAX_PRIORITY - max(0, min(CELERY_MAX_PRIORITY, int(priority)))


class QueueBackend:
    """Decides, once per process, whether jobs go to Celery or run in-process."""

    def __init__(self, mode: Optional[str] = None, app=None, probe_timeout: Optional[float] = None):
        self._mode = mode
        self._app = app
        self.probe_timeout = probe_timeout
        self._lock = threading.Lock()

    @property
    def app(self):
        if self._app is None:
            from clipcast.celery import celery_app

            self._app = celery_app
        return self._app

    @property
    def mode(self) -> str:
        if self._mode is None:
            with self._lock:
                if self._mode is None:
                    self._mode = self._resolve()
                    logger.info("Video queue mode: %s", self._mode)
        return self._mode

    @property
    def available(self) -> bool:
        return self.mode == CELERY

    def _resolve(self) -> str:
        configured = settings.VIDEO_QUEUE_MODE
        if configured in (CELERY, DIRECT):
            return configured
        return CELERY if self.probe() else DIRECT

    def probe(self) -> bool:
        timeout = self.probe_timeout or settings.VIDEO_QUEUE_PROBE_TIMEOUT
        try:
            with self.app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1, timeout=timeout)
        except (BrokerError, OSError) as exc:
            logger.warning("Queue broker unreachable (%s); videos will be processed in-process", exc)
            return False
        return True


class DirectRunner:
    """Runs jobs one at a time off the request thread, without retries."""

    def __init__(self, executor: Optional[Executor] = None, worker: Optional[VideoWorker] = None):
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="video-direct")
        self.worker = worker or VideoWorker()

    def submit(self, job: Job) -> Future:
        future = self.executor.submit(self._run, job)
        future.add_done_callback(partial(self._report_crash, job))
        return future

    def _run(self, job: Job):
        close_old_connections()
        try:
            return self.worker.execute(job, attempt=1, max_attempts=1)
        finally:
            close_old_connections()

    def _report_crash(self, job: Job, future: Future) -> None:
        if future.cancelled() or future.exception() is None:
            return
        exc = future.exception()
        logger.error("In-process job for video %s crashed", job.video_id, exc_info=exc)
        try:
            ProgressSink(job.video_id, store=self.worker.store).fail(str(exc))
        except DatabaseError:
            logger.exception("Could not mark video %s as failed", job.video_id)


@dataclass
class JobHandle:
    job_id: str
    video_id: str
    mode: str
    status: str = Video.Status.QUEUED
    priority: int = 0
    active_jobs: int = 0
    enqueued_at: datetime = field(default_factory=timezone.now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = str(self.status)
        data["enqueued_at"] = self.enqueued_at.isoformat()
        return data


def _source_file(value) -> SourceFile:
    return value if isinstance(value, SourceFile) else SourceFile.from_dict(value)


def _preferences(value) -> StylePreferences:
    return value if isinstance(value, StylePreferences) else StylePreferences.from_dict(value)


class PipelineService:
    def __init__(
        self,
        backend: Optional[QueueBackend] = None,
        runner: Optional[DirectRunner] = None,
        store: Optional[VideoStore] = None,
    ):
        self.backend = backend or QueueBackend()
        self.store = store or VideoStore()
        self._runner = runner

    @property
    def runner(self) -> DirectRunner:
        if self._runner is None:
            self._runner = DirectRunner(worker=VideoWorker(store=self.store))
        return self._runner

    @property
    def mode(self) -> str:
        return self.backend.mode

    def enqueue(
        self,
        video_id,
        user_id,
        source_files: Iterable,
        preferences=None,
        priority: int = 0,
        delay: float = 0,
    ) -> JobHandle:
        """Queue a video for processing and return immediately.

        Raises ``EmptySourceListError`` for an empty file list and
        ``AlreadyProcessingError`` if the video already has a live job.
        """
        prefs = _preferences(preferences)
        job = Job(
            video_id=video_id,
            user_id=user_id,
            source_files=[_source_file(f) for f in source_files],
            preferences=prefs,
            priority=int(priority or 0),
            delay=float(delay or 0),
        )

        mode = self.mode
        job_id = uuid4().hex if mode == CELERY else f"direct-{int(time.time() * 1000)}"
        claimed = self.store.claim_for_queue(
            job.video_id,
            job_id=job_id,
            merged_path="",
            source_files=[asdict(f) for f in job.source_files],
            editing_preferences=asdict(prefs),
            story_mode=prefs.story_mode,
        )
        if not claimed:
            video = self.store.get(job.video_id)
            raise AlreadyProcessingError(job.video_id, video.status)

        if mode == CELERY:
            mode = self._publish(job, job_id)
        else:
            logger.info("Processing video %s directly (no queue available)", job.video_id)
            self.runner.submit(job)

        return JobHandle(
            job_id=job_id,
            video_id=job.video_id,
            mode=mode,
            priority=job.priority,
            active_jobs=self.store.count_active_jobs_for(job.user_id),
            enqueued_at=job.enqueued_at,
        )

    def _publish(self, job: Job, job_id: str) -> str:
        from .tasks import process_video

        try:
            process_video.apply_async(
                args=[job.to_payload()],
                task_id=job_id,
                priority=celery_priority(job.priority),
                countdown=job.delay or None,
            )
        except (BrokerError, OSError) as exc:
            logger.warning("Could not publish job for video %s (%s); processing in-process", job.video_id, exc)
            self.runner.submit(job)
            return DIRECT
        logger.info("Added video processing job %s for video %s", job_id, job.video_id)
        return CELERY

    def get_queue_stats(self) -> Dict[str, Any]:
        if self.mode != CELERY:
            return {
                "waiting": 0,
                "active": 0,
                "completed": 0,
                "failed": 0,
                "total": 0,
                "mode": DIRECT,
                "message": DIRECT_MODE_MESSAGE,
            }
        tracked = Video.objects.exclude(job_id="")
        stats = {
            "waiting": tracked.filter(status=Video.Status.QUEUED).count(),
            "active": tracked.filter(status__in=(Video.Status.PROCESSING, Video.Status.EDITING)).count(),
            "completed": tracked.filter(status=Video.Status.READY).count(),
            "failed": tracked.filter(status=Video.Status.FAILED).count(),
        }
        stats["total"] = sum(stats.values())
        stats["mode"] = CELERY
        return stats

    def clean_old_jobs(self) -> Dict[str, int]:
        """Drop finished jobs from the stats: completed after 24h, failed after 7 days."""
        if self.mode != CELERY:
            return {"completed": 0, "failed": 0}
        now = timezone.now()
        completed = Video.objects.filter(
            status=Video.Status.READY, processed_at__lt=now - COMPLETED_RETENTION
        ).exclude(job_id="").update(job_id="")
        failed = Video.objects.filter(
            status=Video.Status.FAILED, failed_at__lt=now - FAILED_RETENTION
        ).exclude(job_id="").update(job_id="")
        return {"completed": completed, "failed": failed}

    def get_processing_status(self, video_id) -> Dict[str, Any]:
        video = self.store.get(video_id)
        status = Video.Status.PROCESSING if video.status == Video.Status.EDITING else video.status
        return {
            "status": str(status),
            "progress": video.progress,
            "startedAt": video.processing_started_at,
            "completedAt": video.processed_at,
            "errorMessage": video.error_message or None,
            "outputPath": video.output_path or None,
        }

    def count_active_jobs_for(self, user_id) -> int:
        return self.store.count_active_jobs_for(user_id)


_pipeline: Optional[PipelineService] = None
_pipeline_lock = threading.Lock()


def get_pipeline() -> PipelineService:
    global _pipeline
    if _pipeline is None:
        with _pipeline_lock:
            if _pipeline is None:
                _pipeline = PipelineService()
    return _pipeline
