"""The only write path from the pipeline back into ``Video`` rows.

Every write is a queryset ``update()`` of named columns, so edits other
services make to unrelated fields (title, visibility, ...) are never
overwritten by a stale in-memory instance.
"""

import logging
from typing import Optional

from django.core.exceptions import ValidationError
from django.db.models import F
from django.utils import timezone

from .errors import VideoNotFoundError
from .models import Video

logger = logging.getLogger(__name__)

# Progress stays below this until the job reaches a terminal state.
PROGRESS_CEILING = 90
MAX_ERROR_CHARS = 4000


class VideoStore:
    """Persistence operations the pipeline needs, nothing more."""

    def get(self, video_id) -> Video:
        try:
            return Video.objects.get(pk=video_id)
        except (Video.DoesNotExist, ValidationError, ValueError):
            raise VideoNotFoundError(video_id)

    def update_fields(self, video_id, *, only_status=None, **fields) -> int:
        qs = Video.objects.filter(pk=video_id)
        if only_status is not None:
            qs = qs.filter(status__in=only_status)
        fields["updated_at"] = timezone.now()
        return qs.update(**fields)

    def count_active_jobs_for(self, user_id) -> int:
        return Video.objects.filter(owner_id=str(user_id), status__in=Video.ACTIVE_STATUSES).count()

    def claim_for_queue(self, video_id, **fields) -> bool:
        """Atomically move a video into ``queued`` unless a job already owns it."""
        now = timezone.now()
        updated = (
            Video.objects.filter(pk=video_id)
            .exclude(status__in=Video.ACTIVE_STATUSES)
            .update(
                status=Video.Status.QUEUED,
                progress=0,
                output_path="",
                error_message="",
                attempts=0,
                queued_at=now,
                processing_started_at=None,
                processed_at=None,
                failed_at=None,
                processing_duration_ms=None,
                updated_at=now,
                **fields,
            )
        )
        return updated == 1


class ProgressSink:
    """Writes one job's progress and terminal state.

    ``advance`` only ever raises the stored value, using a conditional
    update so concurrent or replayed ticks cannot move progress backwards.
    """

    def __init__(self, video_id, store: Optional[VideoStore] = None):
        self.video_id = str(video_id)
        self.store = store or VideoStore()
        self._last = -1

    def start(self, attempt: int = 1) -> None:
        fields = {"status": Video.Status.PROCESSING, "attempts": F("attempts") + 1}
        if attempt <= 1:
            fields["processing_started_at"] = timezone.now()
        rows = self.store.update_fields(self.video_id, only_status=Video.ACTIVE_STATUSES, **fields)
        if not rows:
            logger.warning("Video %s vanished or left the queue before processing started", self.video_id)

    def advance(self, percent: float) -> int:
        value = max(0, min(PROGRESS_CEILING, int(percent)))
        if value <= self._last:
            return self._last
        Video.objects.filter(
            pk=self.video_id,
            status__in=Video.ACTIVE_STATUSES,
            progress__lt=value,
        ).update(progress=value, updated_at=timezone.now())
        self._last = value
        return value

    def record(self, **fields) -> None:
        """Non-state bookkeeping (merged file, duration) for the running job."""
        self.store.update_fields(self.video_id, **fields)

    def complete(self, output_path: str, **extra) -> None:
        now = timezone.now()
        started = (
            Video.objects.filter(pk=self.video_id).values_list("processing_started_at", flat=True).first()
        )
        duration_ms = int((now - started).total_seconds() * 1000) if started else None
        self.store.update_fields(
            self.video_id,
            status=Video.Status.READY,
            progress=100,
            output_path=output_path,
            error_message="",
            processed_at=now,
            processing_duration_ms=duration_ms,
            **extra,
        )
        self._last = 100

    def fail(self, reason: str) -> None:
        self.store.update_fields(
            self.video_id,
            status=Video.Status.FAILED,
            output_path="",
            error_message=(reason or "Processing failed")[:MAX_ERROR_CHARS],
            failed_at=timezone.now(),
        )
