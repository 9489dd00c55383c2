from celery import shared_task
from celery.utils.log import get_task_logger
from django.conf import settings

from .jobs import Job
from .worker import Outcome, VideoWorker, retry_delay

logger = get_task_logger(__name__)


@shared_task(bind=True, name="videos.process_video", acks_late=True)
def process_video(self, payload: dict) -> str:
    """
    Celery entry point: rebuild the job from its JSON payload and run one attempt.
    Retries are scheduled here so the broker, not a sleeping worker, holds the backoff.
    """
    job = Job.from_payload(payload)
    attempt = self.request.retries + 1
    max_attempts = settings.VIDEO_MAX_ATTEMPTS

    outcome = VideoWorker().execute(job, attempt=attempt, max_attempts=max_attempts)
    if outcome is Outcome.RETRY:
        countdown = retry_delay(attempt)
        logger.info("Retrying video %s in %.1fs (attempt %d/%d)", job.video_id, countdown, attempt + 1, max_attempts)
        raise self.retry(countdown=countdown, max_retries=max_attempts - 1)
    return outcome.value


@shared_task(name="videos.clean_old_jobs")
def clean_old_jobs() -> dict:
    from .queue import get_pipeline

    trimmed = get_pipeline().clean_old_jobs()
    logger.info("Trimmed job history: %s", trimmed)
    return trimmed
