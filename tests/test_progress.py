import uuid

import pytest

from videos.errors import VideoNotFoundError
from videos.models import Video
from videos.progress import PROGRESS_CEILING, ProgressSink, VideoStore

pytestmark = pytest.mark.django_db


def _progress(video):
    video.refresh_from_db()
    return video.progress


def test_advance_is_monotonic_and_capped(make_video):
    video = make_video(status=Video.Status.PROCESSING)
    sink = ProgressSink(video.pk)

    sink.advance(30)
    sink.advance(20)
    assert _progress(video) == 30

    sink.advance(150)
    assert _progress(video) == PROGRESS_CEILING


def test_replayed_tick_from_another_sink_cannot_lower_progress(make_video):
    video = make_video(status=Video.Status.PROCESSING)
    ProgressSink(video.pk).advance(60)
    ProgressSink(video.pk).advance(10)
    assert _progress(video) == 60


def test_advance_ignored_after_terminal_state(make_video):
    video = make_video(status=Video.Status.FAILED)
    ProgressSink(video.pk).advance(40)
    assert _progress(video) == 0


def test_start_keeps_first_start_time(make_video):
    video = make_video(status=Video.Status.QUEUED)
    sink = ProgressSink(video.pk)

    sink.start(attempt=1)
    video.refresh_from_db()
    first_start = video.processing_started_at
    assert video.status == Video.Status.PROCESSING
    assert first_start is not None

    sink.start(attempt=2)
    video.refresh_from_db()
    assert video.processing_started_at == first_start
    assert video.attempts == 2


def test_complete_and_fail(make_video):
    video = make_video(status=Video.Status.PROCESSING)
    sink = ProgressSink(video.pk)
    sink.start()
    sink.complete("outputs/x/final.mp4", duration=12.0)

    video.refresh_from_db()
    assert video.status == Video.Status.READY
    assert video.progress == 100
    assert video.output_path == "outputs/x/final.mp4"
    assert video.duration == 12.0
    assert video.processing_duration_ms is not None

    sink.fail("x" * 5000)
    video.refresh_from_db()
    assert video.status == Video.Status.FAILED
    assert video.output_path == ""
    assert len(video.error_message) == 4000
    assert video.failed_at is not None


def test_updates_touch_only_named_columns(make_video):
    video = make_video(status=Video.Status.PROCESSING, title="Original")
    stale = Video.objects.get(pk=video.pk)
    Video.objects.filter(pk=video.pk).update(title="Renamed elsewhere")

    ProgressSink(stale.pk).advance(50)

    video.refresh_from_db()
    assert video.title == "Renamed elsewhere"
    assert video.progress == 50


def test_claim_rejects_second_job(make_video):
    video = make_video()
    store = VideoStore()

    assert store.claim_for_queue(video.pk, job_id="one")
    assert not store.claim_for_queue(video.pk, job_id="two")

    video.refresh_from_db()
    assert video.status == Video.Status.QUEUED
    assert video.job_id == "one"


def test_claim_resets_previous_result(make_video):
    video = make_video(
        status=Video.Status.FAILED, progress=40, error_message="boom", output_path="old.mp4", attempts=3
    )
    assert VideoStore().claim_for_queue(video.pk)

    video.refresh_from_db()
    assert (video.progress, video.error_message, video.output_path, video.attempts) == (0, "", "", 0)
    assert video.queued_at is not None


def test_count_active_jobs(make_video):
    make_video(status=Video.Status.QUEUED, owner_id="u")
    make_video(status=Video.Status.EDITING, owner_id="u")
    make_video(status=Video.Status.READY, owner_id="u")
    make_video(status=Video.Status.PROCESSING, owner_id="someone-else")
    assert VideoStore().count_active_jobs_for("u") == 2


def test_get_unknown_or_malformed_id():
    store = VideoStore()
    with pytest.raises(VideoNotFoundError):
        store.get(uuid.uuid4())
    with pytest.raises(VideoNotFoundError):
        store.get("not-a-uuid")
