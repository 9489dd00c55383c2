import logging
from concurrent.futures import Executor, Future
from pathlib import Path

import pytest

from videos.models import Video
from videos.probe import StreamLayout, ThumbnailResult


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future


@pytest.fixture(autouse=True)
def pipeline_settings(settings, tmp_path, monkeypatch):
    # let caplog see the app loggers configured with propagate=False
    monkeypatch.setattr(logging.getLogger("videos"), "propagate", True)
    settings.MEDIA_ROOT = tmp_path / "media"
    settings.MEDIA_ROOT.mkdir()
    settings.VIDEO_QUEUE_MODE = "direct"
    settings.VIDEO_MUSIC_DIR = ""
    settings.VIDEO_UPLOAD_OUTPUTS_TO_S3 = False
    settings.VIDEO_MAX_ATTEMPTS = 3
    settings.VIDEO_RETRY_BACKOFF = 2.0
    settings.CREDIT_LEDGER = "videos.credits.AccountLedger"
    return settings


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def upload(settings):
    """Create a fake upload under MEDIA_ROOT and return its relative path."""

    def make(name="clip.mp4", data=b"\x00\x00\x00\x18ftypmp42"):
        path = Path(settings.MEDIA_ROOT) / "uploads" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return f"uploads/{name}"

    return make


@pytest.fixture
def make_video(upload):
    def make(files=1, status=Video.Status.UPLOADING, owner_id="user-1", **fields):
        sources = [{"path": upload(f"part{i}.mp4"), "original_name": f"part{i}.mp4"} for i in range(files)]
        return Video.objects.create(owner_id=owner_id, status=status, source_files=sources, **fields)

    return make


class FakeTools:
    """Stands in for ffmpeg/ffprobe at the worker's call sites."""

    def __init__(self):
        self.duration = 12.0
        self.layout = StreamLayout(video=1, audio=1)
        self.encode_errors = []
        self.merge_errors = []
        self.encode_calls = []
        self.merge_calls = []
        self.progress_at_encode = []
        self.thumbnail_verified = False

    def encode(self, graph, source, output, *, on_progress=None, duration=None):
        video_id = Path(output).parent.name
        self.encode_calls.append({"graph": graph, "source": Path(source), "duration": duration})
        self.progress_at_encode.append(Video.objects.get(pk=video_id).progress)
        if self.encode_errors:
            raise self.encode_errors.pop(0)
        if on_progress:
            for pct in (25, 50, 100):
                on_progress(pct)
        Path(output).write_bytes(b"encoded")
        return Path(output)

    def merge_sources(self, paths, output, *, on_progress=None, resolution=None):
        from videos.merge import MergeResult

        self.merge_calls.append([Path(p) for p in paths])
        if self.merge_errors:
            raise self.merge_errors.pop(0)
        if on_progress:
            on_progress(50)
            on_progress(100)
        Path(output).write_bytes(b"merged")
        return MergeResult(path=Path(output), layout=self.layout, duration=self.duration * len(paths))

    def probe_duration(self, path, default=10.0):
        return self.duration

    def probe_layout(self, path):
        return self.layout

    def thumbnail(self, source, output, duration=None):
        if self.thumbnail_verified:
            Path(output).write_bytes(b"jpeg")
        return ThumbnailResult(path=Path(output), offset=1.2, verified=self.thumbnail_verified)


@pytest.fixture
def fake_tools(monkeypatch):
    tools = FakeTools()
    monkeypatch.setattr("videos.worker.encode", tools.encode)
    monkeypatch.setattr("videos.worker.merge_sources", tools.merge_sources)
    monkeypatch.setattr("videos.worker.probe_duration", tools.probe_duration)
    monkeypatch.setattr("videos.worker.probe_layout", tools.probe_layout)
    monkeypatch.setattr("videos.worker.generate_optimal_thumbnail", tools.thumbnail)
    return tools
