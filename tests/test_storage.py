from pathlib import Path

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError
from django.core.files.uploadedfile import SimpleUploadedFile

from videos import storage
from videos.errors import MissingSourceError, TransientError


class FakeS3:
    def __init__(self, error=None):
        self.error = error
        self.downloads = []
        self.uploads = []

    def download_file(self, bucket, key, filename):
        self.downloads.append((bucket, key))
        if self.error:
            raise self.error
        Path(filename).write_bytes(b"from s3")

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        self.uploads.append((filename, bucket, key, ExtraArgs))


@pytest.fixture
def s3(monkeypatch):
    client = FakeS3()
    monkeypatch.setattr(storage, "get_s3_client", lambda: client)
    return client


def test_local_upload_is_used_in_place(upload, settings, s3):
    rel = upload("local.mp4")
    path, is_temp = storage.localize_source(rel)
    assert path == Path(settings.MEDIA_ROOT) / rel
    assert not is_temp
    assert s3.downloads == []


def test_missing_absolute_path(s3):
    with pytest.raises(MissingSourceError):
        storage.localize_source("/nowhere/clip.mp4")


def test_s3_key_is_downloaded_to_temp_file(s3, settings):
    path, is_temp = storage.localize_source("uploads/abc_remote.mp4")
    try:
        assert is_temp
        assert path.suffix == ".mp4"
        assert path.read_bytes() == b"from s3"
        assert s3.downloads == [(settings.S3_BUCKET, "uploads/abc_remote.mp4")]
    finally:
        path.unlink(missing_ok=True)


def test_absent_s3_key_is_missing_source(s3):
    s3.error = ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
    with pytest.raises(MissingSourceError):
        storage.localize_source("uploads/gone.mp4")


def test_unreachable_s3_is_transient(s3):
    s3.error = EndpointConnectionError(endpoint_url="http://127.0.0.1:9000")
    with pytest.raises(TransientError):
        storage.localize_source("uploads/elsewhere.mp4")


def test_publish_keeps_local_reference(settings, s3):
    out = storage.output_dir("vid") / "final.mp4"
    out.write_bytes(b"x")
    assert storage.publish(out, "video/mp4") == "outputs/vid/final.mp4"
    assert s3.uploads == []


def test_publish_uploads_when_enabled(settings, s3):
    settings.VIDEO_UPLOAD_OUTPUTS_TO_S3 = True
    out = storage.output_dir("vid") / "final.mp4"
    out.write_bytes(b"x")

    assert storage.publish(out, "video/mp4") == "outputs/vid/final.mp4"
    [(filename, bucket, key, extra)] = s3.uploads
    assert key == "outputs/vid/final.mp4"
    assert extra == {"ContentType": "video/mp4"}


def test_save_uploaded_file(settings):
    rel = storage.save_uploaded_file(SimpleUploadedFile("../../evil name.mp4", b"data"))
    assert rel.startswith("uploads/")
    assert rel.endswith("_evil name.mp4")
    assert (Path(settings.MEDIA_ROOT) / rel).read_bytes() == b"data"


def test_guess_kind_and_format():
    assert storage.guess_kind("clip.MP4") == "video"
    assert storage.guess_kind("photo.jpg") == "image"
    assert storage.guess_kind("notes") == "other"
    assert storage.file_format("Clip.MOV") == "mov"
