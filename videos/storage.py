import logging
import mimetypes
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple
from uuid import uuid4

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import MissingSourceError, TransientError

logger = logging.getLogger(__name__)


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def get_presign_client():
    """
    Separate client for presigned URLs handed to browsers.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_PUBLIC_ENDPOINT,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
        ),
    )


def create_presigned_get(key: str, expires: Optional[int] = None) -> str:
    s3 = get_presign_client()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": settings.S3_BUCKET, "Key": key},
        ExpiresIn=expires or settings.S3_PRESIGN_EXPIRE_SECONDS,
        HttpMethod="GET",
    )


def upload_file(local_path, key: str, content_type: Optional[str] = None):
    s3 = get_s3_client()
    extra = {}
    if content_type:
        extra["ContentType"] = content_type
    s3.upload_file(str(local_path), settings.S3_BUCKET, key, ExtraArgs=extra or None)


def media_path(rel: str) -> Path:
    return Path(settings.MEDIA_ROOT) / rel


def relative_to_media(path) -> str:
    path = Path(path)
    try:
        return str(path.relative_to(settings.MEDIA_ROOT))
    except ValueError:
        return str(path)


def save_uploaded_file(djangofile) -> str:
    """Save to MEDIA_ROOT/uploads/<uuid>_<name> and return relative path."""
    uploads_dir = Path(settings.MEDIA_ROOT) / "uploads"
    uploads_dir.mkdir(parents=True, exist_ok=True)
    safe_name = f"{uuid4().hex}_{os.path.basename(djangofile.name)}"
    dest = uploads_dir / safe_name
    with open(dest, "wb") as f:
        for chunk in djangofile.chunks():
            f.write(chunk)
    return str(dest.relative_to(settings.MEDIA_ROOT))


def localize_source(rel_or_key: str) -> Tuple[Path, bool]:
    """
    Return (local_path, is_temp). Absolute paths and files under MEDIA_ROOT are
    used in place; anything else is treated as an S3 key and downloaded.
    """
    candidate = Path(rel_or_key)
    if candidate.is_absolute():
        if candidate.is_file():
            return candidate, False
        raise MissingSourceError(candidate)

    local_candidate = media_path(rel_or_key)
    if local_candidate.is_file():
        return local_candidate, False

    tf = tempfile.NamedTemporaryFile(delete=False, suffix=candidate.suffix)
    tf.close()
    try:
        get_s3_client().download_file(settings.S3_BUCKET, rel_or_key, tf.name)
    except ClientError as exc:
        Path(tf.name).unlink(missing_ok=True)
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in {"404", "NoSuchKey", "NotFound"}:
            raise MissingSourceError(rel_or_key)
        raise TransientError(f"Could not download {rel_or_key}: {exc}")
    except BotoCoreError as exc:
        Path(tf.name).unlink(missing_ok=True)
        raise TransientError(f"Could not download {rel_or_key}: {exc}")
    logger.info("Downloaded s3://%s/%s to %s", settings.S3_BUCKET, rel_or_key, tf.name)
    return Path(tf.name), True


def output_dir(video_id) -> Path:
    path = Path(settings.MEDIA_ROOT) / settings.VIDEO_OUTPUT_DIR / str(video_id)
    path.mkdir(parents=True, exist_ok=True)
    return path


def publish(local_path, content_type: str) -> str:
    """Reference stored on the video: an S3 key when uploading, else a MEDIA_ROOT-relative path."""
    rel = relative_to_media(local_path)
    if not settings.VIDEO_UPLOAD_OUTPUTS_TO_S3:
        return rel
    try:
        upload_file(local_path, rel, content_type=content_type)
    except (BotoCoreError, ClientError) as exc:
        raise TransientError(f"Could not upload {rel}: {exc}")
    logger.info("Uploaded %s to s3://%s/%s", local_path, settings.S3_BUCKET, rel)
    return rel


def reference_url(reference: str, request=None) -> Optional[str]:
    if not reference:
        return None
    if media_path(reference).exists():
        url = f"{settings.MEDIA_URL}{reference}"
        return request.build_absolute_uri(url) if request is not None else url
    return create_presigned_get(reference)


def guess_kind(path: str) -> str:
    """Return 'image' | 'video' | 'other' based on mimetype/extension."""
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        return "other"
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "other"


def file_format(name: str) -> str:
    return Path(name).suffix.lstrip(".").lower()
