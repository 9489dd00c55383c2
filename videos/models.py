import uuid
from django.db import models


class Video(models.Model):
    class Status(models.TextChoices):
        UPLOADING = "uploading"
        QUEUED = "queued"
        PROCESSING = "processing"
        EDITING = "editing"  # legacy alias of PROCESSING, read-only
        READY = "ready"
        FAILED = "failed"

    ACTIVE_STATUSES = (Status.QUEUED, Status.PROCESSING, Status.EDITING)
    TERMINAL_STATUSES = (Status.READY, Status.FAILED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner_id = models.CharField(max_length=64, db_index=True)  # owned by the accounts service
    title = models.CharField(max_length=100, blank=True, default="")

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.UPLOADING)
    progress = models.PositiveSmallIntegerField(default=0)  # 0..100
    output_path = models.CharField(max_length=512, blank=True, default="")  # MEDIA_ROOT-relative or S3 key
    error_message = models.TextField(blank=True, default="")

    # [{path, original_name, size, format}], in merge order
    source_files = models.JSONField(default=list, blank=True)
    # wizard answers: editing_style, target_audience, duration, video_name, ...
    editing_preferences = models.JSONField(default=dict, blank=True)
    story_mode = models.BooleanField(default=False)

    merged_path = models.CharField(max_length=512, blank=True, default="")
    thumbnail_path = models.CharField(max_length=512, blank=True, default="")
    duration = models.FloatField(default=0)  # seconds

    job_id = models.CharField(max_length=64, blank=True, default="")
    attempts = models.PositiveSmallIntegerField(default=0)
    queued_at = models.DateTimeField(null=True, blank=True)
    processing_started_at = models.DateTimeField(null=True, blank=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    processing_duration_ms = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["owner_id", "status"], name="video_owner_status_idx"),
            models.Index(fields=["status", "processed_at"], name="video_status_processed_idx"),
        ]

    def __str__(self):
        return f"{self.title or self.id} ({self.status})"


class CreditAccount(models.Model):
    """Per-user credit balance debited once per completed upload."""

    user_id = models.CharField(max_length=64, unique=True)
    balance = models.IntegerField(default=0)
    used = models.PositiveIntegerField(default=0)
    unlimited = models.BooleanField(default=False)  # god plan / pre-launch users

    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.user_id}: {self.balance}"
