from rest_framework import serializers

from .models import Video
from .storage import guess_kind


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            "id",
            "owner_id",
            "title",
            "status",
            "progress",
            "output_path",
            "thumbnail_path",
            "duration",
            "error_message",
            "source_files",
            "editing_preferences",
            "story_mode",
            "attempts",
            "queued_at",
            "processing_started_at",
            "processed_at",
            "created_at",
            "updated_at",
        ]


class VideoUploadSerializer(serializers.Serializer):
    files = serializers.ListField(child=serializers.FileField(), allow_empty=False)
    user_id = serializers.CharField(max_length=64)
    title = serializers.CharField(max_length=100, required=False, allow_blank=True)
    # wizard answers, sent as a JSON string alongside multipart uploads
    editingData = serializers.JSONField(required=False)
    priority = serializers.IntegerField(required=False, default=0, min_value=0, max_value=9)

    def validate_files(self, value):
        bad = [f.name for f in value if guess_kind(f.name) != "video"]
        if bad:
            raise serializers.ValidationError(f"Unsupported file type: {bad}. Upload video files only.")
        return value

    def validate_editingData(self, value):
        if value in (None, ""):
            return {}
        if not isinstance(value, dict):
            raise serializers.ValidationError("editingData must be a JSON object.")
        return value


class ProcessRequestSerializer(serializers.Serializer):
    editingData = serializers.JSONField(required=False)
    priority = serializers.IntegerField(required=False, default=0, min_value=0, max_value=9)
    delay = serializers.FloatField(required=False, default=0, min_value=0)

    def validate_editingData(self, value):
        if value is not None and not isinstance(value, dict):
            raise serializers.ValidationError("editingData must be a JSON object.")
        return value
