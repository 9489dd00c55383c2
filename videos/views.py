from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .credits import get_credit_hook
from .errors import AlreadyProcessingError, EmptySourceListError, VideoNotFoundError
from .jobs import StylePreferences
from .models import Video
from .queue import get_pipeline
from .serializers import ProcessRequestSerializer, VideoSerializer, VideoUploadSerializer
from .storage import file_format, reference_url, save_uploaded_file


class VideoUploadView(views.APIView):
    """
    Accepts one or more video files plus the wizard's editingData, stores them
    under MEDIA_ROOT, creates the Video and queues processing.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        ser = VideoUploadSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        files = data["files"]
        editing = data.get("editingData") or {}
        prefs = StylePreferences.from_dict(editing)

        sources = [
            {
                "path": save_uploaded_file(f),
                "original_name": f.name,
                "size": f.size,
                "format": file_format(f.name),
            }
            for f in files
        ]
        title = data.get("title") or prefs.video_name or files[0].name
        video = Video.objects.create(
            owner_id=data["user_id"],
            title=title[:100],
            source_files=sources,
            editing_preferences=editing,
            story_mode=prefs.story_mode,
        )

        handle = get_pipeline().enqueue(
            video.pk, data["user_id"], sources, prefs, priority=data["priority"]
        )
        get_credit_hook().upload_completed(data["user_id"], len(files), prefs.story_mode)

        video.refresh_from_db()
        return Response(
            {"video": VideoSerializer(video).data, "job": handle.to_dict()},
            status=status.HTTP_202_ACCEPTED,
        )


class VideoDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        try:
            video = Video.objects.get(pk=video_id)
        except Video.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)

        data = VideoSerializer(video).data
        data["output_url"] = reference_url(video.output_path, request)
        data["thumbnail_url"] = reference_url(video.thumbnail_path, request)
        return Response(data)


class VideoProcessView(views.APIView):
    """(Re)queue an existing video using its stored source files."""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, video_id):
        ser = ProcessRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        try:
            video = Video.objects.get(pk=video_id)
        except Video.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)

        editing = data.get("editingData")
        if editing is None:
            editing = video.editing_preferences

        try:
            handle = get_pipeline().enqueue(
                video.pk,
                video.owner_id,
                video.source_files,
                editing,
                priority=data["priority"],
                delay=data["delay"],
            )
        except AlreadyProcessingError as exc:
            return Response({"detail": str(exc), "status": exc.status}, status=status.HTTP_409_CONFLICT)
        except EmptySourceListError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        return Response(handle.to_dict(), status=status.HTTP_202_ACCEPTED)


class VideoStatusView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        try:
            data = get_pipeline().get_processing_status(video_id)
        except VideoNotFoundError:
            return Response({"detail": "Not found"}, status=404)
        if data["outputPath"]:
            data["outputUrl"] = reference_url(data["outputPath"], request)
        return Response(data)


class QueueStatsView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return Response(get_pipeline().get_queue_stats())
