from django.urls import path
from .views import QueueStatsView, VideoDetailView, VideoProcessView, VideoStatusView, VideoUploadView

urlpatterns = [
    path("videos/upload/", VideoUploadView.as_view(), name="video_upload"),
    path("videos/<uuid:video_id>/", VideoDetailView.as_view(), name="video_detail"),
    path("videos/<uuid:video_id>/process/", VideoProcessView.as_view(), name="video_process"),
    path("videos/<uuid:video_id>/status/", VideoStatusView.as_view(), name="video_status"),
    path("queue/stats/", QueueStatsView.as_view(), name="queue_stats"),
]
