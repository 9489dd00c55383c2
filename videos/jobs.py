"""Transient job description shipped through the queue as JSON."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import EmptySourceListError
from .styles import EncodingPlan, resolve_plan


@dataclass
class SourceFile:
    path: str  # MEDIA_ROOT-relative, absolute, or an S3 key
    original_name: str = ""
    size: int = 0
    format: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceFile":
        return cls(
            path=str(data.get("path") or data.get("filePath") or ""),
            original_name=str(data.get("original_name") or data.get("originalName") or ""),
            size=int(data.get("size") or data.get("fileSize") or 0),
            format=str(data.get("format") or ""),
        )


# wizard (camelCase) key -> field name
_PREFERENCE_KEYS = {
    "editingStyle": "editing_style",
    "targetAudience": "target_audience",
    "videoName": "video_name",
    "videoType": "video_type",
    "specialRequests": "special_requests",
    "storyMode": "story_mode",
}


@dataclass
class StylePreferences:
    """Answers from the editing wizard.

    Only ``editing_style``, ``target_audience`` and ``duration`` influence
    encoding. ``special_requests`` is stored for the editors and never
    reaches an ffmpeg argument list.
    """

    editing_style: Optional[str] = None
    target_audience: Optional[str] = None
    duration: Optional[str] = None
    video_name: str = ""
    video_type: str = ""
    special_requests: str = ""
    story_mode: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "StylePreferences":
        data = data or {}
        values = {}
        for key, value in data.items():
            name = _PREFERENCE_KEYS.get(key, key)
            if name in cls.__dataclass_fields__:
                values[name] = value
        values["story_mode"] = bool(values.get("story_mode", False))
        for name in ("video_name", "video_type", "special_requests"):
            values[name] = str(values.get(name) or "")
        return cls(**values)

    def plan(self) -> EncodingPlan:
        return resolve_plan(self.editing_style, self.target_audience, self.duration)


@dataclass
class Job:
    video_id: str
    user_id: str
    source_files: List[SourceFile]
    preferences: StylePreferences = field(default_factory=StylePreferences)
    priority: int = 0
    delay: float = 0.0
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.source_files:
            raise EmptySourceListError()
        self.video_id = str(self.video_id)
        self.user_id = str(self.user_id)

    @property
    def needs_merge(self) -> bool:
        return len(self.source_files) > 1

    @property
    def plan(self) -> EncodingPlan:
        return self.preferences.plan()

    def to_payload(self) -> Dict[str, Any]:
        return {
            "video_id": self.video_id,
            "user_id": self.user_id,
            "source_files": [asdict(f) for f in self.source_files],
            "preferences": asdict(self.preferences),
            "priority": self.priority,
            "delay": self.delay,
            "enqueued_at": self.enqueued_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Job":
        enqueued_at = payload.get("enqueued_at")
        return cls(
            video_id=payload["video_id"],
            user_id=payload["user_id"],
            source_files=[SourceFile.from_dict(f) for f in payload.get("source_files") or []],
            preferences=StylePreferences.from_dict(payload.get("preferences")),
            priority=int(payload.get("priority") or 0),
            delay=float(payload.get("delay") or 0),
            enqueued_at=datetime.fromisoformat(enqueued_at) if enqueued_at else datetime.now(timezone.utc),
        )
