from datetime import datetime, timezone
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from .config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProgressSnapshot(BaseModel):
    """Point-in-time playback progress for one content item."""
    model_config = ConfigDict(frozen=True)

    content_id: str
    watched_seconds: float = Field(default=0.0, ge=0)
    total_seconds: float = Field(default=0.0, ge=0)
    progress_percentage: float = Field(default=0.0, ge=0, le=100)
    is_completed: bool = False
    last_watched_at: datetime = Field(default_factory=utcnow)

    @staticmethod
    def percentage_of(watched_seconds: float, total_seconds: float) -> float:
        if total_seconds <= 0:
            return 0.0
        return max(0.0, min(100.0, watched_seconds * 100 / total_seconds))

    @classmethod
    def compute(cls, content_id: str, watched_seconds: float, total_seconds: float,
                completion_threshold: float, last_watched_at: Optional[datetime] = None) -> "ProgressSnapshot":
        """Build a snapshot with percentage and completion derived from the durations."""
        pct = cls.percentage_of(watched_seconds, total_seconds)
        return cls(
            content_id=content_id,
            watched_seconds=watched_seconds,
            total_seconds=total_seconds,
            progress_percentage=pct,
            is_completed=pct >= completion_threshold,
            last_watched_at=last_watched_at or utcnow(),
        )

    def completed(self) -> "ProgressSnapshot":
        """Pinned completion, independent of watched_seconds."""
        return self.model_copy(update={
            "progress_percentage": 100.0,
            "is_completed": True,
            "last_watched_at": utcnow(),
        })

    def touched(self) -> "ProgressSnapshot":
        return self.model_copy(update={"last_watched_at": utcnow()})


class RemoteProgress(BaseModel):
    """Progress fields as returned by the content API; all optional."""
    watched_seconds: Optional[float] = None
    total_seconds: Optional[float] = None
    is_completed: Optional[bool] = None
    last_watched_at: Optional[datetime] = None


class SyncOptions(BaseModel):
    save_interval_ms: int = Field(default_factory=lambda: settings.SAVE_INTERVAL_MS, ge=0)
    min_progress_change: float = Field(default_factory=lambda: settings.MIN_PROGRESS_CHANGE_SECONDS, ge=0)
    completion_threshold: float = Field(default_factory=lambda: settings.COMPLETION_THRESHOLD_PERCENT, ge=0, le=100)
    auto_save: bool = Field(default_factory=lambda: settings.AUTO_SAVE)


class WatchEntry(BaseModel):
    content_id: str
    progress: float
    timestamp: float  # epoch seconds


class WatchState(BaseModel):
    currently_watching: Optional[WatchEntry] = None
    progress: Dict[str, float] = Field(default_factory=dict)
    continue_watching: List[str] = Field(default_factory=list)  # Ordered by LRU (recent last)
