"""
Data models and enums for the scheduling and playback engine
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, FrozenSet, List


class RepeatMode(str, Enum):
    """Task cadence"""
    DAILY = "daily"
    WEEKDAY = "weekday"
    WEEKEND = "weekend"
    CUSTOM = "custom"
    ONCE = "once"


class ExecutionStatus(str, Enum):
    """Execution history row status"""
    STARTED = "started"
    FAILED = "failed"
    COMPLETED = "completed"


@dataclass
class ScheduledTask:
    """A scheduled task as loaded from the store, custom days already parsed"""
    id: Optional[int]
    name: str
    hour: int
    minute: int
    repeat_mode: RepeatMode
    playlist_id: int
    custom_days: Optional[FrozenSet[int]] = None
    volume: int = 50
    fade_in_duration: int = 0
    duration_minutes: Optional[int] = None
    is_enabled: bool = True
    priority: int = 0
    playlist_name: Optional[str] = None
    created_date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "hour": self.hour,
            "minute": self.minute,
            "repeat_mode": self.repeat_mode.value,
            "custom_days": sorted(self.custom_days) if self.custom_days is not None else None,
            "playlist_id": self.playlist_id,
            "playlist_name": self.playlist_name,
            "volume": self.volume,
            "fade_in_duration": self.fade_in_duration,
            "duration_minutes": self.duration_minutes,
            "is_enabled": self.is_enabled,
            "priority": self.priority,
            "created_date": self.created_date.isoformat() if self.created_date else None,
        }


@dataclass(frozen=True)
class PlaylistEntry:
    """One playable entry of a resolved playlist"""
    audio_id: int
    file_path: str
    duration: int
    name: str


@dataclass
class TaskConflict:
    """An existing task whose window overlaps a candidate"""
    task_id: int
    name: str
    hour: int
    minute: int

    def to_dict(self) -> Dict[str, Any]:
        return {"task_id": self.task_id, "name": self.name, "hour": self.hour, "minute": self.minute}


@dataclass
class ExecutionRecord:
    """Execution history row"""
    id: int
    task_id: int
    execution_time: datetime
    status: ExecutionStatus
    duration: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "execution_time": self.execution_time.isoformat(),
            "status": self.status.value,
            "duration": self.duration,
            "error": self.error,
        }


@dataclass
class PlaybackState:
    """Snapshot of the player"""
    is_playing: bool
    current_audio_id: Optional[int]
    current_audio_name: Optional[str]
    volume: float
    playlist_queue: List[int] = field(default_factory=list)
    current_index: int = 0
    is_auto_play: bool = False
    generation: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_playing": self.is_playing,
            "current_audio_id": self.current_audio_id,
            "current_audio_name": self.current_audio_name,
            "volume": self.volume,
            "playlist_queue": list(self.playlist_queue),
            "current_index": self.current_index,
            "is_auto_play": self.is_auto_play,
            "generation": self.generation,
        }


@dataclass
class PlaybackOutcome:
    """Result of one orchestration run"""
    playlist_id: int
    generation: int
    tracks_total: int
    tracks_played: int = 0
    elapsed_seconds: float = 0.0
    preempted: bool = False
