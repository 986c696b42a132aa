"""
Request models for the command boundary
"""

from pydantic import BaseModel, Field
from typing import List, Optional

from .models import RepeatMode


class ScheduleFields(BaseModel):
    """Fields that decide when a task plays and for how long"""
    hour: int = Field(..., ge=0, le=23, description="Hour of day, 0-23")
    minute: int = Field(..., ge=0, le=59, description="Minute, 0-59")
    repeat_mode: RepeatMode = Field(..., description="daily, weekday, weekend, custom or once")
    custom_days: Optional[List[int]] = Field(
        default=None, description="Weekday indices 0=Sunday..6=Saturday; required for custom mode"
    )
    playlist_id: int = Field(..., ge=1, description="Playlist to play")
    duration_minutes: Optional[int] = Field(
        default=None, ge=1, description="Explicit playback length for conflict checks"
    )


class TaskDraft(ScheduleFields):
    """Everything needed to create or update a scheduled task"""
    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    volume: int = Field(default=50, ge=0, le=100, description="Target volume 0-100")
    fade_in_duration: int = Field(default=0, ge=0, le=3600, description="Fade-in seconds, 0 = none")
    priority: int = Field(default=0, description="Higher is evaluated first")


class ConflictQuery(ScheduleFields):
    """Candidate schedule to test against existing tasks"""
    excluding_id: Optional[int] = Field(default=None, description="Task being edited")


class EnabledToggle(BaseModel):
    enabled: bool


class VolumeRequest(BaseModel):
    volume: float = Field(..., ge=0.0, le=1.0, description="Device volume 0.0-1.0")


class PlayRequest(BaseModel):
    auto_advance: bool = Field(default=True, description="Play the whole playlist, not just the first entry")
