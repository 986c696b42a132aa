"""
Ambient Alarm

Schedule playlists of audio clips by time of day and repeat cadence, and play
them back with fade-in on a single owned audio device.
"""

__version__ = "1.0.0"
__author__ = "Ambient Alarm"

from .config import AmbientAlarmConfig
from .errors import AmbientAlarmError, DeviceUnavailable, EmptyPlaylist, InvalidSchedule, NotFound, StoreError
from .models import ExecutionStatus, RepeatMode, ScheduledTask
from .service import AlarmService

__all__ = [
    "AlarmService",
    "AmbientAlarmConfig",
    "AmbientAlarmError",
    "DeviceUnavailable",
    "EmptyPlaylist",
    "ExecutionStatus",
    "InvalidSchedule",
    "NotFound",
    "RepeatMode",
    "ScheduledTask",
    "StoreError",
]
