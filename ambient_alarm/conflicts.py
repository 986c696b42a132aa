"""
Task conflict detection

Reports enabled tasks whose playback window overlaps a candidate schedule on
some day both cadences can fire. Read-only; safe to call on every keystroke.

Intervals are minutes since midnight and are not wrapped: a task running past
midnight is not compared against early-morning tasks of the next day.
"""

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Tuple

from .models import RepeatMode, TaskConflict
from .repeat import cadences_may_collide
from .store import Store

logger = logging.getLogger(__name__)


class ScheduleLike(Protocol):
    hour: int
    minute: int
    repeat_mode: RepeatMode
    custom_days: Optional[Iterable[int]]
    duration_minutes: Optional[int]
    playlist_id: int


def seconds_to_minutes(total_seconds: int) -> int:
    """Ceiling division: 60s -> 1, 61s -> 2"""
    return (total_seconds + 59) // 60


def task_interval(hour: int, minute: int, duration_minutes: int) -> Tuple[int, int]:
    """Half-open [start, end) in minutes since midnight; end may exceed 1440"""
    start = hour * 60 + minute
    return start, start + duration_minutes


def intervals_overlap(first: Tuple[int, int], second: Tuple[int, int]) -> bool:
    return first[0] < second[1] and second[0] < first[1]


class ConflictDetector:
    """Find enabled tasks that would play at the same time as a candidate"""

    def __init__(self, store: Store):
        self.store = store

    def estimated_duration(self, schedule: ScheduleLike,
                           cache: Optional[Dict[int, int]] = None) -> int:
        """Explicit duration_minutes, else the playlist's total length rounded up to minutes"""
        if schedule.duration_minutes is not None:
            return schedule.duration_minutes

        if cache is not None and schedule.playlist_id in cache:
            return cache[schedule.playlist_id]

        minutes = seconds_to_minutes(self.store.playlist_duration_seconds(schedule.playlist_id))
        if cache is not None:
            cache[schedule.playlist_id] = minutes
        return minutes

    def find_conflicts(self, candidate: ScheduleLike,
                       excluding_id: Optional[int] = None) -> List[TaskConflict]:
        """
        Args:
            candidate: schedule being created or edited
            excluding_id: id of the task being edited, never reported against itself

        Returns:
            Conflicting tasks with id, name and start time
        """
        durations: Dict[int, int] = {}
        candidate_days: FrozenSet[int] = frozenset(candidate.custom_days or ())
        candidate_window = task_interval(
            candidate.hour, candidate.minute, self.estimated_duration(candidate, durations)
        )

        conflicts = []
        for existing in self.store.enabled_tasks():
            if excluding_id is not None and existing.id == excluding_id:
                continue

            if not cadences_may_collide(candidate.repeat_mode, candidate_days,
                                        existing.repeat_mode, existing.custom_days):
                continue

            existing_window = task_interval(
                existing.hour, existing.minute, self.estimated_duration(existing, durations)
            )
            if intervals_overlap(candidate_window, existing_window):
                conflicts.append(TaskConflict(
                    task_id=existing.id,
                    name=existing.name,
                    hour=existing.hour,
                    minute=existing.minute,
                ))

        if conflicts:
            logger.debug(f"Candidate {candidate.hour:02d}:{candidate.minute:02d} conflicts with "
                         f"{[c.task_id for c in conflicts]}")
        return conflicts
