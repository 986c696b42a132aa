"""
Service layer: the commands exposed to the HTTP API and the CLI

Wires the store, player, orchestrator, conflict detector and scheduler
together and validates incoming task definitions before they reach the store.
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

from .config import AmbientAlarmConfig
from .conflicts import ConflictDetector
from .device import AudioDevice, create_device
from .errors import EmptyPlaylist
from .logging_utils import get_logger, log_error
from .models import ExecutionRecord, PlaybackState, PlaylistEntry, ScheduledTask, TaskConflict
from .orchestrator import PlaybackOrchestrator
from .player import Player
from .repeat import validate_cadence
from .scheduler import TaskScheduler
from .schemas import ConflictQuery, TaskDraft
from .store import Store

logger = get_logger(__name__)


class AlarmService:
    """Facade over the engine used by every outer surface"""

    def __init__(self, store: Store, device: AudioDevice,
                 config: Optional[AmbientAlarmConfig] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = datetime.now,
                 synchronous: bool = False,
                 wait_step_s: float = 1.0):
        """
        Args:
            store: persisted store
            device: the one playback device
            config: engine configuration, defaults when omitted
            sleep: blocking sleep used by playback waits
            clock: local wall clock
            synchronous: run playback on the calling thread (tests, CLI tick)
            wait_step_s: slice length of playback waits
        """
        self.config = config or AmbientAlarmConfig()
        self.store = store
        self.player = Player(device, volume=self.config.default_volume / 100.0)
        self.orchestrator = PlaybackOrchestrator(store, self.player, sleep=sleep, clock=clock,
                                                 wait_step_s=wait_step_s)
        self.detector = ConflictDetector(store)
        self.scheduler = TaskScheduler(store, self.orchestrator,
                                       poll_interval_s=self.config.poll_interval_s,
                                       clock=clock, synchronous=synchronous)
        self._synchronous = synchronous

    @classmethod
    def from_config(cls, config: Optional[AmbientAlarmConfig] = None, **kwargs) -> "AlarmService":
        """Open the configured database and device; kwargs go to the constructor"""
        config = config or AmbientAlarmConfig.from_env()
        store = Store.from_url(config.database_url)
        store.close_interrupted_runs()
        device = create_device(config.audio_backend)
        logger.info(f"Engine ready (database: {config.database_url}, backend: {config.audio_backend})")
        return cls(store, device, config, **kwargs)

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        """Stop the poll loop and end any playback session"""
        self.scheduler.stop()
        self.player.stop()

    # Tasks

    def list_scheduled_tasks(self) -> List[ScheduledTask]:
        return self.store.list_tasks()

    def get_task(self, task_id: int) -> ScheduledTask:
        return self.store.get_task(task_id)

    def create_task(self, draft: Union[TaskDraft, Dict[str, Any]]) -> int:
        """
        Validate and persist a new task.

        Raises:
            pydantic.ValidationError: field out of range
            InvalidSchedule: custom mode without days, or bad day indices
            NotFound: playlist does not exist
        """
        task = _task_from_draft(draft)
        task_id = self.store.insert_task(task)
        logger.info(f"Created task {task_id} '{task.name}' at {task.hour:02d}:{task.minute:02d} "
                    f"({task.repeat_mode.value})", extra={"task_id": task_id})
        return task_id

    def update_task(self, task_id: int, draft: Union[TaskDraft, Dict[str, Any]]) -> None:
        task = _task_from_draft(draft)
        self.store.update_task(task_id, task)
        logger.info(f"Updated task {task_id}", extra={"task_id": task_id})

    def delete_task(self, task_id: int) -> None:
        self.store.delete_task(task_id)
        logger.info(f"Deleted task {task_id}", extra={"task_id": task_id})

    def set_task_enabled(self, task_id: int, enabled: bool) -> None:
        self.store.set_task_enabled(task_id, enabled)
        logger.info(f"Task {task_id} {'enabled' if enabled else 'disabled'}", extra={"task_id": task_id})

    def check_conflicts(self, query: Union[ConflictQuery, Dict[str, Any]]) -> List[TaskConflict]:
        if not isinstance(query, ConflictQuery):
            query = ConflictQuery.model_validate(query)
        mode, days = validate_cadence(query.repeat_mode, query.custom_days)
        candidate = ScheduledTask(
            id=None,
            name="",
            hour=query.hour,
            minute=query.minute,
            repeat_mode=mode,
            playlist_id=query.playlist_id,
            custom_days=days,
            duration_minutes=query.duration_minutes,
        )
        return self.detector.find_conflicts(candidate, excluding_id=query.excluding_id)

    def run_task_now(self, task_id: int) -> Dict[str, Any]:
        """Fire a task out of schedule; its history row counts as today's run"""
        firing = self.scheduler.run_task_now(task_id)
        return {"task_id": firing.task.id, "history_id": firing.history_id}

    def tasks_for_playlist(self, playlist_id: int) -> List[str]:
        """Names of enabled tasks that would break if the playlist were deleted"""
        self.store.playlist_name(playlist_id)
        return self.store.enabled_task_names_for_playlist(playlist_id)

    def execution_history(self, task_id: Optional[int] = None, limit: int = 50) -> List[ExecutionRecord]:
        return self.store.list_history(task_id=task_id, limit=limit)

    # Playback

    def play_playlist_now(self, playlist_id: int, auto_advance: bool = True) -> Dict[str, Any]:
        """
        Start a playlist immediately at the player's current volume,
        preempting whatever is playing.

        The playlist is checked before this returns; playback itself runs in
        the background.

        Raises:
            NotFound: playlist does not exist
            EmptyPlaylist: playlist has no entries
        """
        entries = self.store.playlist_entries(playlist_id)
        if not entries:
            raise EmptyPlaylist(playlist_id)

        self._run_in_background(
            f"ManualPlay-{playlist_id}",
            self.orchestrator.play_playlist,
            playlist_id, round(self.player.volume * 100), 0, auto_advance,
        )
        return {"playlist_id": playlist_id, "tracks": len(entries), "auto_advance": auto_advance}

    def play_audio(self, audio_id: int, volume: Optional[int] = None) -> PlaylistEntry:
        return self.orchestrator.play_audio(audio_id, volume)

    def pause(self) -> None:
        self.player.pause()

    def resume(self) -> None:
        self.player.resume()

    def stop_playback(self) -> None:
        self.player.stop()

    def next_track(self) -> Optional[PlaylistEntry]:
        return self.orchestrator.skip(1)

    def previous_track(self) -> Optional[PlaylistEntry]:
        return self.orchestrator.skip(-1)

    def set_volume(self, volume: float) -> None:
        self.player.set_volume(volume)

    def player_state(self) -> PlaybackState:
        return self.player.state()

    def _run_in_background(self, name: str, target: Callable, *args) -> None:
        def runner():
            try:
                target(*args)
            except Exception as e:
                log_error(logger, e, {"job": name})

        if self._synchronous:
            runner()
            return
        threading.Thread(target=runner, name=name, daemon=True).start()


def _task_from_draft(draft: Union[TaskDraft, Dict[str, Any]]) -> ScheduledTask:
    if not isinstance(draft, TaskDraft):
        draft = TaskDraft.model_validate(draft)
    mode, days = validate_cadence(draft.repeat_mode, draft.custom_days)
    return ScheduledTask(
        id=None,
        name=draft.name,
        hour=draft.hour,
        minute=draft.minute,
        repeat_mode=mode,
        playlist_id=draft.playlist_id,
        custom_days=days,
        volume=draft.volume,
        fade_in_duration=draft.fade_in_duration,
        duration_minutes=draft.duration_minutes,
        priority=draft.priority,
    )
