"""
Task scheduler: the poll loop that finds due tasks and hands them to the orchestrator

Idempotency rests entirely on execution history: a task fires only if it has
no history row since local midnight of the day its slot falls on (or, for
`once`, no row at all). The firing window covers the current and the previous
minute, so the poll period has to stay under a minute.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from .errors import AmbientAlarmError
from .logging_utils import get_logger, log_error, log_task_fired, log_task_skipped
from .models import ExecutionStatus, PlaybackOutcome, RepeatMode, ScheduledTask
from .orchestrator import PlaybackOrchestrator
from .repeat import should_fire_today, sunday_based_weekday
from .store import Store

logger = get_logger(__name__)

MAX_POLL_INTERVAL_S = 60


@dataclass
class Firing:
    """A task claimed by a tick, with its `started` history row"""
    task: ScheduledTask
    history_id: int
    fired_at: datetime


def matching_slot(hour: int, minute: int, now: datetime) -> Optional[datetime]:
    """
    The scheduled moment inside the firing window that hour:minute refers to.

    At 00:00:xx a 23:59 task matches 23:59 of the previous day, so the weekday
    and the once-per-day check belong to that day.
    """
    current = now.replace(second=0, microsecond=0)
    for slot in (current, current - timedelta(minutes=1)):
        if (slot.hour, slot.minute) == (hour, minute):
            return slot
    return None


class TaskScheduler:
    """Poll loop over enabled tasks"""

    def __init__(self, store: Store, orchestrator: PlaybackOrchestrator,
                 poll_interval_s: float = 10,
                 clock: Callable[[], datetime] = datetime.now,
                 synchronous: bool = False):
        """
        Args:
            store: persisted store
            orchestrator: playback orchestrator shared with manual playback
            poll_interval_s: tick period, strictly below 60 seconds
            clock: local wall clock
            synchronous: run claimed tasks inside tick() instead of on a dispatch thread
        """
        if not 0 < poll_interval_s < MAX_POLL_INTERVAL_S:
            raise ValueError(f"poll_interval_s must be in (0, {MAX_POLL_INTERVAL_S}), got {poll_interval_s}")

        self.store = store
        self.orchestrator = orchestrator
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._synchronous = synchronous
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the background poll thread"""
        if self._thread and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return

        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="TaskScheduler", daemon=True)
        self._thread.start()
        logger.info(f"Scheduler started, polling every {self.poll_interval_s}s")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the poll thread and wait for it to exit"""
        self._stop.set()
        thread = self._thread
        if thread and thread.is_alive():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("Scheduler thread did not exit within timeout")
            else:
                logger.info("Scheduler stopped")
        self._thread = None

    def is_running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                self.tick(self._clock())
            except Exception as e:
                # A bad tick (e.g. the database is locked) is skipped, never fatal
                log_error(logger, e, {"phase": "tick"})
            self._stop.wait(self.poll_interval_s)

    def tick(self, now: datetime) -> List[Firing]:
        """
        Evaluate every enabled task against `now` and fire the due ones.

        Due tasks get their `started` history row inside the tick, so a later
        tick in the same window sees them as already executed.

        Returns:
            The firings claimed by this tick, in priority order
        """
        logger.debug(f"Tick at {now:%Y-%m-%d %H:%M:%S}")

        firings = []
        try:
            self._claim_due_tasks(now, firings)
        finally:
            # Claimed rows must always be played and closed, even if a later claim failed
            if firings:
                self._dispatch(firings)
        return firings

    def _claim_due_tasks(self, now: datetime, firings: List[Firing]) -> None:
        for task in self.store.enabled_tasks():
            slot = matching_slot(task.hour, task.minute, now)
            if slot is None:
                continue

            weekday = sunday_based_weekday(slot)
            midnight = slot.replace(hour=0, minute=0)
            if not should_fire_today(task.repeat_mode, task.custom_days, weekday):
                log_task_skipped(logger, task.id, task.name, f"not scheduled on weekday {weekday}")
                continue

            if task.repeat_mode is RepeatMode.ONCE and self.store.has_any_execution(task.id):
                log_task_skipped(logger, task.id, task.name, "one-shot task already ran")
                continue

            if self.store.has_execution_since(task.id, midnight):
                log_task_skipped(logger, task.id, task.name, "already executed for this day")
                continue

            history_id = self.store.start_execution(task.id, now)
            log_task_fired(logger, task.id, task.name, history_id,
                           scheduled=f"{task.hour:02d}:{task.minute:02d}", priority=task.priority)
            firings.append(Firing(task=task, history_id=history_id, fired_at=now))

    def run_task_now(self, task_id: int) -> Firing:
        """Fire a task immediately regardless of its schedule, recording history as usual"""
        task = self.store.get_task(task_id)
        now = self._clock()
        history_id = self.store.start_execution(task.id, now)
        log_task_fired(logger, task.id, task.name, history_id, manual=True)
        firing = Firing(task=task, history_id=history_id, fired_at=now)
        self._dispatch([firing])
        return firing

    def _dispatch(self, firings: List[Firing]) -> None:
        if self._synchronous:
            self.run_firings(firings)
            return
        thread = threading.Thread(
            target=self.run_firings,
            args=(firings,),
            name=f"TaskRun-{firings[0].history_id}",
            daemon=True,
        )
        thread.start()

    def run_firings(self, firings: List[Firing]) -> None:
        """
        Play claimed tasks one after another, highest priority first.

        Once another session has taken over the player, the firings still
        queued behind it are closed as completed without playing, so a stale
        batch never cuts off newer playback.
        """
        for index, firing in enumerate(firings):
            outcome = self.execute(firing)
            if outcome is not None and not self.orchestrator.player.is_current(outcome.generation):
                for superseded in firings[index + 1:]:
                    logger.info(f"Task {superseded.task.name} superseded before it started",
                                extra={"task_id": superseded.task.id})
                    self._finish(superseded, ExecutionStatus.COMPLETED, 0, None)
                return

    def execute(self, firing: Firing) -> Optional[PlaybackOutcome]:
        """
        Run one claimed task and close its history row as completed or failed.

        Returns:
            The playback outcome, or None if the run failed
        """
        task = firing.task
        try:
            outcome = self.orchestrator.play_playlist(
                task.playlist_id, task.volume, task.fade_in_duration
            )
        except Exception as e:
            log_error(logger, e, {"task_id": task.id, "history_id": firing.history_id})
            self._finish(firing, ExecutionStatus.FAILED, None, str(e) or type(e).__name__)
            return None

        if outcome.preempted:
            logger.info(f"Task {task.name} was preempted after {outcome.tracks_played} track(s)")
        self._finish(firing, ExecutionStatus.COMPLETED, int(outcome.elapsed_seconds), None)
        return outcome

    def _finish(self, firing: Firing, status: ExecutionStatus,
                duration: Optional[int], error: Optional[str]) -> None:
        try:
            self.store.finish_execution(firing.history_id, status, duration=duration, error=error)
        except AmbientAlarmError as e:
            log_error(logger, e, {"history_id": firing.history_id, "status": status.value})
        else:
            logger.info(f"Task {firing.task.name} {status.value}",
                        extra={"task_id": firing.task.id, "history_id": firing.history_id})
