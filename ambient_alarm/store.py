"""
Persisted store: data-access helpers over the SQLAlchemy tables

Every public method takes the store lock for exactly one read or write and
converts rows into the dataclasses in `models`.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .db import (
    AudioFile, ExecutionHistoryRow, Playlist, PlaylistItem, ScheduledTaskRow,
    create_db_engine, create_session_factory, fail_interrupted_runs, init_database,
)
from .errors import InvalidSchedule, NotFound, StoreError
from .models import ExecutionRecord, ExecutionStatus, PlaylistEntry, RepeatMode, ScheduledTask
from .repeat import dump_custom_days, parse_custom_days

logger = logging.getLogger(__name__)


class Store:
    """Relational store shared by the scheduler, orchestrator and command layer"""

    def __init__(self, session_factory: sessionmaker, engine=None):
        self._session_factory = session_factory
        self._engine = engine
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, database_url: str) -> "Store":
        """Open (and create if needed) the database at `database_url`"""
        try:
            engine = create_db_engine(database_url)
            init_database(engine)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not open database {database_url}: {e}") from e
        return cls(create_session_factory(engine), engine=engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock:
            db = self._session_factory()
            try:
                yield db
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreError(str(e)) from e
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def close_interrupted_runs(self) -> int:
        """Mark `started` rows from a previous process as failed"""
        if self._engine is None:
            return 0
        with self._lock:
            try:
                count = fail_interrupted_runs(self._engine)
            except SQLAlchemyError as e:
                raise StoreError(str(e)) from e
        if count:
            logger.warning(f"Marked {count} interrupted execution(s) as failed")
        return count

    # Audio files

    def add_audio_file(self, file_path: str, duration: int, name: Optional[str] = None,
                       format: Optional[str] = None, file_size: int = 0) -> int:
        path = Path(file_path)
        with self._session() as db:
            row = AudioFile(
                filename=path.name,
                original_name=name or path.stem,
                file_path=str(file_path),
                file_size=file_size,
                duration=max(0, int(duration)),
                format=format or path.suffix.lstrip(".").lower(),
            )
            db.add(row)
            db.flush()
            return row.id

    def get_audio_entry(self, audio_id: int) -> PlaylistEntry:
        with self._session() as db:
            row = db.get(AudioFile, audio_id)
            if row is None:
                raise NotFound("audio", audio_id)
            return _entry_from_row(row)

    def get_audio_stats(self, audio_id: int) -> Dict[str, Any]:
        with self._session() as db:
            row = db.get(AudioFile, audio_id)
            if row is None:
                raise NotFound("audio", audio_id)
            return {"id": row.id, "play_count": row.play_count, "last_played": row.last_played}

    def record_play(self, audio_id: int, when: Optional[datetime] = None) -> None:
        """Increment play_count and stamp last_played"""
        with self._session() as db:
            updated = (
                db.query(AudioFile)
                .filter(AudioFile.id == audio_id)
                .update(
                    {
                        AudioFile.play_count: AudioFile.play_count + 1,
                        AudioFile.last_played: when or datetime.now(),
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                raise NotFound("audio", audio_id)

    # Playlists

    def create_playlist(self, name: str, play_mode: str = "sequential") -> int:
        with self._session() as db:
            row = Playlist(name=name, play_mode=play_mode)
            db.add(row)
            db.flush()
            return row.id

    def delete_playlist(self, playlist_id: int) -> None:
        with self._session() as db:
            if not db.query(Playlist).filter(Playlist.id == playlist_id).delete():
                raise NotFound("playlist", playlist_id)

    def playlist_name(self, playlist_id: int) -> str:
        with self._session() as db:
            row = db.get(Playlist, playlist_id)
            if row is None:
                raise NotFound("playlist", playlist_id)
            return row.name

    def add_to_playlist(self, playlist_id: int, audio_id: int, sort_order: Optional[int] = None) -> int:
        """Append an audio entry; duplicates are allowed"""
        with self._session() as db:
            if db.get(Playlist, playlist_id) is None:
                raise NotFound("playlist", playlist_id)
            if db.get(AudioFile, audio_id) is None:
                raise NotFound("audio", audio_id)
            if sort_order is None:
                max_order = (
                    db.query(func.coalesce(func.max(PlaylistItem.sort_order), -1))
                    .filter(PlaylistItem.playlist_id == playlist_id)
                    .scalar()
                )
                sort_order = max_order + 1
            item = PlaylistItem(playlist_id=playlist_id, audio_id=audio_id, sort_order=sort_order)
            db.add(item)
            db.flush()
            return item.id

    def remove_from_playlist(self, item_id: int) -> None:
        with self._session() as db:
            if not db.query(PlaylistItem).filter(PlaylistItem.id == item_id).delete():
                raise NotFound("playlist item", item_id)

    def playlist_entries(self, playlist_id: int) -> List[PlaylistEntry]:
        """Audio entries in sort_order, ties broken by insertion order"""
        with self._session() as db:
            if db.get(Playlist, playlist_id) is None:
                raise NotFound("playlist", playlist_id)
            # Column tuples, not entities: legacy Query would collapse duplicate entries
            rows = (
                db.query(AudioFile.id, AudioFile.file_path, AudioFile.duration, AudioFile.original_name)
                .join(PlaylistItem, PlaylistItem.audio_id == AudioFile.id)
                .filter(PlaylistItem.playlist_id == playlist_id)
                .order_by(PlaylistItem.sort_order, PlaylistItem.id)
                .all()
            )
            return [
                PlaylistEntry(audio_id=audio_id, file_path=file_path, duration=int(duration or 0), name=name)
                for audio_id, file_path, duration, name in rows
            ]

    def playlist_duration_seconds(self, playlist_id: int) -> int:
        with self._session() as db:
            total = (
                db.query(func.coalesce(func.sum(AudioFile.duration), 0))
                .join(PlaylistItem, PlaylistItem.audio_id == AudioFile.id)
                .filter(PlaylistItem.playlist_id == playlist_id)
                .scalar()
            )
            return int(total or 0)

    # Scheduled tasks

    def list_tasks(self) -> List[ScheduledTask]:
        """All tasks joined with their playlist name, by time of day"""
        with self._session() as db:
            rows = (
                db.query(ScheduledTaskRow, Playlist.name)
                .join(Playlist, Playlist.id == ScheduledTaskRow.playlist_id)
                .order_by(ScheduledTaskRow.hour, ScheduledTaskRow.minute, ScheduledTaskRow.id)
                .all()
            )
            return _tasks_from_rows(rows)

    def enabled_tasks(self) -> List[ScheduledTask]:
        """Enabled tasks, highest priority first, then by time of day"""
        with self._session() as db:
            rows = (
                db.query(ScheduledTaskRow, Playlist.name)
                .join(Playlist, Playlist.id == ScheduledTaskRow.playlist_id)
                .filter(ScheduledTaskRow.is_enabled.is_(True))
                .order_by(
                    ScheduledTaskRow.priority.desc(),
                    ScheduledTaskRow.hour,
                    ScheduledTaskRow.minute,
                    ScheduledTaskRow.id,
                )
                .all()
            )
            return _tasks_from_rows(rows)

    def get_task(self, task_id: int) -> ScheduledTask:
        with self._session() as db:
            result = (
                db.query(ScheduledTaskRow, Playlist.name)
                .join(Playlist, Playlist.id == ScheduledTaskRow.playlist_id)
                .filter(ScheduledTaskRow.id == task_id)
                .first()
            )
            if result is None:
                raise NotFound("task", task_id)
            return _task_from_row(*result)

    def insert_task(self, task: ScheduledTask) -> int:
        with self._session() as db:
            if db.get(Playlist, task.playlist_id) is None:
                raise NotFound("playlist", task.playlist_id)
            row = ScheduledTaskRow(is_enabled=task.is_enabled, **_task_columns(task))
            db.add(row)
            db.flush()
            return row.id

    def update_task(self, task_id: int, task: ScheduledTask) -> None:
        """Overwrite the editable fields; is_enabled is left alone"""
        with self._session() as db:
            row = db.get(ScheduledTaskRow, task_id)
            if row is None:
                raise NotFound("task", task_id)
            if db.get(Playlist, task.playlist_id) is None:
                raise NotFound("playlist", task.playlist_id)
            for key, value in _task_columns(task).items():
                setattr(row, key, value)

    def delete_task(self, task_id: int) -> None:
        with self._session() as db:
            if not db.query(ScheduledTaskRow).filter(ScheduledTaskRow.id == task_id).delete():
                raise NotFound("task", task_id)

    def set_task_enabled(self, task_id: int, enabled: bool) -> None:
        with self._session() as db:
            updated = (
                db.query(ScheduledTaskRow)
                .filter(ScheduledTaskRow.id == task_id)
                .update({ScheduledTaskRow.is_enabled: bool(enabled)}, synchronize_session=False)
            )
            if not updated:
                raise NotFound("task", task_id)

    def enabled_task_names_for_playlist(self, playlist_id: int) -> List[str]:
        with self._session() as db:
            rows = (
                db.query(ScheduledTaskRow.name)
                .filter(ScheduledTaskRow.playlist_id == playlist_id)
                .filter(ScheduledTaskRow.is_enabled.is_(True))
                .order_by(ScheduledTaskRow.hour, ScheduledTaskRow.minute)
                .all()
            )
            return [name for (name,) in rows]

    # Execution history

    def has_any_execution(self, task_id: int) -> bool:
        with self._session() as db:
            return db.query(
                db.query(ExecutionHistoryRow).filter(ExecutionHistoryRow.task_id == task_id).exists()
            ).scalar()

    def has_execution_since(self, task_id: int, since: datetime) -> bool:
        with self._session() as db:
            return db.query(
                db.query(ExecutionHistoryRow)
                .filter(ExecutionHistoryRow.task_id == task_id)
                .filter(ExecutionHistoryRow.execution_time >= since)
                .exists()
            ).scalar()

    def start_execution(self, task_id: int, when: datetime) -> int:
        with self._session() as db:
            row = ExecutionHistoryRow(
                task_id=task_id,
                execution_time=when,
                status=ExecutionStatus.STARTED.value,
            )
            db.add(row)
            db.flush()
            return row.id

    def finish_execution(self, history_id: int, status: ExecutionStatus,
                         duration: Optional[int] = None, error: Optional[str] = None) -> None:
        with self._session() as db:
            row = db.get(ExecutionHistoryRow, history_id)
            if row is None:
                # Parent task deleted mid-run; the cascade already removed the row
                logger.warning(f"Execution history row {history_id} vanished before it could be closed")
                return
            row.status = ExecutionStatus(status).value
            row.duration = duration
            row.error = error

    def list_history(self, task_id: Optional[int] = None, limit: int = 50) -> List[ExecutionRecord]:
        with self._session() as db:
            query = db.query(ExecutionHistoryRow)
            if task_id is not None:
                query = query.filter(ExecutionHistoryRow.task_id == task_id)
            rows = (
                query.order_by(ExecutionHistoryRow.execution_time.desc(), ExecutionHistoryRow.id.desc())
                .limit(limit)
                .all()
            )
            return [
                ExecutionRecord(
                    id=row.id,
                    task_id=row.task_id,
                    execution_time=row.execution_time,
                    status=ExecutionStatus(row.status),
                    duration=row.duration,
                    error=row.error,
                )
                for row in rows
            ]


def _entry_from_row(row: AudioFile) -> PlaylistEntry:
    return PlaylistEntry(
        audio_id=row.id,
        file_path=row.file_path,
        duration=int(row.duration or 0),
        name=row.original_name,
    )


def _task_columns(task: ScheduledTask) -> Dict[str, Any]:
    return {
        "name": task.name,
        "hour": task.hour,
        "minute": task.minute,
        "repeat_mode": RepeatMode(task.repeat_mode).value,
        "custom_days": dump_custom_days(task.custom_days),
        "playlist_id": task.playlist_id,
        "volume": task.volume,
        "fade_in_duration": task.fade_in_duration,
        "duration_minutes": task.duration_minutes,
        "priority": task.priority,
    }


def _task_from_row(row: ScheduledTaskRow, playlist_name: Optional[str]) -> ScheduledTask:
    return ScheduledTask(
        id=row.id,
        name=row.name,
        hour=row.hour,
        minute=row.minute,
        repeat_mode=RepeatMode(row.repeat_mode),
        custom_days=parse_custom_days(row.custom_days),
        playlist_id=row.playlist_id,
        volume=row.volume,
        fade_in_duration=row.fade_in_duration or 0,
        duration_minutes=row.duration_minutes,
        is_enabled=bool(row.is_enabled),
        priority=row.priority or 0,
        playlist_name=playlist_name,
        created_date=row.created_date,
    )


def _tasks_from_rows(rows) -> List[ScheduledTask]:
    tasks = []
    for row, playlist_name in rows:
        try:
            tasks.append(_task_from_row(row, playlist_name))
        except (InvalidSchedule, ValueError) as e:
            # One corrupt row must not hide every other task
            logger.warning(f"Skipping task {row.id} with unreadable schedule: {e}")
    return tasks
