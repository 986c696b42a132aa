"""
Tests for the persisted store
"""

from datetime import datetime

import pytest
from sqlalchemy import create_engine, text

from ambient_alarm.errors import NotFound
from ambient_alarm.models import ExecutionStatus, RepeatMode, ScheduledTask
from ambient_alarm.store import Store

from conftest import make_playlist, make_task


class TestPlaylists:
    """Playlist contents and aggregate duration"""

    def test_entries_in_sort_order_with_duplicates(self, store):
        playlist_id, (first, second) = make_playlist(store, [10, 20])
        store.add_to_playlist(playlist_id, first)

        entries = store.playlist_entries(playlist_id)

        assert [e.audio_id for e in entries] == [first, second, first]
        assert store.playlist_duration_seconds(playlist_id) == 40

    def test_missing_playlist(self, store):
        with pytest.raises(NotFound):
            store.playlist_entries(42)

    def test_empty_playlist_duration_is_zero(self, store):
        playlist_id = store.create_playlist("Empty")
        assert store.playlist_entries(playlist_id) == []
        assert store.playlist_duration_seconds(playlist_id) == 0

    def test_remove_item(self, store):
        playlist_id, (audio_id,) = make_playlist(store, [10])
        item_id = store.add_to_playlist(playlist_id, audio_id)
        store.remove_from_playlist(item_id)
        assert len(store.playlist_entries(playlist_id)) == 1

    def test_delete_playlist_cascades_tasks(self, store):
        playlist_id, _ = make_playlist(store, [10])
        task_id = make_task(store, playlist_id, 7, 0)

        store.delete_playlist(playlist_id)

        with pytest.raises(NotFound):
            store.get_task(task_id)


class TestTasks:
    """Task rows round trip through the dataclass"""

    def test_insert_and_get(self, store):
        playlist_id, _ = make_playlist(store, [10], name="Sunrise")
        task_id = make_task(store, playlist_id, 6, 45, RepeatMode.CUSTOM,
                            custom_days=frozenset({1, 3}), volume=70, fade_in_duration=30,
                            duration_minutes=15, priority=2)

        task = store.get_task(task_id)

        assert (task.hour, task.minute) == (6, 45)
        assert task.repeat_mode is RepeatMode.CUSTOM
        assert task.custom_days == frozenset({1, 3})
        assert task.playlist_name == "Sunrise"
        assert (task.volume, task.fade_in_duration, task.duration_minutes, task.priority) == (70, 30, 15, 2)
        assert task.is_enabled

    def test_insert_requires_playlist(self, store):
        task = ScheduledTask(id=None, name="x", hour=7, minute=0, repeat_mode=RepeatMode.DAILY, playlist_id=99)
        with pytest.raises(NotFound):
            store.insert_task(task)

    def test_update_leaves_enabled_flag(self, store):
        playlist_id, _ = make_playlist(store, [10])
        task_id = make_task(store, playlist_id, 7, 0)
        store.set_task_enabled(task_id, False)

        edited = ScheduledTask(id=None, name="Later", hour=8, minute=15,
                               repeat_mode=RepeatMode.WEEKEND, playlist_id=playlist_id)
        store.update_task(task_id, edited)

        task = store.get_task(task_id)
        assert (task.name, task.hour, task.minute) == ("Later", 8, 15)
        assert task.is_enabled is False

    def test_enabled_tasks_order(self, store):
        playlist_id, _ = make_playlist(store, [10])
        make_task(store, playlist_id, 6, 0, name="early")
        make_task(store, playlist_id, 9, 0, name="urgent", priority=3)
        make_task(store, playlist_id, 5, 0, name="off")
        store.set_task_enabled(store.list_tasks()[0].id, False)

        assert [t.name for t in store.enabled_tasks()] == ["urgent", "early"]
        assert [t.name for t in store.list_tasks()] == ["off", "early", "urgent"]

    def test_corrupt_row_skipped(self, store):
        playlist_id, _ = make_playlist(store, [10])
        make_task(store, playlist_id, 7, 0, name="good")
        bad_id = make_task(store, playlist_id, 8, 0, RepeatMode.CUSTOM, name="bad", custom_days=frozenset({2}))
        with store._engine.begin() as conn:
            conn.execute(text("UPDATE scheduled_tasks SET custom_days='[9]' WHERE id=:id"), {"id": bad_id})

        assert [t.name for t in store.enabled_tasks()] == ["good"]

    def test_names_for_playlist(self, store):
        playlist_id, _ = make_playlist(store, [10])
        make_task(store, playlist_id, 7, 0, name="Wake")
        disabled = make_task(store, playlist_id, 8, 0, name="Nap")
        store.set_task_enabled(disabled, False)

        assert store.enabled_task_names_for_playlist(playlist_id) == ["Wake"]


class TestHistory:
    """Execution history rows"""

    def test_start_and_finish(self, store):
        playlist_id, _ = make_playlist(store, [10])
        task_id = make_task(store, playlist_id, 7, 0)

        history_id = store.start_execution(task_id, datetime(2024, 1, 1, 7, 0))
        assert store.list_history(task_id)[0].status is ExecutionStatus.STARTED

        store.finish_execution(history_id, ExecutionStatus.COMPLETED, duration=42)
        record = store.list_history(task_id)[0]
        assert (record.status, record.duration) == (ExecutionStatus.COMPLETED, 42)

    def test_since_and_any(self, store):
        playlist_id, _ = make_playlist(store, [10])
        task_id = make_task(store, playlist_id, 7, 0)
        assert not store.has_any_execution(task_id)

        store.start_execution(task_id, datetime(2024, 1, 1, 7, 0))

        assert store.has_any_execution(task_id)
        assert store.has_execution_since(task_id, datetime(2024, 1, 1))
        assert not store.has_execution_since(task_id, datetime(2024, 1, 2))

    def test_deleting_task_cascades_history(self, store):
        playlist_id, _ = make_playlist(store, [10])
        task_id = make_task(store, playlist_id, 7, 0)
        history_id = store.start_execution(task_id, datetime(2024, 1, 1, 7, 0))

        store.delete_task(task_id)

        assert store.list_history() == []
        # Closing a row whose task vanished is a no-op
        store.finish_execution(history_id, ExecutionStatus.COMPLETED)

    def test_interrupted_runs_marked_failed(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'alarm.db'}"
        store = Store.from_url(url)
        playlist_id, _ = make_playlist(store, [10])
        task_id = make_task(store, playlist_id, 7, 0)
        store.start_execution(task_id, datetime(2024, 1, 1, 7, 0))

        reopened = Store.from_url(url)
        assert reopened.close_interrupted_runs() == 1

        [record] = reopened.list_history(task_id)
        assert record.status is ExecutionStatus.FAILED
        assert record.error == "interrupted"


class TestSchemaPatching:
    """Older databases gain new columns on open"""

    def test_missing_columns_added(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'old.db'}"
        engine = create_engine(url)
        with engine.begin() as conn:
            conn.execute(text(
                "CREATE TABLE scheduled_tasks (id INTEGER PRIMARY KEY, name VARCHAR, hour INTEGER, "
                "minute INTEGER, repeat_mode VARCHAR, custom_days VARCHAR, playlist_id INTEGER, "
                "volume INTEGER, fade_in_duration INTEGER, is_enabled BOOLEAN, priority INTEGER, "
                "created_date DATETIME)"
            ))
            conn.execute(text(
                "CREATE TABLE execution_history (id INTEGER PRIMARY KEY, task_id INTEGER, "
                "execution_time DATETIME, status VARCHAR, duration INTEGER)"
            ))
        engine.dispose()

        Store.from_url(url)

        engine = create_engine(url)
        with engine.connect() as conn:
            task_cols = {row[1] for row in conn.execute(text("PRAGMA table_info(scheduled_tasks)"))}
            history_cols = {row[1] for row in conn.execute(text("PRAGMA table_info(execution_history)"))}
        engine.dispose()

        assert "duration_minutes" in task_cols
        assert "error" in history_cols
