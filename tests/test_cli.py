"""
Tests for the command line interface
"""

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from ambient_alarm.cli import cli
from ambient_alarm.models import RepeatMode
from ambient_alarm.store import Store

from conftest import make_task


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("ambient_alarm.cli.setup_logging"):
        yield


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def runner(db_url):
    return CliRunner(env={"AMBIENT_ALARM_DB_URL": db_url, "POLL_INTERVAL_S": "10"})


@pytest.fixture
def seeded(db_url, tmp_path):
    """A playlist of two zero-length clips that exist on disk, and one daily task at 07:00"""
    store = Store.from_url(db_url)
    playlist_id = store.create_playlist("Morning")
    for name in ("birds.mp3", "bells.mp3"):
        path = tmp_path / name
        path.write_bytes(b"")
        store.add_to_playlist(playlist_id, store.add_audio_file(str(path), 0))
    task_id = make_task(store, playlist_id, 7, 0, name="Wake up", duration_minutes=10)
    return {"store": store, "playlist_id": playlist_id, "task_id": task_id}


class TestTasksCommand:
    def test_empty(self, runner):
        result = runner.invoke(cli, ["tasks"])
        assert result.exit_code == 0
        assert "No scheduled tasks" in result.output

    def test_lists_tasks(self, runner, seeded):
        result = runner.invoke(cli, ["tasks"])
        assert result.exit_code == 0
        assert "07:00 Wake up - daily, playlist 'Morning'" in result.output


class TestConflictsCommand:
    def test_conflict_found(self, runner, seeded):
        result = runner.invoke(cli, [
            "conflicts", "--hour", "7", "--minute", "5", "--repeat-mode", "weekday",
            "--playlist", str(seeded["playlist_id"]), "--duration", "5",
        ])
        assert result.exit_code == 2
        assert f"[{seeded['task_id']}] 07:00 Wake up" in result.output

    def test_no_conflict(self, runner, seeded):
        result = runner.invoke(cli, [
            "conflicts", "--hour", "8", "--minute", "0", "--playlist", str(seeded["playlist_id"]),
        ])
        assert result.exit_code == 0
        assert "No conflicts" in result.output

    def test_custom_needs_days(self, runner, seeded):
        result = runner.invoke(cli, [
            "conflicts", "--hour", "8", "--minute", "0", "--repeat-mode", "custom",
            "--playlist", str(seeded["playlist_id"]),
        ])
        assert result.exit_code == 1
        assert "Invalid schedule" in result.output


class TestTickCommand:
    def test_tick_fires_due_task(self, runner, seeded):
        result = runner.invoke(cli, ["tick", "--at", "2024-01-01 07:00:10"])

        assert result.exit_code == 0
        assert "Fired task" in result.output
        [record] = seeded["store"].list_history(seeded["task_id"])
        assert record.status.value == "completed"

    def test_tick_is_idempotent(self, runner, seeded):
        runner.invoke(cli, ["tick", "--at", "2024-01-01 07:00:10"])
        result = runner.invoke(cli, ["tick", "--at", "2024-01-01 07:00:40"])

        assert "No tasks due" in result.output
        assert len(seeded["store"].list_history(seeded["task_id"])) == 1

    def test_history_after_tick(self, runner, seeded):
        runner.invoke(cli, ["tick", "--at", "2024-01-01 07:00:10"])
        result = runner.invoke(cli, ["history", "--task", str(seeded["task_id"])])

        assert result.exit_code == 0
        assert "2024-01-01 07:00:10" in result.output
        assert "completed" in result.output


class TestPlayCommand:
    def test_play_counts_tracks(self, runner, seeded):
        result = runner.invoke(cli, ["play", str(seeded["playlist_id"])])

        assert result.exit_code == 0
        assert "Played 2/2 track(s)" in result.output

    def test_missing_file_fails(self, runner, seeded):
        store = seeded["store"]
        broken = store.create_playlist("Broken")
        store.add_to_playlist(broken, store.add_audio_file("/nonexistent/clip.mp3", 0))

        result = runner.invoke(cli, ["play", str(broken)])

        assert result.exit_code == 1
        assert "Cannot open audio file" in result.output

    def test_empty_playlist_fails(self, runner, seeded):
        empty = seeded["store"].create_playlist("Empty")
        result = runner.invoke(cli, ["play", str(empty)])
        assert result.exit_code == 1
        assert "no audio entries" in result.output


class TestStatusCommand:
    def test_status(self, runner, seeded, db_url):
        seeded["store"].set_task_enabled(seeded["task_id"], False)
        make_task(seeded["store"], seeded["playlist_id"], 9, 0, RepeatMode.WEEKEND)

        result = runner.invoke(cli, ["status"])

        assert result.exit_code == 0
        assert f"Database: {db_url}" in result.output
        assert "Tasks: 2 (1 enabled)" in result.output
