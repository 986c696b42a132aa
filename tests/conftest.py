"""
Shared fixtures: in-memory store, recording device, fake clock and sleep
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import pytest

from ambient_alarm.device import AudioDevice
from ambient_alarm.errors import DeviceUnavailable
from ambient_alarm.models import RepeatMode, ScheduledTask
from ambient_alarm.orchestrator import PlaybackOrchestrator
from ambient_alarm.player import Player
from ambient_alarm.store import Store


class RecordingDevice(AudioDevice):
    """Device that records every call and fails on request"""

    def __init__(self):
        self.calls = []
        self.fail_paths = set()
        self.playing = False

    def play(self, path):
        if path in self.fail_paths:
            raise DeviceUnavailable(f"Cannot open audio file: {path}")
        self.calls.append(("play", path))
        self.playing = True

    def pause(self):
        self.calls.append(("pause",))
        self.playing = False

    def resume(self):
        self.calls.append(("resume",))
        self.playing = True

    def stop(self):
        self.calls.append(("stop",))
        self.playing = False

    def set_volume(self, volume):
        self.calls.append(("volume", volume))

    def is_playing(self):
        return self.playing

    @property
    def played(self) -> List[str]:
        return [call[1] for call in self.calls if call[0] == "play"]

    @property
    def volumes(self) -> List[float]:
        return [call[1] for call in self.calls if call[0] == "volume"]


class FakeClock:
    """Wall clock that only moves when slept on"""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 1, 1, 7, 0, 0)
        self.sleeps = []
        self.on_sleep = None

    def __call__(self) -> datetime:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += timedelta(seconds=seconds)
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))

    @property
    def slept(self) -> float:
        return sum(self.sleeps)


@pytest.fixture
def store():
    return Store.from_url("sqlite://")


@pytest.fixture
def device():
    return RecordingDevice()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def player(device):
    return Player(device)


@pytest.fixture
def orchestrator(store, player, clock):
    return PlaybackOrchestrator(store, player, sleep=clock.sleep, clock=clock)


def make_playlist(store: Store, durations: Sequence[int], name: str = "Morning") -> tuple:
    """Create a playlist with one audio file per duration; returns (playlist_id, audio_ids)"""
    playlist_id = store.create_playlist(name)
    audio_ids = []
    for index, duration in enumerate(durations):
        audio_id = store.add_audio_file(f"/music/{name.lower()}-{index}.mp3", duration)
        store.add_to_playlist(playlist_id, audio_id)
        audio_ids.append(audio_id)
    return playlist_id, audio_ids


def make_task(store: Store, playlist_id: int, hour: int, minute: int,
              repeat_mode: RepeatMode = RepeatMode.DAILY, name: str = "Wake up", **kwargs) -> int:
    task = ScheduledTask(
        id=None,
        name=name,
        hour=hour,
        minute=minute,
        repeat_mode=repeat_mode,
        playlist_id=playlist_id,
        **kwargs,
    )
    return store.insert_task(task)
