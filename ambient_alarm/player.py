"""
Player: the one playback session in the system

Owns the AudioDevice behind a lock that is held for a single device call at a
time, never across a sleep. Every new queue starts a new generation; callers
holding an older generation find out through `is_current()` and back off.
"""

import logging
import threading
from typing import List, Optional, Sequence

from .device import AudioDevice
from .errors import AmbientAlarmError, DeviceUnavailable
from .models import PlaybackState, PlaylistEntry

logger = logging.getLogger(__name__)


class Player:
    """Single owned playback resource with an explicit session generation"""

    def __init__(self, device: AudioDevice, volume: float = 0.5):
        self._device = device
        self._lock = threading.Lock()
        self._generation = 0
        self._queue: List[PlaylistEntry] = []
        self._index = 0
        self._auto_play = False
        self._current: Optional[PlaylistEntry] = None
        self._volume = _clamp(volume)

    @property
    def volume(self) -> float:
        with self._lock:
            return self._volume

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def begin_session(self, entries: Sequence[PlaylistEntry], auto_play: bool) -> int:
        """Replace the queue, preempting any session in progress"""
        with self._lock:
            self._generation += 1
            self._queue = list(entries)
            self._index = 0
            self._auto_play = auto_play
            logger.debug(f"Session {self._generation} started with {len(self._queue)} entries")
            return self._generation

    def play_entry(self, generation: int, index: int) -> bool:
        """
        Start queue entry `index` for session `generation`.

        Returns:
            False if the session has been superseded

        Raises:
            DeviceUnavailable: the device could not open or start the entry
        """
        with self._lock:
            if generation != self._generation:
                return False
            entry = self._queue[index]
            self._device_call(self._device.play, entry.file_path)
            self._index = index
            self._current = entry
            return True

    def set_volume(self, volume: float, generation: Optional[int] = None) -> bool:
        """Set volume 0..1; with a generation, only if that session is still current"""
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._volume = _clamp(volume)
            self._device_call(self._device.set_volume, self._volume)
            return True

    def play_single(self, entry: PlaylistEntry) -> int:
        """Play one clip as its own session"""
        with self._lock:
            self._generation += 1
            self._queue = [entry]
            self._index = 0
            self._auto_play = False
            self._device_call(self._device.play, entry.file_path)
            self._current = entry
            return self._generation

    def step(self, offset: int) -> Optional[PlaylistEntry]:
        """Move to the next (+1) or previous (-1) queue entry and play it"""
        with self._lock:
            target = self._index + offset
            if not self._queue or not 0 <= target < len(self._queue):
                return None
            # Manual skipping takes over the session from any running orchestration
            self._generation += 1
            self._auto_play = False
            entry = self._queue[target]
            self._device_call(self._device.play, entry.file_path)
            self._index = target
            self._current = entry
            return entry

    def pause(self) -> None:
        with self._lock:
            self._device_call(self._device.pause)

    def resume(self) -> None:
        with self._lock:
            self._device_call(self._device.resume)

    def stop(self) -> None:
        """Stop playback and end the session; the session ends even if the device call fails"""
        with self._lock:
            self._generation += 1
            self._queue = []
            self._index = 0
            self._auto_play = False
            self._current = None
            self._device_call(self._device.stop)

    def state(self) -> PlaybackState:
        with self._lock:
            return PlaybackState(
                is_playing=self._device_call(self._device.is_playing),
                current_audio_id=self._current.audio_id if self._current else None,
                current_audio_name=self._current.name if self._current else None,
                volume=self._volume,
                playlist_queue=[entry.audio_id for entry in self._queue],
                current_index=self._index,
                is_auto_play=self._auto_play,
                generation=self._generation,
            )

    @staticmethod
    def _device_call(method, *args):
        try:
            return method(*args)
        except AmbientAlarmError:
            raise
        except Exception as e:
            raise DeviceUnavailable(f"Device call {method.__name__} failed: {e}") from e


def _clamp(volume: float) -> float:
    return max(0.0, min(1.0, float(volume)))
