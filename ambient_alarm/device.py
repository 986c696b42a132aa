"""
Playback device interface and the headless backend
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from .errors import DeviceUnavailable

logger = logging.getLogger(__name__)


class AudioDevice(ABC):
    """A single stateful audio output sink. Not thread-safe; the Player serialises access."""

    @abstractmethod
    def play(self, path: str) -> None:
        """Stop whatever is playing and start `path`"""

    @abstractmethod
    def pause(self) -> None:
        ...

    @abstractmethod
    def resume(self) -> None:
        ...

    @abstractmethod
    def stop(self) -> None:
        ...

    @abstractmethod
    def set_volume(self, volume: float) -> None:
        """Volume in 0.0..1.0"""

    @abstractmethod
    def is_playing(self) -> bool:
        ...


class HeadlessAudioDevice(AudioDevice):
    """
    Device without an audio sink.

    Validates that files exist and tracks transport state, which is enough to
    drive schedules on a machine with no sound output (and to dry-run them).
    """

    def __init__(self):
        self.current_path: Optional[str] = None
        self.volume: float = 0.5
        self._playing = False

    def play(self, path: str) -> None:
        if not Path(path).is_file():
            raise DeviceUnavailable(f"Cannot open audio file: {path}")
        self.current_path = path
        self._playing = True
        logger.info(f"[headless] playing {path} at volume {self.volume:.2f}")

    def pause(self) -> None:
        self._playing = False

    def resume(self) -> None:
        if self.current_path is not None:
            self._playing = True

    def stop(self) -> None:
        self.current_path = None
        self._playing = False

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def is_playing(self) -> bool:
        return self._playing


def create_device(backend: str = "headless") -> AudioDevice:
    """Build the configured playback device"""
    if backend == "headless":
        return HeadlessAudioDevice()
    raise DeviceUnavailable(f"Unknown audio backend: {backend}")
