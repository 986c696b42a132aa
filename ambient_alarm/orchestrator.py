"""
Orchestrator for playlist playback: fade-in, sequential advance, play-count bookkeeping
"""

import time
from datetime import datetime
from typing import Callable, Optional

from .errors import EmptyPlaylist
from .logging_utils import get_logger, log_playback_event
from .models import PlaybackOutcome, PlaylistEntry
from .player import Player
from .store import Store

logger = get_logger(__name__)


class PlaybackOrchestrator:
    """Drives the Player through a playlist, one entry at a time"""

    def __init__(self, store: Store, player: Player,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], datetime] = datetime.now,
                 wait_step_s: float = 1.0):
        """
        Args:
            store: persisted store for playlist contents and play counts
            player: the shared playback session
            sleep: blocking sleep, replaceable in tests
            clock: wall clock used for last_played stamps
            wait_step_s: granularity of the track-duration wait
        """
        self.store = store
        self.player = player
        self._sleep = sleep
        self._clock = clock
        self._wait_step_s = wait_step_s

    def play_playlist(self, playlist_id: int, volume: int, fade_in_seconds: int = 0,
                      auto_advance: bool = True) -> PlaybackOutcome:
        """
        Play a playlist start to finish, preempting any current session.

        Each entry plays for its recorded duration, then its play count is
        bumped. If another session takes over the player, this run stops at
        the next wait boundary without touching counts.

        Args:
            playlist_id: playlist to play
            volume: target volume 0..100
            fade_in_seconds: linear ramp from silence, one step per second; 0 disables
            auto_advance: False plays only the first entry

        Returns:
            PlaybackOutcome describing how far the run got

        Raises:
            NotFound: playlist does not exist
            EmptyPlaylist: playlist has no entries
            DeviceUnavailable: an entry could not be opened or started
        """
        entries = self.store.playlist_entries(playlist_id)
        if not entries:
            raise EmptyPlaylist(playlist_id)

        target = max(0, min(100, volume)) / 100.0
        fade = max(0, int(fade_in_seconds))
        generation = self.player.begin_session(entries, auto_play=auto_advance)
        outcome = PlaybackOutcome(playlist_id=playlist_id, generation=generation, tracks_total=len(entries))

        log_playback_event(logger, playlist_id, "session_start", generation=generation,
                           tracks=len(entries), volume=volume, fade_in=fade)

        for index, entry in enumerate(entries):
            if index > 0 and not auto_advance:
                break

            if not self._play_entry(generation, index, entry, target, fade, outcome):
                return self._preempted(outcome)

            # Fade-in time is part of the track
            if not self._wait(generation, max(0, entry.duration - fade), outcome):
                return self._preempted(outcome)

            self.store.record_play(entry.audio_id, self._clock())
            outcome.tracks_played += 1

        log_playback_event(logger, playlist_id, "session_end", generation=generation,
                           tracks_played=outcome.tracks_played)
        return outcome

    def _play_entry(self, generation: int, index: int, entry: PlaylistEntry,
                    target: float, fade: int, outcome: PlaybackOutcome) -> bool:
        log_playback_event(logger, outcome.playlist_id, "track_start", generation=generation,
                           audio_id=entry.audio_id, audio_name=entry.name, index=index)

        if fade <= 0:
            return (self.player.set_volume(target, generation)
                    and self.player.play_entry(generation, index))

        if not (self.player.set_volume(0.0, generation)
                and self.player.play_entry(generation, index)):
            return False

        # The device lock is only taken inside each set_volume call
        for step in range(1, fade + 1):
            if not self._wait(generation, 1, outcome):
                return False
            if not self.player.set_volume(target * step / fade, generation):
                return False
        return True

    def _wait(self, generation: int, seconds: float, outcome: PlaybackOutcome) -> bool:
        """Sleep in slices; False as soon as the session is no longer ours"""
        remaining = seconds
        while remaining > 0:
            chunk = min(self._wait_step_s, remaining)
            self._sleep(chunk)
            remaining -= chunk
            outcome.elapsed_seconds += chunk
            if not self.player.is_current(generation):
                return False
        return self.player.is_current(generation)

    def _preempted(self, outcome: PlaybackOutcome) -> PlaybackOutcome:
        outcome.preempted = True
        log_playback_event(logger, outcome.playlist_id, "session_preempted",
                           generation=outcome.generation, tracks_played=outcome.tracks_played)
        return outcome

    def play_audio(self, audio_id: int, volume: Optional[int] = None) -> PlaylistEntry:
        """Play one clip now as its own session and count the play"""
        entry = self.store.get_audio_entry(audio_id)
        if volume is not None:
            self.player.set_volume(max(0, min(100, volume)) / 100.0)
        self.player.play_single(entry)
        self.store.record_play(entry.audio_id, self._clock())
        log_playback_event(logger, None, "single_play", audio_id=entry.audio_id, audio_name=entry.name)
        return entry

    def skip(self, offset: int) -> Optional[PlaylistEntry]:
        """Manual next/previous over the current queue, counting the play"""
        entry = self.player.step(offset)
        if entry is not None:
            self.store.record_play(entry.audio_id, self._clock())
            log_playback_event(logger, None, "skip", offset=offset, audio_id=entry.audio_id)
        return entry
