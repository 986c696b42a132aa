"""
Exception hierarchy for the ambient alarm engine
"""


class AmbientAlarmError(Exception):
    """Base class for every error raised by the engine"""


class NotFound(AmbientAlarmError):
    """A task, playlist or audio id does not exist"""

    def __init__(self, kind: str, ident):
        self.kind = kind
        self.ident = ident
        super().__init__(f"{kind} {ident} not found")


class EmptyPlaylist(AmbientAlarmError):
    """A playlist has no audio entries to play"""

    def __init__(self, playlist_id: int):
        self.playlist_id = playlist_id
        super().__init__(f"Playlist {playlist_id} has no audio entries")


class DeviceUnavailable(AmbientAlarmError):
    """No output device, or a call on the device failed"""


class InvalidSchedule(AmbientAlarmError):
    """Malformed repeat mode or custom day set"""


class StoreError(AmbientAlarmError):
    """Persistence I/O failure"""
