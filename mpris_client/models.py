"""
Value types shared across mpris_client.

Track identifiers, playback enums and the tagged variant used for
dynamically-typed metadata values.
"""

from dataclasses import dataclass
from enum import Enum
from numbers import Real
from typing import Any, Optional, Tuple

from .errors import DecodingFailure

NO_TRACK_PATH = "/org/mpris/MediaPlayer2/TrackList/NoTrack"


class PlaybackStatus(Enum):
    """Playback status reported by a player."""

    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"

    @classmethod
    def from_string(cls, value: Any) -> "PlaybackStatus":
        """Parse the wire value, raising DecodingFailure for anything unexpected."""
        try:
            return cls(value)
        except ValueError:
            raise DecodingFailure(
                f"PlaybackStatus must be one of Playing, Paused, Stopped, but was {value!r}",
                "PlaybackStatus",
                value,
            ) from None


class LoopStatus(Enum):
    """Loop status reported by a player."""

    NONE = "None"
    TRACK = "Track"
    PLAYLIST = "Playlist"

    @classmethod
    def from_string(cls, value: Any) -> "LoopStatus":
        """Parse the wire value, raising DecodingFailure for anything unexpected."""
        try:
            return cls(value)
        except ValueError:
            raise DecodingFailure(
                f"LoopStatus must be one of None, Track, Playlist, but was {value!r}",
                "LoopStatus",
                value,
            ) from None


@dataclass(frozen=True)
class TrackID:
    """Opaque track identifier (a D-Bus object path)."""

    path: str

    @classmethod
    def from_raw(cls, value: Any) -> "TrackID":
        """Build a TrackID from a raw bus value, falling back to NO_TRACK."""
        if isinstance(value, TrackID):
            return value
        if not isinstance(value, str) or not value:
            return NO_TRACK
        return cls(value)

    @property
    def is_no_track(self) -> bool:
        return self.path == NO_TRACK_PATH

    def __str__(self) -> str:
        return self.path


NO_TRACK = TrackID(NO_TRACK_PATH)


class ValueKind(Enum):
    """Kinds of values a metadata entry can hold."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING_LIST = "string_list"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class MetadataValue:
    """
    Tagged metadata value.

    Players are known to send values of the wrong type, so anything that is
    not a string, number, boolean or list of strings becomes UNSUPPORTED
    instead of raising.
    """

    kind: ValueKind
    value: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> "MetadataValue":
        # bool is a subclass of int, check it first
        if isinstance(raw, bool):
            return cls(ValueKind.BOOLEAN, raw)
        if isinstance(raw, str):
            return cls(ValueKind.STRING, raw)
        if isinstance(raw, Real):
            return cls(ValueKind.NUMBER, raw)
        if isinstance(raw, (list, tuple)) and all(isinstance(item, str) for item in raw):
            return cls(ValueKind.STRING_LIST, tuple(raw))
        return cls(ValueKind.UNSUPPORTED)

    @property
    def is_unsupported(self) -> bool:
        return self.kind is ValueKind.UNSUPPORTED

    def as_str(self) -> Optional[str]:
        if self.kind is ValueKind.STRING:
            return self.value
        return None

    def as_number(self) -> Optional[float]:
        if self.kind is ValueKind.NUMBER:
            return self.value
        return None

    def as_int(self) -> Optional[int]:
        """Integer view of a NUMBER; floats are accepted only when integral."""
        if self.kind is not ValueKind.NUMBER:
            return None
        if isinstance(self.value, int):
            return self.value
        if float(self.value).is_integer():
            return int(self.value)
        return None

    def as_bool(self) -> Optional[bool]:
        if self.kind is ValueKind.BOOLEAN:
            return self.value
        return None

    def as_strings(self) -> Optional[Tuple[str, ...]]:
        """List view; a single string is treated as a one-element list."""
        if self.kind is ValueKind.STRING_LIST:
            return self.value
        if self.kind is ValueKind.STRING:
            return (self.value,)
        return None
