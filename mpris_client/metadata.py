"""
Track metadata model.

Parses the untyped metadata dictionaries players send over the bus into an
immutable, typed snapshot.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .models import NO_TRACK, MetadataValue, TrackID

TRACK_ID_KEY = "mpris:trackid"
LENGTH_KEY = "mpris:length"


def _text(value: MetadataValue) -> Optional[str]:
    return value.as_str()


def _nonempty_text(value: MetadataValue) -> Optional[str]:
    text = value.as_str()
    return text if text else None


def _texts(value: MetadataValue) -> Optional[Tuple[str, ...]]:
    return value.as_strings()


def _count(value: MetadataValue) -> Optional[int]:
    number = value.as_int()
    if number is None or number < 0:
        return None
    return number


def _rating(value: MetadataValue) -> Optional[float]:
    number = value.as_number()
    return float(number) if number is not None else None


def _length(value: MetadataValue) -> Optional[timedelta]:
    # Length is sent in microseconds; negative or non-numeric means unknown
    number = value.as_number()
    if number is None or number < 0:
        return None
    try:
        return timedelta(microseconds=number)
    except (OverflowError, ValueError):
        return None


# Well-known key -> (field name, converter)
WELL_KNOWN_KEYS: Dict[str, Tuple[str, Callable[[MetadataValue], Any]]] = {
    LENGTH_KEY: ("length", _length),
    "mpris:artUrl": ("art_url", _nonempty_text),
    "xesam:title": ("title", _nonempty_text),
    "xesam:album": ("album_name", _nonempty_text),
    "xesam:artist": ("artists", _texts),
    "xesam:albumArtist": ("album_artists", _texts),
    "xesam:url": ("url", _nonempty_text),
    "xesam:trackNumber": ("track_number", _count),
    "xesam:discNumber": ("disc_number", _count),
    "xesam:useCount": ("use_count", _count),
    "xesam:audioBPM": ("audio_bpm", _count),
    "xesam:autoRating": ("auto_rating", _rating),
    "xesam:userRating": ("user_rating", _rating),
    "xesam:genre": ("genres", _texts),
    "xesam:composer": ("composers", _texts),
    "xesam:lyricist": ("lyricists", _texts),
    "xesam:comment": ("comments", _texts),
    "xesam:asText": ("lyrics", _text),
    "xesam:contentCreated": ("content_created", _text),
    "xesam:firstUsed": ("first_used", _text),
    "xesam:lastUsed": ("last_used", _text),
}


@dataclass(frozen=True)
class Metadata:
    """
    Immutable snapshot of a track's metadata.

    A changed track always produces a new Metadata; instances are never
    updated in place. ``track_id`` is NO_TRACK when the player did not report
    one.
    """

    track_id: TrackID = NO_TRACK
    title: Optional[str] = None
    album_name: Optional[str] = None
    artists: Optional[Tuple[str, ...]] = None
    album_artists: Optional[Tuple[str, ...]] = None
    art_url: Optional[str] = None
    url: Optional[str] = None
    length: Optional[timedelta] = None
    track_number: Optional[int] = None
    disc_number: Optional[int] = None
    use_count: Optional[int] = None
    audio_bpm: Optional[int] = None
    auto_rating: Optional[float] = None
    user_rating: Optional[float] = None
    genres: Optional[Tuple[str, ...]] = None
    composers: Optional[Tuple[str, ...]] = None
    lyricists: Optional[Tuple[str, ...]] = None
    comments: Optional[Tuple[str, ...]] = None
    lyrics: Optional[str] = None
    content_created: Optional[str] = None
    first_used: Optional[str] = None
    last_used: Optional[str] = None
    values: Mapping[str, MetadataValue] = field(
        default_factory=lambda: MappingProxyType({}), repr=False
    )

    def __hash__(self) -> int:
        return hash(self.track_id)

    @classmethod
    def from_raw(cls, raw: Any) -> "Metadata":
        """
        Parse a raw metadata dictionary.

        Never raises: values of the wrong type are kept as UNSUPPORTED and the
        corresponding typed field stays None.

        Args:
            raw: Mapping of metadata keys to unpacked bus values

        Returns:
            Parsed Metadata (empty when raw is not a mapping)
        """
        if not isinstance(raw, Mapping):
            return cls()

        values = {
            str(key): MetadataValue.from_raw(value) for key, value in raw.items()
        }
        fields: Dict[str, Any] = {}
        for key, (name, convert) in WELL_KNOWN_KEYS.items():
            if key in values:
                fields[name] = convert(values[key])

        track_id = NO_TRACK
        if TRACK_ID_KEY in values:
            track_id = TrackID.from_raw(values[TRACK_ID_KEY].value)

        return cls(track_id=track_id, values=MappingProxyType(values), **fields)

    def get(self, key: str) -> Optional[MetadataValue]:
        """Return the tagged value stored under a raw key, if any."""
        return self.values.get(key)

    @property
    def extensions(self) -> Mapping[str, MetadataValue]:
        """Entries that are neither the track id nor a well-known key."""
        return {
            key: value
            for key, value in self.values.items()
            if key != TRACK_ID_KEY and key not in WELL_KNOWN_KEYS
        }

    def is_same_track(self, other: "Metadata") -> bool:
        """
        Check whether two snapshots describe the same track.

        Compares track IDs first. When neither side has a real ID (streams,
        some radio players) the URL decides, and after that the title and
        artists.
        """
        if not self.track_id.is_no_track or not other.track_id.is_no_track:
            return self.track_id == other.track_id
        if self.url is not None or other.url is not None:
            if self.url != other.url:
                return False
        return (self.title, self.artists) == (other.title, other.artists)
