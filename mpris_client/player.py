"""
Player facade for mpris_client.

Typed, capability-aware access to a single remote MPRIS player: property
reads and writes, playback commands and track list control.
"""

import logging
from datetime import timedelta
from numbers import Real
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from .bus import PLAYER_INTERFACE, ROOT_INTERFACE, TRACK_LIST_INTERFACE, BusProxy
from .capabilities import Capabilities, CapabilityRegistry
from .errors import (
    CapabilityAbsent,
    DecodingFailure,
    IdentifierMismatch,
    PropertyMissing,
    TrackListInconsistency,
    TransportFailure,
)
from .events import EventTranslator
from .metadata import Metadata
from .models import NO_TRACK, LoopStatus, PlaybackStatus, TrackID
from .progress import ProgressTracker
from .track_list import TrackList

# Result of checked writes and commands: True when the call was made
Checked = Union[bool, CapabilityAbsent]


def _micros(duration: timedelta) -> int:
    return int(duration / timedelta(microseconds=1))


def _as_bool(value: Any, operation: str) -> bool:
    if isinstance(value, bool):
        return value
    raise DecodingFailure(f"Expected a boolean, got {value!r}", operation, value)


def _as_float(value: Any, operation: str) -> float:
    if isinstance(value, Real) and not isinstance(value, bool):
        return float(value)
    raise DecodingFailure(f"Expected a number, got {value!r}", operation, value)


def _as_int(value: Any, operation: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    raise DecodingFailure(f"Expected an integer, got {value!r}", operation, value)


def _as_str(value: Any, operation: str) -> str:
    if isinstance(value, str):
        return value
    raise DecodingFailure(f"Expected a string, got {value!r}", operation, value)


def _as_strings(value: Any, operation: str) -> List[str]:
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return list(value)
    raise DecodingFailure(f"Expected a list of strings, got {value!r}", operation, value)


class Player:
    """
    A single remote MPRIS player.

    Every method is one blocking round trip to the player. Unchecked methods
    always call the player and surface whatever it answers; checked_* methods
    consult the cached capabilities first and skip the call when the player
    does not advertise support.
    """

    def __init__(self, bus: BusProxy):
        """
        Initialize Player.

        Args:
            bus: Proxy bound to the player's bus name
        """
        self.bus = bus
        self.logger = logging.getLogger(__name__)
        self.capability_registry = CapabilityRegistry(bus)
        self._last_metadata: Optional[Metadata] = None

    def __repr__(self) -> str:
        return f"Player({self.bus_name!r})"

    @property
    def bus_name(self) -> str:
        return self.bus.bus_name

    # =========================================================================
    # Capabilities
    # =========================================================================

    def capabilities(self) -> Capabilities:
        return self.capability_registry.get_cached()

    def refresh_capabilities(self) -> Capabilities:
        return self.capability_registry.refresh()

    def can_control(self) -> bool:
        return self.capabilities().can_control

    def can_play(self) -> bool:
        return self.capabilities().can_play

    def can_pause(self) -> bool:
        return self.capabilities().can_pause

    def can_stop(self) -> bool:
        return self.capabilities().can_stop

    def can_seek(self) -> bool:
        return self.capabilities().can_seek

    def can_go_next(self) -> bool:
        return self.capabilities().can_go_next

    def can_go_previous(self) -> bool:
        return self.capabilities().can_go_previous

    def can_shuffle(self) -> bool:
        return self.capabilities().can_shuffle

    def can_loop(self) -> bool:
        return self.capabilities().can_loop

    def can_raise(self) -> bool:
        return self.capabilities().can_raise

    def can_quit(self) -> bool:
        return self.capabilities().can_quit

    def can_set_fullscreen(self) -> bool:
        return self.capabilities().can_set_fullscreen

    def can_set_playback_rate(self) -> bool:
        return self.capabilities().can_set_playback_rate

    def can_edit_tracks(self) -> bool:
        return self.capabilities().can_edit_tracks

    def supports_position(self) -> bool:
        return self.capabilities().supports_position

    def supports_volume(self) -> bool:
        return self.capabilities().supports_volume

    def supports_playback_rate(self) -> bool:
        return self.capabilities().supports_playback_rate

    def supports_track_lists(self) -> bool:
        return self.capabilities().supports_track_lists

    def _checked(
        self, capabilities: Tuple[str, ...], action: Callable[..., Any], *args: Any
    ) -> Checked:
        """Run action only if every named capability is present."""
        current = self.capabilities()
        for name in capabilities:
            if not getattr(current, name):
                self.logger.debug("Skipping %s on %s: no %s", action.__name__, self.bus_name, name)
                return CapabilityAbsent(name)
        action(*args)
        return True

    # =========================================================================
    # Root interface
    # =========================================================================

    def identity(self) -> str:
        return _as_str(self.bus.get_property(ROOT_INTERFACE, "Identity"), "Identity")

    def desktop_entry(self) -> Optional[str]:
        """Desktop entry basename, or None for players that do not expose one."""
        try:
            value = self.bus.get_property(ROOT_INTERFACE, "DesktopEntry")
        except PropertyMissing:
            return None
        return _as_str(value, "DesktopEntry")

    def supported_uri_schemes(self) -> List[str]:
        value = self.bus.get_property(ROOT_INTERFACE, "SupportedUriSchemes")
        return _as_strings(value, "SupportedUriSchemes")

    def supported_mime_types(self) -> List[str]:
        value = self.bus.get_property(ROOT_INTERFACE, "SupportedMimeTypes")
        return _as_strings(value, "SupportedMimeTypes")

    def get_fullscreen(self) -> Optional[bool]:
        """Fullscreen state, or None for players without the optional property."""
        try:
            value = self.bus.get_property(ROOT_INTERFACE, "Fullscreen")
        except PropertyMissing:
            return None
        return _as_bool(value, "Fullscreen")

    def set_fullscreen(self, fullscreen: bool) -> None:
        self.bus.set_property(ROOT_INTERFACE, "Fullscreen", fullscreen, "b")

    def checked_set_fullscreen(self, fullscreen: bool) -> Checked:
        return self._checked(("can_set_fullscreen",), self.set_fullscreen, fullscreen)

    def raise_window(self) -> None:
        self.bus.call(ROOT_INTERFACE, "Raise")

    def checked_raise_window(self) -> Checked:
        return self._checked(("can_raise",), self.raise_window)

    def quit(self) -> None:
        self.bus.call(ROOT_INTERFACE, "Quit")

    def checked_quit(self) -> Checked:
        return self._checked(("can_quit",), self.quit)

    def is_running(self) -> bool:
        """Check whether the player's bus name still has an owner."""
        try:
            return self.bus.name_has_owner(self.bus_name)
        except TransportFailure as e:
            self.logger.debug("Could not ask the bus about %s: %s", self.bus_name, e)
            return False

    # =========================================================================
    # Player properties
    # =========================================================================

    def get_playback_status(self) -> PlaybackStatus:
        return PlaybackStatus.from_string(self.bus.get_property(PLAYER_INTERFACE, "PlaybackStatus"))

    def get_loop_status(self) -> LoopStatus:
        return LoopStatus.from_string(self.bus.get_property(PLAYER_INTERFACE, "LoopStatus"))

    def checked_get_loop_status(self) -> Optional[LoopStatus]:
        return self.get_loop_status() if self.can_loop() else None

    def set_loop_status(self, status: LoopStatus) -> None:
        self.bus.set_property(PLAYER_INTERFACE, "LoopStatus", status.value, "s")

    def checked_set_loop_status(self, status: LoopStatus) -> Checked:
        return self._checked(("can_control", "can_loop"), self.set_loop_status, status)

    def get_shuffle(self) -> bool:
        return _as_bool(self.bus.get_property(PLAYER_INTERFACE, "Shuffle"), "Shuffle")

    def checked_get_shuffle(self) -> Optional[bool]:
        return self.get_shuffle() if self.can_shuffle() else None

    def set_shuffle(self, shuffle: bool) -> None:
        self.bus.set_property(PLAYER_INTERFACE, "Shuffle", shuffle, "b")

    def checked_set_shuffle(self, shuffle: bool) -> Checked:
        return self._checked(("can_control", "can_shuffle"), self.set_shuffle, shuffle)

    def get_volume(self) -> float:
        return _as_float(self.bus.get_property(PLAYER_INTERFACE, "Volume"), "Volume")

    def checked_get_volume(self) -> Optional[float]:
        return self.get_volume() if self.supports_volume() else None

    def set_volume(self, volume: float) -> None:
        # Players must treat negative volumes as 0.0; do it here for the ones that don't
        self.bus.set_property(PLAYER_INTERFACE, "Volume", max(0.0, float(volume)), "d")

    def checked_set_volume(self, volume: float) -> Checked:
        return self._checked(("can_control", "supports_volume"), self.set_volume, volume)

    def get_position_in_microseconds(self) -> int:
        return _as_int(self.bus.get_property(PLAYER_INTERFACE, "Position"), "Position")

    def get_position(self) -> timedelta:
        return timedelta(microseconds=max(0, self.get_position_in_microseconds()))

    def checked_get_position(self) -> Optional[timedelta]:
        return self.get_position() if self.supports_position() else None

    def get_playback_rate(self) -> float:
        return _as_float(self.bus.get_property(PLAYER_INTERFACE, "Rate"), "Rate")

    def checked_get_playback_rate(self) -> Optional[float]:
        return self.get_playback_rate() if self.supports_playback_rate() else None

    def set_playback_rate(self, rate: float) -> None:
        self.bus.set_property(PLAYER_INTERFACE, "Rate", float(rate), "d")

    def checked_set_playback_rate(self, rate: float) -> Checked:
        return self._checked(
            ("can_control", "can_set_playback_rate"), self.set_playback_rate, rate
        )

    def get_minimum_playback_rate(self) -> float:
        return _as_float(self.bus.get_property(PLAYER_INTERFACE, "MinimumRate"), "MinimumRate")

    def get_maximum_playback_rate(self) -> float:
        return _as_float(self.bus.get_property(PLAYER_INTERFACE, "MaximumRate"), "MaximumRate")

    def get_metadata(self) -> Metadata:
        """
        Read the current track's metadata.

        Always asks the player; the result also becomes the last-known
        metadata used to validate set_position().
        """
        metadata = Metadata.from_raw(self.bus.get_property(PLAYER_INTERFACE, "Metadata"))
        self._last_metadata = metadata
        return metadata

    @property
    def last_metadata(self) -> Optional[Metadata]:
        """Most recent metadata observed, without asking the player."""
        return self._last_metadata

    def observe_metadata(self, metadata: Metadata) -> None:
        """Record metadata learned from a signal as the last-known metadata."""
        self._last_metadata = metadata

    # =========================================================================
    # Playback commands
    # =========================================================================

    def play(self) -> None:
        self.bus.call(PLAYER_INTERFACE, "Play")

    def checked_play(self) -> Checked:
        return self._checked(("can_play",), self.play)

    def pause(self) -> None:
        self.bus.call(PLAYER_INTERFACE, "Pause")

    def checked_pause(self) -> Checked:
        return self._checked(("can_pause",), self.pause)

    def play_pause(self) -> None:
        self.bus.call(PLAYER_INTERFACE, "PlayPause")

    def checked_play_pause(self) -> Checked:
        return self._checked(("can_pause",), self.play_pause)

    def stop(self) -> None:
        self.bus.call(PLAYER_INTERFACE, "Stop")

    def checked_stop(self) -> Checked:
        return self._checked(("can_stop",), self.stop)

    def next(self) -> None:
        self.bus.call(PLAYER_INTERFACE, "Next")

    def checked_next(self) -> Checked:
        return self._checked(("can_go_next",), self.next)

    def previous(self) -> None:
        self.bus.call(PLAYER_INTERFACE, "Previous")

    def checked_previous(self) -> Checked:
        return self._checked(("can_go_previous",), self.previous)

    def seek(self, offset: timedelta) -> None:
        """Seek relative to the current position; negative offsets seek backwards."""
        self.bus.call(PLAYER_INTERFACE, "Seek", (_micros(offset),), "(x)")

    def checked_seek(self, offset: timedelta) -> Checked:
        return self._checked(("can_seek",), self.seek, offset)

    def seek_forwards(self, offset: timedelta) -> None:
        self.seek(abs(offset))

    def checked_seek_forwards(self, offset: timedelta) -> Checked:
        return self._checked(("can_seek",), self.seek_forwards, offset)

    def seek_backwards(self, offset: timedelta) -> None:
        self.seek(-abs(offset))

    def checked_seek_backwards(self, offset: timedelta) -> Checked:
        return self._checked(("can_seek",), self.seek_backwards, offset)

    def set_position(self, track_id: TrackID, position: timedelta) -> None:
        """
        Jump to an absolute position in the current track.

        Players silently ignore positions for stale track IDs, so the ID is
        checked against the last-known current track before calling.

        Args:
            track_id: ID of the track the position belongs to
            position: Absolute position within that track

        Raises:
            IdentifierMismatch: if track_id is not the current track
        """
        current = self._last_metadata if self._last_metadata is not None else self.get_metadata()
        if track_id.is_no_track or track_id != current.track_id:
            raise IdentifierMismatch(current.track_id, track_id)
        self.bus.call(PLAYER_INTERFACE, "SetPosition", (track_id.path, _micros(position)), "(ox)")

    def checked_set_position(self, track_id: TrackID, position: timedelta) -> Checked:
        return self._checked(("can_seek",), self.set_position, track_id, position)

    def open_uri(self, uri: str) -> None:
        self.bus.call(PLAYER_INTERFACE, "OpenUri", (uri,), "(s)")

    # =========================================================================
    # Track list
    # =========================================================================

    def get_track_ids(self) -> List[TrackID]:
        value = self.bus.get_property(TRACK_LIST_INTERFACE, "Tracks")
        return [TrackID.from_raw(path) for path in _as_strings(value, "Tracks")]

    def get_track_list(self) -> TrackList:
        return TrackList(self.get_track_ids(), fetch_metadata=self.get_tracks_metadata)

    def checked_get_track_list(self) -> Optional[TrackList]:
        return self.get_track_list() if self.supports_track_lists() else None

    def get_tracks_metadata(self, track_ids: Sequence[TrackID]) -> List[Metadata]:
        """
        Fetch metadata for several tracks in one call.

        Raises:
            DecodingFailure: if the player answers with a different number of entries
        """
        (raw,) = self.bus.call(
            TRACK_LIST_INTERFACE,
            "GetTracksMetadata",
            ([track_id.path for track_id in track_ids],),
            "(ao)",
        )
        if not isinstance(raw, (list, tuple)) or len(raw) != len(track_ids):
            raise DecodingFailure(
                f"Expected metadata for {len(track_ids)} tracks, got {raw!r}",
                "GetTracksMetadata",
                raw,
            )
        return [Metadata.from_raw(entry) for entry in raw]

    def get_track_metadata(self, track_id: TrackID) -> Metadata:
        (raw,) = self.bus.call(
            TRACK_LIST_INTERFACE, "GetTracksMetadata", ([track_id.path],), "(ao)"
        )
        if not raw:
            raise TrackListInconsistency(track_id, "GetTracksMetadata")
        return Metadata.from_raw(raw[0])

    def go_to(self, track_id: TrackID, track_list: Optional[TrackList] = None) -> None:
        """
        Skip to a track in the track list.

        Raises:
            TrackListInconsistency: if track_list is given and does not contain track_id
        """
        if track_list is not None and track_id not in track_list:
            raise TrackListInconsistency(track_id, "GoTo")
        self.bus.call(TRACK_LIST_INTERFACE, "GoTo", (track_id.path,), "(o)")

    def checked_go_to(self, track_id: TrackID, track_list: Optional[TrackList] = None) -> Checked:
        return self._checked(("supports_track_lists",), self.go_to, track_id, track_list)

    def add_track(self, uri: str, after: TrackID, set_as_current: bool = False) -> None:
        self.bus.call(
            TRACK_LIST_INTERFACE, "AddTrack", (uri, after.path, set_as_current), "(sob)"
        )

    def add_track_at_start(self, uri: str, set_as_current: bool = False) -> None:
        self.add_track(uri, NO_TRACK, set_as_current)

    def checked_add_track(self, uri: str, after: TrackID, set_as_current: bool = False) -> Checked:
        return self._checked(("can_edit_tracks",), self.add_track, uri, after, set_as_current)

    def remove_track(self, track_id: TrackID, track_list: Optional[TrackList] = None) -> None:
        """
        Remove a track from the track list.

        Raises:
            TrackListInconsistency: if track_list is given and does not contain track_id
        """
        if track_list is not None and track_id not in track_list:
            raise TrackListInconsistency(track_id, "RemoveTrack")
        self.bus.call(TRACK_LIST_INTERFACE, "RemoveTrack", (track_id.path,), "(o)")

    def checked_remove_track(
        self, track_id: TrackID, track_list: Optional[TrackList] = None
    ) -> Checked:
        return self._checked(("can_edit_tracks",), self.remove_track, track_id, track_list)

    # =========================================================================
    # Derived views
    # =========================================================================

    def track_progress(self, **kwargs) -> ProgressTracker:
        """Start a ProgressTracker for this player (takes one sample immediately)."""
        return ProgressTracker(self, **kwargs)

    def events(self, timeout: Optional[float] = None, **kwargs) -> EventTranslator:
        """Start translating this player's signals into Events."""
        return EventTranslator(self, timeout=timeout, **kwargs)
