"""
Event translation for mpris_client.

Turns a player's raw signals (property-change batches, Seeked, track list
signals, bus name ownership changes) into an ordered stream of typed Events.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, replace
from datetime import timedelta
from numbers import Real
from typing import TYPE_CHECKING, Any, Callable, Deque, Dict, Iterator, Optional, Tuple

from .bus import (
    DBUS_INTERFACE,
    PLAYER_INTERFACE,
    PROPERTIES_INTERFACE,
    ROOT_INTERFACE,
    TRACK_LIST_INTERFACE,
    Signal,
)
from .config import Config
from .errors import (
    DecodingFailure,
    MprisError,
    RemoteRejected,
    TrackListInconsistency,
    TransportFailure,
)
from .metadata import Metadata
from .models import LoopStatus, PlaybackStatus, TrackID
from .progress import Progress, floats_differ
from .track_list import TrackList

if TYPE_CHECKING:
    from .player import Player


@dataclass(frozen=True)
class Event:
    """Base class of everything an EventTranslator yields."""


@dataclass(frozen=True)
class PlaybackStatusChanged(Event):
    status: PlaybackStatus


@dataclass(frozen=True)
class LoopStatusChanged(Event):
    loop_status: LoopStatus


@dataclass(frozen=True)
class ShuffleToggled(Event):
    shuffle: bool


@dataclass(frozen=True)
class VolumeChanged(Event):
    volume: float


@dataclass(frozen=True)
class PlaybackRateChanged(Event):
    rate: float


@dataclass(frozen=True)
class TrackChanged(Event):
    """A different track is now current."""

    metadata: Metadata


@dataclass(frozen=True)
class SeekTracked(Event):
    position: timedelta


@dataclass(frozen=True)
class TrackListReplaced(Event):
    track_ids: Tuple[TrackID, ...]


@dataclass(frozen=True)
class TrackAdded(Event):
    track_id: TrackID
    after: Optional[TrackID] = None
    metadata: Optional[Metadata] = None


@dataclass(frozen=True)
class TrackRemoved(Event):
    track_id: TrackID


@dataclass(frozen=True)
class TrackMetadataChanged(Event):
    """
    Metadata of a known track changed without it becoming a different track.

    ``old_track_id`` is set when a track list signal also renamed the track.
    """

    track_id: TrackID
    metadata: Metadata
    old_track_id: Optional[TrackID] = None


@dataclass(frozen=True)
class PlayerShutDown(Event):
    """The player left the bus. Always the last event of a translator."""


@dataclass(frozen=True)
class Unknown(Event):
    """A signal this package does not understand, passed through for logging."""

    interface: str
    name: str
    payload: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class TrackBoundaryHeuristic:
    """
    Guesses that a track ended without the player saying so.

    Some players never emit PropertiesChanged for Metadata. A boundary is
    suspected when the extrapolated position runs past the track length by
    more than end_tolerance, or when the player reports a position below
    reset_threshold while extrapolation expected it to be further along
    than that.
    """

    end_tolerance: timedelta = Config.TRACK_END_TOLERANCE
    reset_threshold: timedelta = Config.POSITION_RESET_THRESHOLD

    def suspects_boundary(
        self, progress: Progress, now: float, sampled_position: Optional[timedelta] = None
    ) -> bool:
        if progress.status is not PlaybackStatus.PLAYING:
            return False

        # Unclamped, position_now() stops at the length
        expected = progress.position + timedelta(seconds=progress.age(now) * progress.rate)
        # Once anchored at or past the end, only a position reset can reveal a new track
        if (
            progress.length is not None
            and progress.position < progress.length
            and expected > progress.length + self.end_tolerance
        ):
            return True

        if sampled_position is not None and sampled_position < self.reset_threshold:
            return expected - sampled_position > self.reset_threshold
        return False


class EventTranslator:
    """
    Blocking, pull-style stream of Events for one player.

    Events come out in the order their signals arrived; a single
    PropertiesChanged batch may produce several. When a pull times out the
    translator checks whether the player is still on the bus and runs the
    track boundary heuristic. PlayerShutDown is terminal: afterwards every
    pull returns None and iteration stops.
    """

    def __init__(
        self,
        player: "Player",
        timeout: Optional[float] = None,
        heuristic: Optional[TrackBoundaryHeuristic] = TrackBoundaryHeuristic(),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize EventTranslator.

        Args:
            player: Player to translate signals for
            timeout: Default seconds a pull waits for a signal; None waits forever
            heuristic: Track boundary detection for non-conforming players, None disables it
            clock: Monotonic clock in seconds
        """
        self.player = player
        self.timeout = timeout
        self.heuristic = heuristic
        self.clock = clock
        self.logger = logging.getLogger(__name__)
        self._buffer: Deque[Event] = deque()
        self._finished = False

        # Subscribe before sampling so nothing between the two is lost
        self._subscription = player.bus.subscribe_signals()
        try:
            self._progress = Progress.from_player(player, clock())
        except MprisError:
            self._subscription.close()
            raise
        track_list = self._progress.track_list
        self._track_list: Optional[TrackList] = track_list.copy() if track_list else None

        self._handlers: Dict[Tuple[str, str], Callable[[Signal], None]] = {
            (PROPERTIES_INTERFACE, "PropertiesChanged"): self._on_properties_changed,
            (PLAYER_INTERFACE, "Seeked"): self._on_seeked,
            (TRACK_LIST_INTERFACE, "TrackListReplaced"): self._on_track_list_replaced,
            (TRACK_LIST_INTERFACE, "TrackAdded"): self._on_track_added,
            (TRACK_LIST_INTERFACE, "TrackRemoved"): self._on_track_removed,
            (TRACK_LIST_INTERFACE, "TrackMetadataChanged"): self._on_track_metadata_changed,
            (DBUS_INTERFACE, "NameOwnerChanged"): self._on_name_owner_changed,
        }
        self._player_property_handlers: Dict[str, Callable[[Any, float], None]] = {
            "PlaybackStatus": self._on_playback_status,
            "LoopStatus": self._on_loop_status,
            "Shuffle": self._on_shuffle,
            "Volume": self._on_volume,
            "Rate": self._on_rate,
            "Metadata": self._on_metadata,
            "Position": self._on_position,
        }

    @property
    def progress(self) -> Progress:
        """Latest known playback state, kept current from signals."""
        return self._progress

    @property
    def track_list(self) -> Optional[TrackList]:
        return self._track_list

    @property
    def finished(self) -> bool:
        return self._finished

    def __iter__(self) -> Iterator[Event]:
        return self

    def __next__(self) -> Event:
        while True:
            event = self.next_event()
            if event is not None:
                return event
            if self._finished:
                raise StopIteration

    def next_event(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Return the next Event, blocking until one is available.

        Args:
            timeout: Seconds to wait, defaulting to the translator's timeout;
                None or 0 waits forever

        Returns:
            The next Event, or None when the timeout elapsed without one or
            the player already shut down
        """
        if timeout is None:
            timeout = self.timeout

        while not self._buffer:
            if self._finished:
                return None
            try:
                signal = self._subscription.next(timeout)
            except TransportFailure as e:
                self.logger.info("Lost the bus connection for %s: %s", self.player.bus_name, e)
                self._shut_down()
                break

            if signal is None:
                self._guarded(self._on_idle)
                if not self._buffer:
                    return None
            else:
                self._guarded(self._translate, signal)

        return self._buffer.popleft()

    def close(self) -> None:
        """Stop listening without waiting for the player to go away."""
        self._finished = True
        self._subscription.close()

    def _guarded(self, handler: Callable[..., None], *args: Any) -> None:
        # A transport failure from a player that is gone means shutdown, not an error
        try:
            handler(*args)
        except TransportFailure:
            if self.player.is_running():
                raise
            self._shut_down()

    def _emit(self, event: Event) -> None:
        self.logger.debug("%s: %s", self.player.bus_name, event)
        self._buffer.append(event)

    def _shut_down(self) -> None:
        if self._finished:
            return
        self.logger.info("Player %s shut down", self.player.bus_name)
        self._emit(PlayerShutDown())
        self._finished = True
        self._subscription.close()

    # =========================================================================
    # Idle checks
    # =========================================================================

    def _on_idle(self) -> None:
        if not self.player.is_running():
            self._shut_down()
            return
        if self.heuristic is not None:
            self._check_track_boundary(self.clock())

    def _read_position(self) -> Optional[timedelta]:
        if not self.player.supports_position():
            return None
        try:
            return self.player.get_position()
        except (RemoteRejected, DecodingFailure) as e:
            self.logger.debug("Could not read position of %s: %s", self.player.bus_name, e)
            return None

    def _check_track_boundary(self, now: float) -> None:
        if self._progress.status is not PlaybackStatus.PLAYING:
            return

        sampled = self._read_position()
        if not self.heuristic.suspects_boundary(self._progress, now, sampled):
            if sampled is not None:
                self._progress = self._progress.anchored(now, position=sampled)
            return

        metadata = self.player.get_metadata()
        if metadata.is_same_track(self._progress.metadata):
            status = self.player.get_playback_status()
            self._progress = self._progress.anchored(
                now,
                status=status,
                position=sampled if sampled is not None else self._progress.position_now(now),
            )
            return

        self.logger.info(
            "Synthesizing track change for %s, the player did not signal it",
            self.player.bus_name,
        )
        self._progress = self._progress.anchored(
            now, metadata=metadata, position=sampled if sampled is not None else timedelta(0)
        )
        self._emit(TrackChanged(metadata))

    # =========================================================================
    # Signal translation
    # =========================================================================

    def _translate(self, signal: Signal) -> None:
        handler = self._handlers.get((signal.interface, signal.name))
        if handler is None:
            self._emit(Unknown(signal.interface, signal.name, signal.payload))
            return
        try:
            handler(signal)
        except (TypeError, ValueError, IndexError) as e:
            self.logger.warning(
                "Malformed %s.%s from %s: %s", signal.interface, signal.name, self.player.bus_name, e
            )
            self._emit(Unknown(signal.interface, signal.name, signal.payload))

    def _on_properties_changed(self, signal: Signal) -> None:
        interface, changed = signal.payload[0], dict(signal.payload[1])
        invalidated = list(signal.payload[2]) if len(signal.payload) > 2 else []

        if interface == PLAYER_INTERFACE:
            self._on_player_properties(changed, invalidated)
        elif interface == TRACK_LIST_INTERFACE:
            self._on_track_list_properties(changed, invalidated)
        elif interface == ROOT_INTERFACE:
            self.player.capability_registry.invalidate()
        else:
            self._emit(Unknown(signal.interface, signal.name, signal.payload))

    def _reread(self, interface: str, name: str) -> Any:
        try:
            return self.player.bus.get_property(interface, name)
        except RemoteRejected as e:
            self.logger.debug("Could not re-read invalidated %s: %s", name, e)
            return None

    def _on_player_properties(self, changed: Dict[str, Any], invalidated: list) -> None:
        now = self.clock()
        for name in invalidated:
            if name not in changed and name in self._player_property_handlers:
                value = self._reread(PLAYER_INTERFACE, name)
                if value is not None:
                    changed[name] = value

        for name, value in changed.items():
            handler = self._player_property_handlers.get(name)
            if handler is not None:
                handler(value, now)
            elif name.startswith("Can") or name in ("MinimumRate", "MaximumRate"):
                self.player.capability_registry.invalidate()

    def _on_playback_status(self, value: Any, now: float) -> None:
        try:
            status = PlaybackStatus.from_string(value)
        except DecodingFailure as e:
            self.logger.warning("Ignoring playback status from %s: %s", self.player.bus_name, e)
            return
        if status is not self._progress.status:
            self._progress = self._progress.anchored(now, status=status)
            self._emit(PlaybackStatusChanged(status))

    def _on_loop_status(self, value: Any, now: float) -> None:
        try:
            loop_status = LoopStatus.from_string(value)
        except DecodingFailure as e:
            self.logger.warning("Ignoring loop status from %s: %s", self.player.bus_name, e)
            return
        if loop_status is not self._progress.loop_status:
            self._progress = replace(self._progress, loop_status=loop_status)
            self._emit(LoopStatusChanged(loop_status))

    def _on_shuffle(self, value: Any, now: float) -> None:
        if not isinstance(value, bool):
            self.logger.warning("Ignoring shuffle value %r from %s", value, self.player.bus_name)
            return
        previous = self._progress.shuffle
        self._progress = replace(self._progress, shuffle=value)
        # Without a sampled value the first report only seeds it
        if previous is not None and value != previous:
            self._emit(ShuffleToggled(value))
            # Toggling shuffle usually reorders the track list
            self._reload_track_list()

    def _on_volume(self, value: Any, now: float) -> None:
        if isinstance(value, bool) or not isinstance(value, Real):
            self.logger.warning("Ignoring volume value %r from %s", value, self.player.bus_name)
            return
        volume = float(value)
        if floats_differ(self._progress.volume, volume):
            self._progress = replace(self._progress, volume=volume)
            self._emit(VolumeChanged(volume))

    def _on_rate(self, value: Any, now: float) -> None:
        if isinstance(value, bool) or not isinstance(value, Real):
            self.logger.warning("Ignoring rate value %r from %s", value, self.player.bus_name)
            return
        rate = float(value)
        if floats_differ(self._progress.rate, rate):
            self._progress = self._progress.anchored(now, rate=rate)
            self._emit(PlaybackRateChanged(rate))

    def _on_position(self, value: Any, now: float) -> None:
        # Not supposed to be signalled, but keep extrapolation honest if it is
        if isinstance(value, int) and not isinstance(value, bool):
            self._progress = self._progress.anchored(
                now, position=timedelta(microseconds=max(0, value))
            )

    def _on_metadata(self, value: Any, now: float) -> None:
        metadata = Metadata.from_raw(value)
        self.player.observe_metadata(metadata)
        previous = self._progress.metadata

        if not previous.is_same_track(metadata):
            position = self._read_position()
            self._progress = self._progress.anchored(
                now,
                metadata=metadata,
                position=position if position is not None else timedelta(0),
            )
            self._emit(TrackChanged(metadata))
        elif metadata != previous:
            self._progress = replace(self._progress, metadata=metadata)
            self._emit(TrackMetadataChanged(metadata.track_id, metadata))

    def _on_seeked(self, signal: Signal) -> None:
        position_us = signal.payload[0]
        if isinstance(position_us, bool) or not isinstance(position_us, int):
            raise TypeError(f"Seeked position must be an integer, got {position_us!r}")
        position = timedelta(microseconds=max(0, position_us))
        self._progress = self._progress.anchored(self.clock(), position=position)
        self._emit(SeekTracked(position))

    # =========================================================================
    # Track list signals
    # =========================================================================

    def _reload_track_list(self) -> None:
        """Re-read the whole track list, emitting TrackListReplaced if it changed."""
        if self._track_list is None:
            return
        previous = self._track_list.ids
        try:
            self._track_list.reload(self.player)
        except (RemoteRejected, DecodingFailure) as e:
            self.logger.warning("Could not reload track list of %s: %s", self.player.bus_name, e)
            return
        if self._track_list.ids != previous:
            self._emit(TrackListReplaced(tuple(self._track_list.ids)))

    def _resync_track_list(self, error: MprisError) -> None:
        self.logger.warning(
            "Track list of %s out of sync (%s), reloading", self.player.bus_name, error
        )
        try:
            self._track_list.reload(self.player)
        except (RemoteRejected, DecodingFailure) as e:
            self.logger.warning("Could not reload track list of %s: %s", self.player.bus_name, e)

    def _on_track_list_properties(self, changed: Dict[str, Any], invalidated: list) -> None:
        if "CanEditTracks" in changed or "CanEditTracks" in invalidated:
            self.player.capability_registry.invalidate()

        if "Tracks" in changed and self._track_list is not None:
            ids = [TrackID.from_raw(path) for path in changed["Tracks"]]
            if ids != self._track_list.ids:
                self._track_list.replace(ids)
                self._emit(TrackListReplaced(tuple(ids)))
        elif "Tracks" in invalidated:
            self._reload_track_list()

    def _on_track_list_replaced(self, signal: Signal) -> None:
        ids = tuple(TrackID.from_raw(path) for path in signal.payload[0])
        if self._track_list is not None:
            self._track_list.replace(ids)
        self._emit(TrackListReplaced(ids))

    def _on_track_added(self, signal: Signal) -> None:
        metadata = Metadata.from_raw(signal.payload[0])
        after = TrackID.from_raw(signal.payload[1])
        if metadata.track_id.is_no_track:
            raise ValueError("TrackAdded without a track id")
        if self._track_list is not None:
            self._track_list.apply_added(metadata.track_id, after, metadata)
        self._emit(TrackAdded(metadata.track_id, after, metadata))

    def _on_track_removed(self, signal: Signal) -> None:
        track_id = TrackID.from_raw(signal.payload[0])
        if self._track_list is not None:
            try:
                self._track_list.apply_removed(track_id, current=self._progress.metadata.track_id)
            except TrackListInconsistency as e:
                self._resync_track_list(e)
        self._emit(TrackRemoved(track_id))

    def _on_track_metadata_changed(self, signal: Signal) -> None:
        old_id = TrackID.from_raw(signal.payload[0])
        metadata = Metadata.from_raw(signal.payload[1])
        new_id = old_id if metadata.track_id.is_no_track else metadata.track_id
        if self._track_list is not None:
            try:
                new_id = self._track_list.apply_metadata_changed(old_id, metadata)
            except TrackListInconsistency as e:
                self._resync_track_list(e)
        self._emit(
            TrackMetadataChanged(new_id, metadata, old_id if new_id != old_id else None)
        )

    def _on_name_owner_changed(self, signal: Signal) -> None:
        name, old_owner, new_owner = signal.payload[:3]
        if name != self.player.bus_name:
            return
        # The process that owned the name released it; a new owner is a different player
        if old_owner and old_owner != new_owner:
            self._shut_down()
