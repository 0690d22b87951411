"""
Progress tracking for mpris_client.

Samples a player's playback state and extrapolates the position between
samples, so callers can render a moving progress bar without polling the
player on every frame.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Callable, List, Optional

from .config import Config
from .errors import MissingData, MprisError, TransportFailure
from .metadata import Metadata
from .models import LoopStatus, PlaybackStatus, TrackID
from .track_list import TrackList

if TYPE_CHECKING:
    from .player import Player

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _optional(read: Callable[[], Any], default: Any, name: str) -> Any:
    """Read an optional field, degrading to default on any bus error."""
    try:
        return read()
    except MprisError as e:
        logger.debug("Optional read of %s failed, using %r: %s", name, default, e)
        return default


def floats_differ(old: Optional[float], new: Optional[float]) -> bool:
    if old is None or new is None:
        return old is not new
    return abs(old - new) >= Config.FLOAT_EPSILON


def _track_ids(track_list: Optional[TrackList]) -> Optional[List[TrackID]]:
    return track_list.ids if track_list is not None else None


@dataclass(frozen=True)
class Progress:
    """
    Point-in-time sample of a player's playback state.

    ``sampled_at`` is a reading of the monotonic clock the sample was taken
    with; ``position`` is the position the player reported at that moment.
    """

    metadata: Metadata
    status: PlaybackStatus
    position: timedelta
    rate: float
    sampled_at: float
    volume: Optional[float] = None
    shuffle: Optional[bool] = None
    loop_status: Optional[LoopStatus] = None
    track_list: Optional[TrackList] = field(default=None, hash=False)

    @classmethod
    def from_player(
        cls,
        player: "Player",
        now: float,
        previous_track_list: Optional[TrackList] = None,
    ) -> "Progress":
        """
        Take one sample.

        Only the playback status is mandatory. Every other field falls back
        to a default (rate 1.0, position zero, no volume) when the player
        does not support it or the read fails.

        Args:
            player: Player to sample
            now: Clock reading to stamp the sample with
            previous_track_list: Earlier track list whose metadata cache is carried over

        Raises:
            MissingData: if the playback status cannot be read from the bus
        """
        try:
            status = player.get_playback_status()
        except TransportFailure as e:
            raise MissingData(f"Could not read playback status: {e}", "PlaybackStatus") from e
        except MprisError as e:
            logger.warning("Unusable playback status from %s, assuming Stopped: %s", player, e)
            status = PlaybackStatus.STOPPED

        capabilities = player.capabilities()
        metadata = _optional(player.get_metadata, Metadata(), "Metadata")

        position = timedelta(0)
        if capabilities.supports_position:
            position = _optional(player.get_position, timedelta(0), "Position")

        rate = 1.0
        if capabilities.supports_playback_rate:
            rate = _optional(player.get_playback_rate, 1.0, "Rate")

        volume = None
        if capabilities.supports_volume:
            volume = _optional(player.get_volume, None, "Volume")

        shuffle = None
        if capabilities.can_shuffle:
            shuffle = _optional(player.get_shuffle, None, "Shuffle")

        loop_status = None
        if capabilities.can_loop:
            loop_status = _optional(player.get_loop_status, None, "LoopStatus")

        track_list = None
        if capabilities.supports_track_lists:
            ids = _optional(player.get_track_ids, None, "Tracks")
            if ids is not None:
                if previous_track_list is not None:
                    track_list = previous_track_list.copy()
                else:
                    track_list = TrackList(fetch_metadata=player.get_tracks_metadata)
                track_list.replace(ids)

        return cls(
            metadata=metadata,
            status=status,
            position=position,
            rate=rate,
            sampled_at=now,
            volume=volume,
            shuffle=shuffle,
            loop_status=loop_status,
            track_list=track_list,
        )

    @property
    def length(self) -> Optional[timedelta]:
        return self.metadata.length

    def age(self, now: Optional[float] = None) -> float:
        """Seconds since the sample was taken."""
        if now is None:
            now = time.monotonic()
        return max(0.0, now - self.sampled_at)

    def position_now(self, now: Optional[float] = None) -> timedelta:
        """
        Extrapolated position at a clock reading.

        While playing, the sampled position advances by the elapsed time
        scaled by the playback rate, clamped to [0, length] when the length
        is known. Paused and stopped samples do not move.
        """
        if self.status is not PlaybackStatus.PLAYING:
            return self.position

        position = self.position + timedelta(seconds=self.age(now) * self.rate)
        if position < timedelta(0):
            return timedelta(0)
        if self.length is not None and position > self.length:
            return self.length
        return position

    def anchored(self, now: float, **changes: Any) -> "Progress":
        """Copy re-anchored at now, so extrapolation continues from the current position."""
        changes.setdefault("position", self.position_now(now))
        return replace(self, sampled_at=now, **changes)


@dataclass(frozen=True)
class ProgressTick:
    """What changed between two samples, plus the newer sample."""

    progress: Progress
    position_changed: bool = False
    status_changed: bool = False
    track_changed: bool = False
    metadata_changed: bool = False
    volume_changed: bool = False
    rate_changed: bool = False
    shuffle_changed: bool = False
    loop_status_changed: bool = False
    track_list_changed: bool = False

    @property
    def changed(self) -> bool:
        return any(
            (
                self.position_changed,
                self.status_changed,
                self.track_changed,
                self.metadata_changed,
                self.volume_changed,
                self.rate_changed,
                self.shuffle_changed,
                self.loop_status_changed,
                self.track_list_changed,
            )
        )


class ProgressTracker:
    """
    Samples a player on demand and reports what changed.

    The tracker owns no timer; the caller decides how often to tick().
    """

    def __init__(
        self,
        player: "Player",
        clock: Clock = time.monotonic,
        position_tolerance: timedelta = Config.POSITION_TOLERANCE,
    ):
        """
        Initialize ProgressTracker and take the first sample.

        Args:
            player: Player to track
            clock: Monotonic clock in seconds
            position_tolerance: Largest drift from the extrapolated position
                that still counts as "position unchanged"
        """
        self.player = player
        self.clock = clock
        self.position_tolerance = position_tolerance
        self.logger = logging.getLogger(__name__)
        self._progress = Progress.from_player(player, clock())

    @property
    def progress(self) -> Progress:
        return self._progress

    @property
    def track_list(self) -> Optional[TrackList]:
        return self._progress.track_list

    def position_now(self) -> timedelta:
        return self._progress.position_now(self.clock())

    def tick(self) -> ProgressTick:
        """
        Re-sample the player and compare against the previous sample.

        The position only counts as changed when the player's value is further
        from the extrapolated one than the tolerance; status, track, volume,
        rate, shuffle, loop status and track list changes are reported as-is.

        Raises:
            MissingData: if the playback status cannot be read
        """
        old = self._progress
        new = Progress.from_player(self.player, self.clock(), old.track_list)
        drift = abs(new.position - old.position_now(new.sampled_at))

        tick = ProgressTick(
            progress=new,
            position_changed=drift > self.position_tolerance,
            status_changed=new.status is not old.status,
            track_changed=not old.metadata.is_same_track(new.metadata),
            metadata_changed=new.metadata != old.metadata,
            volume_changed=floats_differ(old.volume, new.volume),
            rate_changed=floats_differ(old.rate, new.rate),
            shuffle_changed=new.shuffle != old.shuffle,
            loop_status_changed=new.loop_status != old.loop_status,
            track_list_changed=_track_ids(new.track_list) != _track_ids(old.track_list),
        )
        if tick.changed:
            self.logger.debug("Tick for %s: %s", self.player.bus_name, tick)
        self._progress = new
        return tick

    def force_refresh(self) -> Progress:
        """Re-probe capabilities and replace the sample without diffing."""
        self.player.refresh_capabilities()
        self._progress = Progress.from_player(self.player, self.clock(), self.track_list)
        return self._progress
