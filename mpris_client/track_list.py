"""
Track list model.

Keeps a player's ordered list of track IDs in sync with its signals, with a
lazily filled metadata cache. The same ID may appear more than once.
"""

import logging
from typing import TYPE_CHECKING, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from .errors import DecodingFailure, RemoteRejected, TrackListInconsistency
from .metadata import Metadata
from .models import TrackID

if TYPE_CHECKING:
    from .player import Player

# Fetches metadata for several IDs at once, in the same order
MetadataFetcher = Callable[[Sequence[TrackID]], List[Metadata]]


class TrackList:
    """Ordered, possibly duplicated sequence of TrackIDs with cached metadata."""

    def __init__(
        self,
        ids: Iterable[TrackID] = (),
        fetch_metadata: Optional[MetadataFetcher] = None,
    ):
        """
        Initialize TrackList.

        Args:
            ids: Track IDs in the player's order
            fetch_metadata: Remote metadata lookup; None disables fetching on a cache miss
        """
        self._ids: List[TrackID] = [TrackID.from_raw(track_id) for track_id in ids]
        self._cache: Dict[TrackID, Metadata] = {}
        self.fetch_metadata = fetch_metadata
        self.logger = logging.getLogger(__name__)

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[TrackID]:
        return iter(self._ids)

    def __getitem__(self, index: int) -> TrackID:
        return self._ids[index]

    def __contains__(self, track_id: object) -> bool:
        return track_id in self._ids

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrackList):
            return NotImplemented
        return self._ids == other._ids

    def __repr__(self) -> str:
        return f"TrackList({[str(track_id) for track_id in self._ids]!r})"

    @property
    def ids(self) -> List[TrackID]:
        return list(self._ids)

    def copy(self) -> "TrackList":
        """Independent copy sharing nothing mutable with this list."""
        clone = TrackList(self._ids, self.fetch_metadata)
        clone._cache = dict(self._cache)
        return clone

    def replace(self, ids: Iterable[TrackID]) -> None:
        """Replace the whole list, dropping cached metadata for IDs that left it."""
        self._ids = [TrackID.from_raw(track_id) for track_id in ids]
        remaining = set(self._ids)
        self._cache = {
            track_id: metadata for track_id, metadata in self._cache.items() if track_id in remaining
        }

    def apply_added(
        self,
        track_id: TrackID,
        after: Optional[TrackID] = None,
        metadata: Optional[Metadata] = None,
    ) -> None:
        """
        Insert a track after an anchor.

        The track goes to the front when there is no anchor, the anchor is the
        NoTrack sentinel, or the anchor is not in the list.
        """
        index = 0
        if after is not None and not after.is_no_track:
            if after in self._ids:
                index = self._ids.index(after) + 1
            else:
                self.logger.warning("Anchor %s for added track %s not found", after, track_id)
        self._ids.insert(index, track_id)
        if metadata is not None:
            self._cache[track_id] = metadata

    def apply_removed(self, track_id: TrackID, current: Optional[TrackID] = None) -> None:
        """
        Remove exactly one occurrence of a track.

        When the ID is listed several times, the occurrence nearest to the
        current track is removed; without a current track, the first one.

        Raises:
            TrackListInconsistency: if the ID is not in the list
        """
        positions = [i for i, listed in enumerate(self._ids) if listed == track_id]
        if not positions:
            raise TrackListInconsistency(track_id, "TrackRemoved")

        target = positions[0]
        if len(positions) > 1 and current is not None and current in self._ids:
            anchor = self._ids.index(current)
            target = min(positions, key=lambda i: abs(i - anchor))

        del self._ids[target]
        if track_id not in self._ids:
            self._cache.pop(track_id, None)

    def apply_metadata_changed(self, old_id: TrackID, metadata: Metadata) -> TrackID:
        """
        Store new metadata for a track, renaming it if the metadata carries a new ID.

        Returns:
            The track's ID after the change

        Raises:
            TrackListInconsistency: if old_id is not in the list
        """
        if old_id not in self._ids:
            raise TrackListInconsistency(old_id, "TrackMetadataChanged")

        new_id = old_id if metadata.track_id.is_no_track else metadata.track_id
        if new_id != old_id:
            self._ids = [new_id if listed == old_id else listed for listed in self._ids]
            self._cache.pop(old_id, None)
        self._cache[new_id] = metadata
        return new_id

    def cached_metadata(self, track_id: TrackID) -> Optional[Metadata]:
        """Cached metadata only, never asks the player."""
        return self._cache.get(track_id)

    def metadata_for(self, track_id: TrackID) -> Optional[Metadata]:
        """
        Metadata for a track, fetched from the player on a cache miss.

        Returns:
            Metadata, or None if it is not cached and cannot be fetched
        """
        cached = self._cache.get(track_id)
        if cached is not None or self.fetch_metadata is None:
            return cached

        try:
            fetched = self.fetch_metadata([track_id])
        except (RemoteRejected, DecodingFailure) as e:
            self.logger.debug("Player has no metadata for %s: %s", track_id, e)
            return None
        if not fetched:
            return None
        self._cache[track_id] = fetched[0]
        return fetched[0]

    def complete_cache(self) -> None:
        """Fetch metadata for every listed track that is not cached yet."""
        if self.fetch_metadata is None:
            return
        missing = []
        for track_id in self._ids:
            if track_id not in self._cache and track_id not in missing:
                missing.append(track_id)
        if missing:
            for track_id, metadata in zip(missing, self.fetch_metadata(missing)):
                self._cache[track_id] = metadata

    def reload_cache(self) -> None:
        """Discard the cache and fetch metadata for every listed track."""
        self._cache = {}
        self.complete_cache()

    def metadata_iter(self) -> Iterator[Metadata]:
        """
        Metadata for every entry, in list order.

        Entries the player gave no metadata for yield a bare Metadata that only
        carries the ID.
        """
        self.complete_cache()
        for track_id in self._ids:
            yield self._cache.get(track_id) or Metadata(track_id=track_id)

    def reload(self, player: "Player") -> None:
        """Replace the list with the player's current one."""
        self.replace(player.get_track_ids())
