"""
Capability registry.

Caches which optional operations and properties a player supports. Probing
never fails because a player left something out; only transport failures
propagate.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .bus import PLAYER_INTERFACE, ROOT_INTERFACE, TRACK_LIST_INTERFACE, BusProxy
from .errors import RemoteRejected


@dataclass(frozen=True)
class Capabilities:
    """Snapshot of what a player supports. Everything defaults to unsupported."""

    can_control: bool = False
    can_play: bool = False
    can_pause: bool = False
    can_seek: bool = False
    can_go_next: bool = False
    can_go_previous: bool = False
    can_shuffle: bool = False
    can_loop: bool = False
    can_raise: bool = False
    can_quit: bool = False
    can_set_fullscreen: bool = False
    can_set_playback_rate: bool = False
    supports_position: bool = False
    supports_volume: bool = False
    supports_playback_rate: bool = False
    supports_track_lists: bool = False
    can_edit_tracks: bool = False
    minimum_rate: float = 1.0
    maximum_rate: float = 1.0

    @property
    def can_stop(self) -> bool:
        return self.can_control


def _flag(properties: Dict[str, Any], name: str) -> bool:
    value = properties.get(name)
    return value if isinstance(value, bool) else False


def _rate(properties: Dict[str, Any], name: str) -> float:
    value = properties.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 1.0
    return float(value)


class CapabilityRegistry:
    """Lazily probes and caches a player's Capabilities."""

    def __init__(self, bus: BusProxy):
        """
        Initialize CapabilityRegistry.

        Args:
            bus: Proxy for the player to probe
        """
        self.bus = bus
        self.logger = logging.getLogger(__name__)
        self._cached: Optional[Capabilities] = None

    def get_cached(self) -> Capabilities:
        """Return the cached capabilities, probing the player on first use."""
        if self._cached is None:
            return self.refresh()
        return self._cached

    def invalidate(self) -> None:
        """Forget the cache; the next get_cached() probes again."""
        self._cached = None

    def refresh(self) -> Capabilities:
        """
        Probe the player and replace the cache.

        Returns:
            Fresh Capabilities

        Raises:
            TransportFailure: if the player cannot be reached at all
        """
        root = self._get_all(ROOT_INTERFACE)
        player = self._get_all(PLAYER_INTERFACE)

        supports_track_lists = _flag(root, "HasTrackList") and self._has_track_list_interface()
        track_list = self._get_all(TRACK_LIST_INTERFACE) if supports_track_lists else {}

        minimum_rate = _rate(player, "MinimumRate")
        maximum_rate = _rate(player, "MaximumRate")

        capabilities = Capabilities(
            can_control=_flag(player, "CanControl"),
            can_play=_flag(player, "CanPlay"),
            can_pause=_flag(player, "CanPause"),
            can_seek=_flag(player, "CanSeek"),
            can_go_next=_flag(player, "CanGoNext"),
            can_go_previous=_flag(player, "CanGoPrevious"),
            can_shuffle="Shuffle" in player,
            can_loop="LoopStatus" in player,
            can_raise=_flag(root, "CanRaise"),
            can_quit=_flag(root, "CanQuit"),
            can_set_fullscreen=_flag(root, "CanSetFullscreen"),
            can_set_playback_rate=minimum_rate < 1.0 or maximum_rate > 1.0,
            supports_position="Position" in player,
            supports_volume="Volume" in player,
            supports_playback_rate="Rate" in player,
            supports_track_lists=supports_track_lists,
            can_edit_tracks=_flag(track_list, "CanEditTracks"),
            minimum_rate=minimum_rate,
            maximum_rate=maximum_rate,
        )
        self.logger.debug("Capabilities of %s: %s", self.bus.bus_name, capabilities)
        self._cached = capabilities
        return capabilities

    def _get_all(self, interface: str) -> Dict[str, Any]:
        try:
            properties = self.bus.get_all_properties(interface)
        except RemoteRejected as e:
            self.logger.debug("%s does not expose %s: %s", self.bus.bus_name, interface, e)
            return {}
        return properties if isinstance(properties, dict) else {}

    def _has_track_list_interface(self) -> bool:
        # Substring search is enough, the XML is only checked for one interface name
        try:
            xml = self.bus.introspect()
        except RemoteRejected as e:
            self.logger.debug("Introspection of %s failed: %s", self.bus.bus_name, e)
            return True
        return isinstance(xml, str) and TRACK_LIST_INTERFACE in xml
