"""
Player discovery.

Lists the MPRIS players currently on the session bus.
"""

import logging
from typing import List, Optional

from .bus import MPRIS2_PREFIX, SessionBus
from .errors import MprisError, PlayerNotFound
from .models import PlaybackStatus
from .player import Player


class PlayerFinder:
    """Finds MPRIS players on a bus."""

    def __init__(self, bus: Optional[SessionBus] = None):
        """
        Initialize PlayerFinder.

        Args:
            bus: Bus to search (defaults to a new session bus connection)
        """
        self.bus = bus if bus is not None else SessionBus()
        self.logger = logging.getLogger(__name__)

    def player_bus_names(self) -> List[str]:
        """Bus names of every MPRIS player, sorted for a stable order."""
        return sorted(name for name in self.bus.list_names() if name.startswith(MPRIS2_PREFIX))

    def find_all(self) -> List[Player]:
        return [Player(self.bus.proxy(name)) for name in self.player_bus_names()]

    def find_active(self) -> Player:
        """
        Pick the most relevant player.

        Prefers a playing player, then a paused one, then the first one that
        answers. Players that fail to answer are only picked when none do.

        Raises:
            PlayerNotFound: if there are no players
        """
        players = self.find_all()
        if not players:
            raise PlayerNotFound("No MPRIS players on the bus", "find_active")

        by_status = {}
        for player in players:
            try:
                status = player.get_playback_status()
            except MprisError as e:
                self.logger.debug("Skipping %s while looking for the active player: %s", player, e)
                continue
            by_status.setdefault(status, player)

        for status in (PlaybackStatus.PLAYING, PlaybackStatus.PAUSED):
            if status in by_status:
                return by_status[status]
        responsive = list(by_status.values())
        return responsive[0] if responsive else players[0]

    def find_by_name(self, name: str) -> Player:
        """
        Find a player by identity or bus name suffix, ignoring case.

        Raises:
            PlayerNotFound: if no player matches
        """
        wanted = name.lower()
        for player in self.find_all():
            suffix = player.bus_name[len(MPRIS2_PREFIX):].lower()
            if suffix == wanted or suffix.split(".")[0] == wanted:
                return player
            try:
                identity = player.identity()
            except MprisError as e:
                self.logger.debug("Could not read identity of %s: %s", player, e)
                continue
            if identity.lower() == wanted:
                return player
        raise PlayerNotFound(f"No player named {name!r}", "find_by_name")
