"""
Command line entry point for mpris_client.

Lists players, shows what they are playing, sends simple commands and
follows their events.
"""

import argparse
import logging
import sys
import time
from datetime import timedelta
from typing import List, Optional

from .errors import MissingData, MprisError
from .finder import PlayerFinder
from .metadata import Metadata
from .player import Player

logger = logging.getLogger(__name__)


def format_duration(duration: Optional[timedelta]) -> str:
    if duration is None:
        return "--:--"
    total = int(duration.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def describe_track(metadata: Metadata) -> str:
    title = metadata.title or "(unknown title)"
    if metadata.artists:
        return f"{', '.join(metadata.artists)} - {title}"
    return title


def _select_player(finder: PlayerFinder, name: Optional[str]) -> Player:
    if name:
        return finder.find_by_name(name)
    return finder.find_active()


def cmd_list(finder: PlayerFinder, args: argparse.Namespace) -> int:
    players = finder.find_all()
    if not players:
        print("No players found")
        return 1
    for player in players:
        try:
            print(f"{player.bus_name}\t{player.identity()}\t{player.get_playback_status().value}")
        except MprisError as e:
            print(f"{player.bus_name}\t(not responding: {e})")
    return 0


def cmd_status(finder: PlayerFinder, args: argparse.Namespace) -> int:
    player = _select_player(finder, args.player)
    progress = player.track_progress().progress
    print(f"Player:   {player.identity()} ({player.bus_name})")
    print(f"Status:   {progress.status.value}")
    print(f"Track:    {describe_track(progress.metadata)}")
    if progress.metadata.album_name:
        print(f"Album:    {progress.metadata.album_name}")
    print(f"Position: {format_duration(progress.position)} / {format_duration(progress.length)}")
    if progress.volume is not None:
        print(f"Volume:   {progress.volume:.0%}")
    return 0


def _run_command(player: Player, command: str) -> int:
    actions = {
        "play-pause": player.checked_play_pause,
        "next": player.checked_next,
        "previous": player.checked_previous,
    }
    outcome = actions[command]()
    if not outcome:
        print(f"{player.bus_name} does not support {command} ({outcome.capability})")
        return 1
    return 0


def cmd_events(finder: PlayerFinder, args: argparse.Namespace) -> int:
    player = _select_player(finder, args.player)
    print(f"Following events of {player.bus_name}, Ctrl-C to stop")
    for event in player.events(timeout=args.timeout):
        print(event)
    return 0


def cmd_progress(finder: PlayerFinder, args: argparse.Namespace) -> int:
    player = _select_player(finder, args.player)
    tracker = player.track_progress()
    while True:
        try:
            tick = tracker.tick()
        except MissingData as e:
            logger.info("Stopped tracking %s: %s", player.bus_name, e)
            return 0
        if tick.track_changed:
            print(f"Now playing: {describe_track(tick.progress.metadata)}")
        print(
            f"{tick.progress.status.value:8} "
            f"{format_duration(tracker.position_now())} / {format_duration(tick.progress.length)}"
        )
        time.sleep(args.interval)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mpris-client", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-p", "--player", help="Player identity or bus name suffix")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List players on the session bus")
    subparsers.add_parser("status", help="Show what a player is playing")
    for command in ("play-pause", "next", "previous"):
        subparsers.add_parser(command, help=f"Send {command} to a player")

    events = subparsers.add_parser("events", help="Print a player's events")
    events.add_argument(
        "--timeout", type=float, default=1.0, help="Seconds between idle checks (default 1.0)"
    )

    progress = subparsers.add_parser("progress", help="Print playback progress")
    progress.add_argument(
        "--interval", type=float, default=1.0, help="Seconds between samples (default 1.0)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        finder = PlayerFinder()
        if args.command == "list":
            return cmd_list(finder, args)
        if args.command == "status":
            return cmd_status(finder, args)
        if args.command == "events":
            return cmd_events(finder, args)
        if args.command == "progress":
            return cmd_progress(finder, args)
        return _run_command(_select_player(finder, args.player), args.command)
    except MprisError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
