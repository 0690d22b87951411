"""
Unit tests for PlayerFinder.
"""

from unittest.mock import Mock

import pytest

from mpris_client.bus import PLAYER_INTERFACE, ROOT_INTERFACE, SessionBus
from mpris_client.errors import PlayerNotFound
from mpris_client.finder import PlayerFinder

from fakes import FakeBus


def make_session(*players):
    """Mock SessionBus that knows the given FakeBus players plus some unrelated names."""
    by_name = {player.bus_name: player for player in players}
    session = Mock(spec=SessionBus)
    session.list_names.return_value = [
        "org.freedesktop.DBus",
        ":1.12",
        *reversed(list(by_name)),
        "org.gnome.Shell",
    ]
    session.proxy.side_effect = lambda name: by_name[name]
    return session


def fake_player(name, identity, status):
    bus = FakeBus(bus_name=f"org.mpris.MediaPlayer2.{name}")
    bus.properties[ROOT_INTERFACE]["Identity"] = identity
    bus.properties[PLAYER_INTERFACE]["PlaybackStatus"] = status
    return bus


@pytest.fixture
def session():
    return make_session(
        fake_player("audacious", "Audacious", "Stopped"),
        fake_player("spotify", "Spotify", "Paused"),
        fake_player("vlc.instance4242", "VLC media player", "Playing"),
    )


def test_player_bus_names(session):
    """Test that only MPRIS names are listed, sorted."""
    finder = PlayerFinder(session)

    assert finder.player_bus_names() == [
        "org.mpris.MediaPlayer2.audacious",
        "org.mpris.MediaPlayer2.spotify",
        "org.mpris.MediaPlayer2.vlc.instance4242",
    ]


def test_find_all(session):
    """Test that every player gets its own proxy."""
    players = PlayerFinder(session).find_all()

    assert [player.identity() for player in players] == ["Audacious", "Spotify", "VLC media player"]
    assert session.proxy.call_count == 3


def test_find_active_prefers_playing(session):
    """Test that a playing player wins."""
    assert PlayerFinder(session).find_active().identity() == "VLC media player"


def test_find_active_falls_back_to_paused():
    """Test that a paused player beats a stopped one."""
    session = make_session(
        fake_player("audacious", "Audacious", "Stopped"),
        fake_player("spotify", "Spotify", "Paused"),
    )

    assert PlayerFinder(session).find_active().identity() == "Spotify"


def test_find_active_skips_unresponsive_players():
    """Test that a player that cannot be reached is skipped."""
    broken = fake_player("broken", "Broken", "Playing")
    broken.disconnected = True
    session = make_session(broken, fake_player("mpv", "mpv", "Stopped"))

    assert PlayerFinder(session).find_active().bus_name == "org.mpris.MediaPlayer2.mpv"


def test_find_active_first_when_all_stopped():
    """Test the fallback to the first player."""
    session = make_session(
        fake_player("b", "B", "Stopped"),
        fake_player("a", "A", "Stopped"),
    )

    assert PlayerFinder(session).find_active().bus_name == "org.mpris.MediaPlayer2.a"


def test_find_active_no_players():
    """Test that an empty bus raises PlayerNotFound."""
    with pytest.raises(PlayerNotFound):
        PlayerFinder(make_session()).find_active()


def test_find_by_name(session):
    """Test lookup by bus name suffix, its first segment and identity."""
    finder = PlayerFinder(session)

    assert finder.find_by_name("spotify").identity() == "Spotify"
    assert finder.find_by_name("VLC").bus_name == "org.mpris.MediaPlayer2.vlc.instance4242"
    assert finder.find_by_name("vlc.instance4242").identity() == "VLC media player"
    assert finder.find_by_name("vlc media player").identity() == "VLC media player"


def test_find_by_name_not_found(session):
    """Test that an unknown name raises PlayerNotFound."""
    with pytest.raises(PlayerNotFound) as exc_info:
        PlayerFinder(session).find_by_name("rhythmbox")
    assert exc_info.value.operation == "find_by_name"
