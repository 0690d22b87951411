"""
Shared fixtures for mpris_client tests.
"""

import pytest

from mpris_client.bus import PLAYER_INTERFACE, ROOT_INTERFACE
from mpris_client.player import Player

from fakes import FakeBus, FakeClock


@pytest.fixture
def make_bus():
    """Factory for FakeBus instances."""
    return FakeBus


@pytest.fixture
def bus():
    """A well-behaved player exposing every optional feature."""
    return FakeBus()


@pytest.fixture
def minimal_bus():
    """A player that only exposes the mandatory properties."""
    return FakeBus(
        bus_name="org.mpris.MediaPlayer2.minimal",
        properties={
            ROOT_INTERFACE: {"Identity": "Minimal", "HasTrackList": False},
            PLAYER_INTERFACE: {
                "PlaybackStatus": "Playing",
                "Metadata": {"xesam:title": "Stream"},
            },
        },
    )


@pytest.fixture
def player(bus):
    return Player(bus)


@pytest.fixture
def clock():
    return FakeClock()
