"""
Unit tests for the Player facade.
"""

from datetime import timedelta

import pytest

from mpris_client.bus import PLAYER_INTERFACE, ROOT_INTERFACE, TRACK_LIST_INTERFACE
from mpris_client.errors import (
    CapabilityAbsent,
    DecodingFailure,
    IdentifierMismatch,
    PropertyMissing,
    TrackListInconsistency,
    TransportFailure,
)
from mpris_client.models import NO_TRACK, LoopStatus, PlaybackStatus, TrackID
from mpris_client.player import Player
from mpris_client.track_list import TrackList

from fakes import TRACK_1, TRACK_2


@pytest.fixture
def minimal_player(minimal_bus):
    return Player(minimal_bus)


def test_property_reads(player):
    """Test typed property reads."""
    assert player.identity() == "Fake Player"
    assert player.desktop_entry() == "fake"
    assert player.supported_uri_schemes() == ["file", "http"]
    assert player.supported_mime_types() == ["audio/mpeg"]
    assert player.get_playback_status() is PlaybackStatus.PAUSED
    assert player.get_loop_status() is LoopStatus.NONE
    assert player.get_shuffle() is False
    assert player.get_volume() == 0.5
    assert player.get_position() == timedelta(seconds=10)
    assert player.get_position_in_microseconds() == 10_000_000
    assert player.get_playback_rate() == 1.0
    assert player.get_minimum_playback_rate() == 0.5
    assert player.get_maximum_playback_rate() == 2.0


def test_optional_root_properties(minimal_player):
    """Test that optional root properties read as None when absent."""
    assert minimal_player.desktop_entry() is None
    assert minimal_player.get_fullscreen() is None


def test_unchecked_read_of_missing_property_raises(minimal_player):
    """Test that unchecked reads surface what the player answers."""
    with pytest.raises(PropertyMissing):
        minimal_player.get_volume()


def test_checked_reads(player, minimal_player):
    """Test that checked reads skip unsupported properties."""
    assert player.checked_get_volume() == 0.5
    assert player.checked_get_position() == timedelta(seconds=10)
    assert player.checked_get_shuffle() is False

    assert minimal_player.checked_get_volume() is None
    assert minimal_player.checked_get_position() is None
    assert minimal_player.checked_get_playback_rate() is None
    assert minimal_player.checked_get_loop_status() is None
    assert minimal_player.checked_get_track_list() is None
    assert ("org.mpris.MediaPlayer2.Player", "Volume") not in minimal_player.bus.property_reads


def test_malformed_property_raises_decoding_failure(player, bus):
    """Test that a wrongly typed property is a decoding failure."""
    bus.properties[PLAYER_INTERFACE]["Volume"] = "loud"
    bus.properties[PLAYER_INTERFACE]["PlaybackStatus"] = "Rewinding"

    with pytest.raises(DecodingFailure) as exc_info:
        player.get_volume()
    assert exc_info.value.value == "loud"
    with pytest.raises(DecodingFailure):
        player.get_playback_status()


def test_negative_position_clamped(player, bus):
    """Test that negative positions read as zero."""
    bus.properties[PLAYER_INTERFACE]["Position"] = -5

    assert player.get_position() == timedelta(0)


def test_set_volume_clamps_negative(player, bus):
    """Test that negative volumes are sent as 0.0."""
    player.set_volume(-0.3)

    assert bus.set_calls[-1] == (PLAYER_INTERFACE, "Volume", 0.0, "d")


def test_property_writes(player, bus):
    """Test property writes and their D-Bus signatures."""
    player.set_loop_status(LoopStatus.TRACK)
    player.set_shuffle(True)
    player.set_playback_rate(1.5)
    player.set_fullscreen(True)

    assert bus.set_calls == [
        (PLAYER_INTERFACE, "LoopStatus", "Track", "s"),
        (PLAYER_INTERFACE, "Shuffle", True, "b"),
        (PLAYER_INTERFACE, "Rate", 1.5, "d"),
        (ROOT_INTERFACE, "Fullscreen", True, "b"),
    ]


def test_checked_writes_skip_unsupported(minimal_player, minimal_bus):
    """Test that checked writes report the missing capability without calling."""
    outcome = minimal_player.checked_set_volume(0.8)

    assert not outcome
    assert outcome == CapabilityAbsent("can_control")
    assert not minimal_player.checked_set_shuffle(True)
    assert not minimal_player.checked_set_loop_status(LoopStatus.PLAYLIST)
    assert not minimal_player.checked_set_playback_rate(2.0)
    assert not minimal_player.checked_set_fullscreen(True)
    assert minimal_bus.set_calls == []


def test_checked_write_requires_every_capability(player, bus):
    """Test that the first missing capability is reported."""
    del bus.properties[PLAYER_INTERFACE]["LoopStatus"]

    outcome = player.checked_set_loop_status(LoopStatus.TRACK)

    assert outcome == CapabilityAbsent("can_loop")
    assert bus.set_calls == []


def test_checked_write_succeeds(player, bus):
    """Test that a supported checked write is performed."""
    assert player.checked_set_volume(0.25) is True
    assert bus.set_calls == [(PLAYER_INTERFACE, "Volume", 0.25, "d")]


def test_commands(player, bus):
    """Test that commands map onto the player interface methods."""
    player.play()
    player.pause()
    player.play_pause()
    player.stop()
    player.next()
    player.previous()
    player.open_uri("file:///song.mp3")

    assert bus.calls == [
        (PLAYER_INTERFACE, "Play", ()),
        (PLAYER_INTERFACE, "Pause", ()),
        (PLAYER_INTERFACE, "PlayPause", ()),
        (PLAYER_INTERFACE, "Stop", ()),
        (PLAYER_INTERFACE, "Next", ()),
        (PLAYER_INTERFACE, "Previous", ()),
        (PLAYER_INTERFACE, "OpenUri", ("file:///song.mp3",)),
    ]


def test_checked_commands(player, bus):
    """Test checked commands on a fully capable player."""
    assert player.checked_play() is True
    assert player.checked_pause() is True
    assert player.checked_stop() is True
    assert player.checked_next() is True
    assert player.checked_previous() is True
    assert len(bus.calls) == 5


def test_checked_commands_unsupported(bus):
    """Test checked commands when the player cannot go next."""
    bus.properties[PLAYER_INTERFACE]["CanGoNext"] = False
    player = Player(bus)

    outcome = player.checked_next()

    assert outcome == CapabilityAbsent("can_go_next")
    assert bus.method_calls("Next") == []


def test_unchecked_command_ignores_capabilities(bus):
    """Test that unchecked commands always reach the player."""
    bus.properties[PLAYER_INTERFACE]["CanGoNext"] = False
    player = Player(bus)

    player.next()

    assert len(bus.method_calls("Next")) == 1


def test_seek(player, bus):
    """Test relative seeks in microseconds."""
    player.seek(timedelta(seconds=5))
    player.seek_forwards(timedelta(seconds=-2))
    player.seek_backwards(timedelta(seconds=3))

    assert [call[2] for call in bus.method_calls("Seek")] == [
        (5_000_000,),
        (2_000_000,),
        (-3_000_000,),
    ]


def test_set_position(player, bus):
    """Test SetPosition for the current track."""
    player.set_position(TrackID(TRACK_1), timedelta(seconds=42))

    assert bus.method_calls("SetPosition") == [
        (PLAYER_INTERFACE, "SetPosition", (TRACK_1, 42_000_000))
    ]


def test_set_position_wrong_track(player, bus):
    """Test that a stale track ID is rejected locally."""
    with pytest.raises(IdentifierMismatch) as exc_info:
        player.set_position(TrackID(TRACK_2), timedelta(seconds=42))

    assert exc_info.value.expected == TrackID(TRACK_1)
    assert exc_info.value.given == TrackID(TRACK_2)
    assert bus.method_calls("SetPosition") == []


def test_set_position_no_track(player, bus):
    """Test that the NoTrack sentinel is never a valid position target."""
    bus.properties[PLAYER_INTERFACE]["Metadata"] = {"xesam:title": "No ID"}

    with pytest.raises(IdentifierMismatch):
        player.set_position(NO_TRACK, timedelta(seconds=1))
    assert bus.method_calls("SetPosition") == []


def test_set_position_uses_last_known_metadata(player, bus):
    """Test that observed metadata is used instead of another round trip."""
    player.get_metadata()
    bus.property_reads.clear()

    player.set_position(TrackID(TRACK_1), timedelta(seconds=1))

    assert (PLAYER_INTERFACE, "Metadata") not in bus.property_reads


def test_checked_set_position_without_seek(bus):
    """Test that checked_set_position needs CanSeek."""
    bus.properties[PLAYER_INTERFACE]["CanSeek"] = False
    player = Player(bus)

    assert player.checked_set_position(TrackID(TRACK_1), timedelta(0)) == CapabilityAbsent(
        "can_seek"
    )
    assert bus.method_calls("SetPosition") == []


def test_get_metadata_records_last_known(player):
    """Test that get_metadata updates last_metadata."""
    assert player.last_metadata is None

    metadata = player.get_metadata()

    assert metadata.title == "First"
    assert player.last_metadata is metadata


def test_root_methods(player, bus):
    """Test Raise and Quit with their capability checks."""
    assert player.checked_raise_window() == CapabilityAbsent("can_raise")
    assert player.checked_quit() is True
    assert bus.calls == [(ROOT_INTERFACE, "Quit", ())]


def test_is_running(player, bus):
    """Test the bus name ownership check."""
    assert player.is_running()

    bus.running = False
    assert not player.is_running()

    bus.disconnected = True
    assert not player.is_running()


def test_capability_accessors(player, minimal_player):
    """Test the per-capability convenience accessors."""
    assert player.can_control()
    assert player.can_stop()
    assert player.supports_track_lists()
    assert player.can_edit_tracks()
    assert not player.can_raise()

    assert not minimal_player.can_control()
    assert not minimal_player.supports_volume()
    assert not minimal_player.supports_track_lists()


def test_get_track_list(player):
    """Test reading the track list."""
    track_list = player.get_track_list()

    assert isinstance(track_list, TrackList)
    assert [str(track_id) for track_id in track_list] == [TRACK_1, TRACK_2, "/org/fake/track/3"]
    assert track_list.metadata_for(TrackID(TRACK_2)).title == "Second"


def test_get_tracks_metadata(player, bus):
    """Test batched metadata lookup."""
    metadata = player.get_tracks_metadata([TrackID(TRACK_2), TrackID(TRACK_1)])

    assert [entry.title for entry in metadata] == ["Second", "First"]
    assert bus.method_calls("GetTracksMetadata") == [
        (TRACK_LIST_INTERFACE, "GetTracksMetadata", ([TRACK_2, TRACK_1],))
    ]


def test_get_tracks_metadata_count_mismatch(player):
    """Test that a short answer is a decoding failure."""
    with pytest.raises(DecodingFailure):
        player.get_tracks_metadata([TrackID(TRACK_1), TrackID("/org/fake/track/unknown")])


def test_get_track_metadata_unknown(player):
    """Test single-track lookup for a track the player does not know."""
    assert player.get_track_metadata(TrackID(TRACK_2)).title == "Second"
    with pytest.raises(TrackListInconsistency):
        player.get_track_metadata(TrackID("/org/fake/track/unknown"))


def test_go_to(player, bus):
    """Test GoTo with and without a local track list check."""
    track_list = player.get_track_list()
    player.go_to(TrackID(TRACK_2), track_list)

    with pytest.raises(TrackListInconsistency):
        player.go_to(TrackID("/org/fake/track/unknown"), track_list)

    assert bus.method_calls("GoTo") == [(TRACK_LIST_INTERFACE, "GoTo", (TRACK_2,))]


def test_checked_go_to_without_track_list(minimal_player, minimal_bus):
    """Test that checked_go_to needs track list support."""
    outcome = minimal_player.checked_go_to(TrackID(TRACK_1))

    assert outcome == CapabilityAbsent("supports_track_lists")
    assert minimal_bus.calls == []


def test_add_and_remove_track(player, bus):
    """Test track list editing."""
    player.add_track("file:///new.mp3", TrackID(TRACK_1), set_as_current=True)
    player.add_track_at_start("file:///first.mp3")
    player.remove_track(TrackID(TRACK_2))

    assert bus.method_calls("AddTrack") == [
        (TRACK_LIST_INTERFACE, "AddTrack", ("file:///new.mp3", TRACK_1, True)),
        (TRACK_LIST_INTERFACE, "AddTrack", ("file:///first.mp3", NO_TRACK.path, False)),
    ]
    assert bus.method_calls("RemoveTrack") == [
        (TRACK_LIST_INTERFACE, "RemoveTrack", (TRACK_2,))
    ]


def test_checked_track_editing(bus):
    """Test that editing needs CanEditTracks."""
    bus.properties[TRACK_LIST_INTERFACE]["CanEditTracks"] = False
    player = Player(bus)

    assert player.checked_add_track("file:///x.mp3", NO_TRACK) == CapabilityAbsent(
        "can_edit_tracks"
    )
    assert player.checked_remove_track(TrackID(TRACK_1)) == CapabilityAbsent("can_edit_tracks")
    assert bus.calls == []


def test_transport_failure_surfaces(player, bus):
    """Test that unchecked calls surface transport failures."""
    bus.disconnected = True

    with pytest.raises(TransportFailure):
        player.play()
