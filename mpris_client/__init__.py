"""
mpris_client: typed access to MPRIS2 media players over D-Bus.

Start with PlayerFinder to locate a player, then use Player for commands,
Player.track_progress() for an extrapolated playback position and
Player.events() for a stream of typed events.
"""

from .bus import BusProxy, GioBusProxy, SessionBus, Signal, SignalSubscription
from .capabilities import Capabilities, CapabilityRegistry
from .errors import (
    CapabilityAbsent,
    DecodingFailure,
    IdentifierMismatch,
    MissingData,
    MprisError,
    PlayerNotFound,
    PropertyMissing,
    RemoteRejected,
    TrackListInconsistency,
    TransportFailure,
)
from .events import (
    Event,
    EventTranslator,
    LoopStatusChanged,
    PlaybackRateChanged,
    PlaybackStatusChanged,
    PlayerShutDown,
    SeekTracked,
    ShuffleToggled,
    TrackAdded,
    TrackBoundaryHeuristic,
    TrackChanged,
    TrackListReplaced,
    TrackMetadataChanged,
    TrackRemoved,
    Unknown,
    VolumeChanged,
)
from .finder import PlayerFinder
from .metadata import Metadata
from .models import NO_TRACK, LoopStatus, MetadataValue, PlaybackStatus, TrackID, ValueKind
from .player import Player
from .progress import Progress, ProgressTick, ProgressTracker
from .track_list import TrackList

__version__ = "0.1.0"
