import os
from datetime import timedelta


class Config:
    # D-Bus call timeout, overridable for slow players
    DEFAULT_TIMEOUT_MS = int(os.environ.get("MPRIS_CLIENT_TIMEOUT_MS", "500"))
    NAME_OWNER_TIMEOUT_MS = 100
    LIST_NAMES_TIMEOUT_MS = 500

    # Extrapolated and sampled positions closer than this are the same position
    POSITION_TOLERANCE = timedelta(milliseconds=750)

    # Track boundary heuristic for players that never signal a track change
    TRACK_END_TOLERANCE = timedelta(seconds=1)
    POSITION_RESET_THRESHOLD = timedelta(seconds=2)

    FLOAT_EPSILON = 1e-6
