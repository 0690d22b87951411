"""
Error taxonomy for mpris_client.

Every failure raised by this package derives from MprisError and records the
operation it came from, so callers can tell "the remote does not support this"
apart from "the remote is gone" and "this one call failed".
"""

from dataclasses import dataclass
from typing import Any, Optional


class MprisError(Exception):
    """Base class for all errors raised by mpris_client."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message


class TransportFailure(MprisError):
    """Raised on timeouts, disconnects and malformed replies from the bus."""

    pass


class RemoteRejected(MprisError):
    """Raised when the remote player answered a call with an error."""

    def __init__(
        self, message: str, operation: Optional[str] = None, error_name: Optional[str] = None
    ):
        super().__init__(message, operation)
        self.error_name = error_name


class PropertyMissing(RemoteRejected):
    """Raised when the remote does not expose a property or interface at all."""

    pass


class DecodingFailure(MprisError):
    """Raised when a mandatory value cannot be interpreted as its expected type."""

    def __init__(self, message: str, operation: Optional[str] = None, value: Any = None):
        super().__init__(message, operation)
        self.value = value


class IdentifierMismatch(MprisError):
    """Raised when a position is set against a track that is no longer current."""

    def __init__(self, expected, given):
        super().__init__(
            f"Track {given} is not the current track (current: {expected})", "SetPosition"
        )
        self.expected = expected
        self.given = given


class TrackListInconsistency(MprisError):
    """Raised when an operation references a track ID missing from the track list."""

    def __init__(self, track_id, operation: Optional[str] = None):
        super().__init__(f"Track {track_id} is not in the track list", operation)
        self.track_id = track_id


class MissingData(MprisError):
    """Raised when a sample cannot be taken because a mandatory read failed."""

    pass


class PlayerNotFound(MprisError):
    """Raised when no player on the bus matches a lookup."""

    pass


@dataclass(frozen=True)
class CapabilityAbsent:
    """
    Outcome of a checked call that was skipped.

    Not an exception: checked operations return this instead of calling the
    remote when the capability is missing. It is falsy so it can be tested
    like the boolean returned when the call was made.
    """

    capability: str

    def __bool__(self) -> bool:
        return False
