"""
Bus boundary for mpris_client.

BusProxy is the only thing the rest of the package knows about the message
bus. GioBusProxy implements it on top of GDBus through PyGObject; tests use an
in-memory implementation instead.
"""

import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import Config
from .errors import PropertyMissing, RemoteRejected, TransportFailure

MPRIS2_PREFIX = "org.mpris.MediaPlayer2."
MPRIS2_PATH = "/org/mpris/MediaPlayer2"
ROOT_INTERFACE = "org.mpris.MediaPlayer2"
PLAYER_INTERFACE = "org.mpris.MediaPlayer2.Player"
TRACK_LIST_INTERFACE = "org.mpris.MediaPlayer2.TrackList"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"
INTROSPECTABLE_INTERFACE = "org.freedesktop.DBus.Introspectable"

DBUS_NAME = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
DBUS_INTERFACE = "org.freedesktop.DBus"

# Remote error names meaning "this property/interface/method is not there"
MISSING_ERROR_NAMES = frozenset(
    {
        "org.freedesktop.DBus.Error.InvalidArgs",
        "org.freedesktop.DBus.Error.UnknownProperty",
        "org.freedesktop.DBus.Error.UnknownInterface",
        "org.freedesktop.DBus.Error.UnknownMethod",
        "org.freedesktop.DBus.Error.NotSupported",
    }
)

# Remote error names meaning the player or the bus is unreachable
TRANSPORT_ERROR_NAMES = frozenset(
    {
        "org.freedesktop.DBus.Error.NoReply",
        "org.freedesktop.DBus.Error.ServiceUnknown",
        "org.freedesktop.DBus.Error.NameHasNoOwner",
        "org.freedesktop.DBus.Error.Disconnected",
        "org.freedesktop.DBus.Error.Timeout",
        "org.freedesktop.DBus.Error.TimedOut",
        "org.freedesktop.DBus.Error.NoServer",
    }
)

# How often a blocking signal wait wakes up to check the connection
SIGNAL_POLL_MS = 1000

# Defer GLib imports until a real bus is needed
_Gio = None
_GLib = None


def _get_gio():
    """Lazily import Gio and GLib."""
    global _Gio, _GLib
    if _Gio is not None:
        return _Gio, _GLib

    try:
        import gi

        gi.require_version("GLib", "2.0")
        gi.require_version("Gio", "2.0")
        from gi.repository import Gio as _Gio_module
        from gi.repository import GLib as _GLib_module

        _Gio, _GLib = _Gio_module, _GLib_module
        return _Gio, _GLib
    except Exception as e:
        logging.getLogger(__name__).error("Failed to import GLib bindings: %s", e)
        raise


@dataclass(frozen=True)
class Signal:
    """A signal received from the bus, with its arguments already unpacked."""

    interface: str
    name: str
    payload: Tuple[Any, ...] = ()


class SignalSubscription(ABC):
    """Blocking, pull-style stream of signals from one player."""

    @abstractmethod
    def next(self, timeout: Optional[float] = None) -> Optional[Signal]:
        """
        Wait for the next signal.

        Args:
            timeout: Seconds to wait; None or 0 waits forever

        Returns:
            The next Signal, or None if the timeout elapsed first

        Raises:
            TransportFailure: if the connection is gone
        """
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop receiving signals."""
        ...


class BusProxy(ABC):
    """Capabilities mpris_client needs from the bus, bound to one player."""

    bus_name: str

    @abstractmethod
    def call(
        self,
        interface: str,
        method: str,
        args: Sequence[Any] = (),
        signature: Optional[str] = None,
    ) -> Tuple[Any, ...]:
        """Invoke a method on the player's object and return the unpacked reply."""
        ...

    @abstractmethod
    def get_property(self, interface: str, name: str) -> Any:
        """Read one property; raises PropertyMissing if the player lacks it."""
        ...

    @abstractmethod
    def get_all_properties(self, interface: str) -> Dict[str, Any]:
        """Read every property the player exposes on an interface."""
        ...

    @abstractmethod
    def set_property(self, interface: str, name: str, value: Any, signature: str) -> None:
        """Write one property, wrapping value in a variant of the given signature."""
        ...

    @abstractmethod
    def introspect(self) -> str:
        """Return the introspection XML of the player's object."""
        ...

    @abstractmethod
    def name_has_owner(self, bus_name: str) -> bool:
        """Ask the bus daemon whether a name currently has an owner."""
        ...

    @abstractmethod
    def subscribe_signals(self) -> SignalSubscription:
        """Start receiving the player's signals."""
        ...


def translate_error(error, operation: str):
    """Map a GLib.Error from a bus call onto the mpris_client error taxonomy."""
    Gio, _ = _get_gio()
    message = getattr(error, "message", None) or str(error)
    if Gio.DBusError.is_remote_error(error):
        name = Gio.DBusError.get_remote_error(error)
        if name in TRANSPORT_ERROR_NAMES:
            return TransportFailure(message, operation)
        if name in MISSING_ERROR_NAMES:
            return PropertyMissing(message, operation, name)
        return RemoteRejected(message, operation, name)
    return TransportFailure(message, operation)


class SessionBus:
    """A connection to the session bus, shared by every player proxy made from it."""

    def __init__(self, connection=None, timeout_ms: Optional[int] = None):
        """
        Initialize SessionBus.

        Args:
            connection: Existing Gio.DBusConnection (defaults to the session bus)
            timeout_ms: Default call timeout for proxies made from this bus
        """
        self.logger = logging.getLogger(__name__)
        self.timeout_ms = timeout_ms if timeout_ms is not None else Config.DEFAULT_TIMEOUT_MS
        if connection is None:
            Gio, GLib = _get_gio()
            try:
                connection = Gio.bus_get_sync(Gio.BusType.SESSION, None)
            except GLib.Error as e:
                raise TransportFailure(str(e), "connect") from e
        self.connection = connection

    def call(
        self,
        bus_name: str,
        object_path: str,
        interface: str,
        method: str,
        args: Sequence[Any] = (),
        signature: Optional[str] = None,
        timeout_ms: Optional[int] = None,
    ) -> Tuple[Any, ...]:
        """Blocking method call; returns the unpacked reply tuple."""
        Gio, GLib = _get_gio()
        operation = f"{interface}.{method}"
        parameters = GLib.Variant(signature, tuple(args)) if signature else None
        if timeout_ms is None:
            timeout_ms = self.timeout_ms

        self.logger.debug("Calling %s on %s", operation, bus_name)
        try:
            reply = self.connection.call_sync(
                bus_name,
                object_path,
                interface,
                method,
                parameters,
                None,
                Gio.DBusCallFlags.NO_AUTO_START,
                timeout_ms,
                None,
            )
        except GLib.Error as e:
            raise translate_error(e, operation) from e

        if reply is None:
            return ()
        return tuple(reply.unpack())

    def list_names(self) -> List[str]:
        (names,) = self.call(
            DBUS_NAME,
            DBUS_PATH,
            DBUS_INTERFACE,
            "ListNames",
            timeout_ms=Config.LIST_NAMES_TIMEOUT_MS,
        )
        return list(names)

    def name_has_owner(self, bus_name: str) -> bool:
        (has_owner,) = self.call(
            DBUS_NAME,
            DBUS_PATH,
            DBUS_INTERFACE,
            "NameHasOwner",
            (bus_name,),
            "(s)",
            timeout_ms=Config.NAME_OWNER_TIMEOUT_MS,
        )
        return bool(has_owner)

    def get_name_owner(self, bus_name: str) -> str:
        (owner,) = self.call(
            DBUS_NAME,
            DBUS_PATH,
            DBUS_INTERFACE,
            "GetNameOwner",
            (bus_name,),
            "(s)",
            timeout_ms=Config.NAME_OWNER_TIMEOUT_MS,
        )
        return owner

    def proxy(self, bus_name: str) -> "GioBusProxy":
        return GioBusProxy(self, bus_name)


class GioBusProxy(BusProxy):
    """BusProxy for one MPRIS player, backed by GDBus."""

    def __init__(self, session: SessionBus, bus_name: str, object_path: str = MPRIS2_PATH):
        self.session = session
        self.bus_name = bus_name
        self.object_path = object_path
        self.logger = logging.getLogger(__name__)

    def call(
        self,
        interface: str,
        method: str,
        args: Sequence[Any] = (),
        signature: Optional[str] = None,
    ) -> Tuple[Any, ...]:
        return self.session.call(
            self.bus_name, self.object_path, interface, method, args, signature
        )

    def get_property(self, interface: str, name: str) -> Any:
        (value,) = self.call(PROPERTIES_INTERFACE, "Get", (interface, name), "(ss)")
        return value

    def get_all_properties(self, interface: str) -> Dict[str, Any]:
        (values,) = self.call(PROPERTIES_INTERFACE, "GetAll", (interface,), "(s)")
        return dict(values)

    def set_property(self, interface: str, name: str, value: Any, signature: str) -> None:
        _, GLib = _get_gio()
        self.call(
            PROPERTIES_INTERFACE,
            "Set",
            (interface, name, GLib.Variant(signature, value)),
            "(ssv)",
        )

    def introspect(self) -> str:
        (xml,) = self.call(INTROSPECTABLE_INTERFACE, "Introspect")
        return xml

    def name_has_owner(self, bus_name: str) -> bool:
        return self.session.name_has_owner(bus_name)

    def subscribe_signals(self) -> "GioSignalSubscription":
        # Signals arrive from the unique name, not the well-known one
        unique_name = self.session.get_name_owner(self.bus_name)
        return GioSignalSubscription(
            self.session.connection, self.bus_name, unique_name, self.object_path
        )


class GioSignalSubscription(SignalSubscription):
    """
    Collects a player's signals on a private GLib main context.

    Nothing is dispatched until next() iterates the context, so waiting for
    signals only ever blocks the calling thread.
    """

    def __init__(self, connection, bus_name: str, unique_name: str, object_path: str):
        Gio, GLib = _get_gio()
        self.connection = connection
        self.bus_name = bus_name
        self.logger = logging.getLogger(__name__)
        self._pending: deque = deque()
        self._closed = False
        self._subscription_ids: List[int] = []
        self._context = GLib.MainContext.new()

        # signal_subscribe dispatches on the thread-default context at call time
        self._context.push_thread_default()
        try:
            self._subscription_ids.append(
                connection.signal_subscribe(
                    unique_name,
                    None,
                    None,
                    object_path,
                    None,
                    Gio.DBusSignalFlags.NONE,
                    self._on_signal,
                    None,
                )
            )
            self._subscription_ids.append(
                connection.signal_subscribe(
                    DBUS_NAME,
                    DBUS_INTERFACE,
                    "NameOwnerChanged",
                    DBUS_PATH,
                    bus_name,
                    Gio.DBusSignalFlags.NONE,
                    self._on_signal,
                    None,
                )
            )
        finally:
            self._context.pop_thread_default()
        self.logger.debug("Subscribed to signals from %s (%s)", bus_name, unique_name)

    def _on_signal(self, connection, sender, path, interface, name, parameters, *user_data):
        payload = tuple(parameters.unpack()) if parameters is not None else ()
        self._pending.append(Signal(interface, name, payload))

    def next(self, timeout: Optional[float] = None) -> Optional[Signal]:
        _, GLib = _get_gio()
        deadline = time.monotonic() + timeout if timeout else None

        while not self._pending:
            if self._closed or self.connection.is_closed():
                raise TransportFailure("Connection to the bus is closed", "subscribe_signals")

            wait_ms = SIGNAL_POLL_MS
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                wait_ms = min(wait_ms, max(1, int(remaining * 1000)))

            # Wake the blocking iteration once wait_ms has passed
            source = GLib.timeout_source_new(wait_ms)
            source.set_callback(lambda *args: False)
            source.attach(self._context)
            try:
                self._context.iteration(True)
            finally:
                source.destroy()

        return self._pending.popleft()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for subscription_id in self._subscription_ids:
            self.connection.signal_unsubscribe(subscription_id)
        self._subscription_ids = []
        self.logger.debug("Unsubscribed from signals of %s", self.bus_name)
