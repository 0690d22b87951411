"""
Pytest configuration for mpris_client tests.

Provides:
- @pytest.mark.dbus marker for tests requiring a real session bus
- Auto-skip of D-Bus tests when gi or a session bus is unavailable
"""

import pytest


def _is_session_bus_available():
    """Check if the GLib bindings are installed and a session bus answers."""
    try:
        import gi

        gi.require_version("Gio", "2.0")
        from gi.repository import Gio, GLib

        try:
            Gio.bus_get_sync(Gio.BusType.SESSION, None)
        except GLib.Error:
            return False
        return True
    except (ImportError, ValueError):
        return False


SESSION_BUS_AVAILABLE = _is_session_bus_available()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "dbus: marks tests as requiring a session bus (skipped if unavailable)"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-skip D-Bus tests when no session bus is reachable."""
    if SESSION_BUS_AVAILABLE:
        return

    skip_dbus = pytest.mark.skip(reason="D-Bus session bus not available")
    for item in items:
        if "dbus" in item.keywords:
            item.add_marker(skip_dbus)
