"""Observer daemon that logs systemd manager health to journald via stdout."""

from __future__ import annotations

import logging
import signal
import sys
from functools import partial

from sdstatus.config import Settings, load_settings, setup_logging
from sdstatus.errors import StartupError, StatusError
from sdstatus.presentation import LogSink
from sdstatus.status import BusManagerHandle, StatusSyncEngine

try:
    import dbus
    import dbus.mainloop.glib
    from gi.repository import GLib
except ImportError:
    dbus = None
    GLib = None


_logger = logging.getLogger("sdstatus.observer")
_main_loop = None
_engine: StatusSyncEngine | None = None


def _handle_signal(signum, _frame) -> None:
    try:
        name = signal.Signals(signum).name
    except ValueError:
        name = str(signum)
    _logger.info("sdstatus-observer received signal %s; shutting down", name)
    _stop_main_loop()


def _stop_main_loop() -> None:
    if _main_loop is not None and _main_loop.is_running():
        _main_loop.quit()


def _timeout_shutdown() -> bool:
    _logger.info("sdstatus-observer reached runtime limit; shutting down")
    _stop_main_loop()
    return False


def _connect_dbus(settings: Settings):
    global _main_loop
    if dbus is None or GLib is None:
        _logger.error("D-Bus support unavailable; install dbus-python and pygobject")
        return None
    dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
    try:
        bus = dbus.SessionBus() if settings.bus == "session" else dbus.SystemBus()
    except dbus.exceptions.DBusException as exc:
        _logger.error("Failed to connect to %s D-Bus: %s", settings.bus, exc)
        return None
    _main_loop = GLib.MainLoop()
    return bus


def _start_engine(bus, settings: Settings) -> StatusSyncEngine | None:
    engine = StatusSyncEngine(
        partial(BusManagerHandle.connect, bus, timeout=settings.call_timeout),
        LogSink(logging.getLogger("sdstatus.status")),
    )
    try:
        engine.start()
    except StartupError as exc:
        _logger.error("could not start status engine: %s", exc)
        return None
    except StatusError as exc:
        # Subscribed; the next manager notification reconciles again.
        _logger.warning("initial status unavailable: %s", exc)
    return engine


def main() -> int:
    global _engine
    try:
        settings = load_settings()
    except ValueError as exc:
        setup_logging()
        _logger.error("invalid configuration: %s", exc)
        return 2
    setup_logging(settings.log_level)
    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    _logger.info("sdstatus-observer starting up")
    bus = _connect_dbus(settings)
    if bus is None:
        return 1
    _engine = _start_engine(bus, settings)
    if _engine is None:
        return 1
    if settings.runtime_limit:
        GLib.timeout_add(int(settings.runtime_limit * 1000), _timeout_shutdown)
    try:
        _main_loop.run()
    finally:
        _engine.stop()
        _engine = None
    _logger.info("sdstatus-observer shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
