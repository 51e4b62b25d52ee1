"""Synchronous bridge to the systemd manager object on D-Bus."""

from __future__ import annotations

import logging
from typing import Any, Callable

from sdstatus.errors import RemoteFault, TransportError

try:
    import dbus
except ImportError:
    dbus = None

MANAGER_BUS_NAME = "org.freedesktop.systemd1"
MANAGER_PATH = "/org/freedesktop/systemd1"
MANAGER_INTERFACE = "org.freedesktop.systemd1.Manager"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

_TRANSPORT_ERROR_NAMES = frozenset(
    {
        "",
        "org.freedesktop.DBus.Error.NoReply",
        "org.freedesktop.DBus.Error.Timeout",
        "org.freedesktop.DBus.Error.TimedOut",
        "org.freedesktop.DBus.Error.Disconnected",
        "org.freedesktop.DBus.Error.NoServer",
        "org.freedesktop.DBus.Error.ServiceUnknown",
        "org.freedesktop.DBus.Error.NameHasNoOwner",
        "org.freedesktop.DBus.Error.IOError",
    }
)

_logger = logging.getLogger("sdstatus.handle")

PropertiesHandler = Callable[[dict, list], None]
SignalHandler = Callable[[str, tuple], None]


class _MissingType:
    __slots__ = ()

    def __repr__(self) -> str:
        return "Missing"

    def __bool__(self) -> bool:
        return False


Missing = _MissingType()


def _dbus_error_name(exc: Exception) -> str:
    dbus_name = getattr(exc, "get_dbus_name", lambda: "")()
    return str(dbus_name or "")


def _is_dbus_error(exc: Exception) -> bool:
    return hasattr(exc, "get_dbus_name")


def translate_error(exc: Exception, what: str) -> TransportError | RemoteFault:
    """Map a dbus-python exception onto the engine's error kinds."""
    name = _dbus_error_name(exc)
    if name in _TRANSPORT_ERROR_NAMES:
        return TransportError(f"{what} failed: {exc}")
    return RemoteFault(f"{what} rejected by manager: {exc}", dbus_name=name)


def unwrap(value: Any) -> Any:
    """Strip dbus-python wrapper types down to plain Python values."""
    if isinstance(value, str):
        return str(value)
    if isinstance(value, bool) or (dbus is not None and isinstance(value, dbus.Boolean)):
        return bool(value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, dict):
        return {unwrap(key): unwrap(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return tuple(unwrap(item) for item in value)
    if isinstance(value, list):
        return [unwrap(item) for item in value]
    return value


class BusManagerHandle:
    """One remote manager object with a local property cache.

    ``bus`` is a dbus-python connection (``dbus.SystemBus()`` or
    ``dbus.SessionBus()``). Listener callbacks run on whatever main loop
    dispatches the connection, one at a time.
    """

    def __init__(self, bus, proxy, timeout: float | None = None) -> None:
        self._bus = bus
        self._proxy = proxy
        self._timeout = timeout
        self._cache: dict[str, Any] = {}
        self._matches: list = []

    @classmethod
    def connect(cls, bus, timeout: float | None = None) -> "BusManagerHandle":
        try:
            proxy = bus.get_object(MANAGER_BUS_NAME, MANAGER_PATH)
        except Exception as exc:
            if not _is_dbus_error(exc):
                raise
            raise TransportError(f"systemd manager unavailable: {exc}") from exc
        return cls(bus, proxy, timeout=timeout)

    def get_cached_property(self, name: str) -> Any:
        return self._cache.get(name, Missing)

    def set_cached_property(self, name: str, value: Any) -> None:
        self._cache[name] = value

    def get_remote_property(self, name: str) -> Any:
        method = self._proxy.get_dbus_method("Get", PROPERTIES_INTERFACE)
        return unwrap(self._invoke(f"Get({name})", method, MANAGER_INTERFACE, name))

    def call_method(self, name: str, *args) -> Any:
        method = self._proxy.get_dbus_method(name, MANAGER_INTERFACE)
        return unwrap(self._invoke(name, method, *args))

    def on_properties_changed(self, handler: PropertiesHandler):
        def _dispatch(interface, changed, invalidated, **_kwargs) -> None:
            if str(interface) != MANAGER_INTERFACE:
                return
            handler(unwrap(changed), [str(name) for name in invalidated])

        return self._add_receiver(
            _dispatch,
            signal_name="PropertiesChanged",
            dbus_interface=PROPERTIES_INTERFACE,
            arg0=MANAGER_INTERFACE,
        )

    def on_signal(self, handler: SignalHandler):
        def _dispatch(*args, member=None, **_kwargs) -> None:
            handler(str(member), unwrap(tuple(args)))

        return self._add_receiver(
            _dispatch,
            dbus_interface=MANAGER_INTERFACE,
            member_keyword="member",
        )

    def remove_listener(self, token) -> None:
        if token not in self._matches:
            return
        self._matches.remove(token)
        token.remove()

    def close(self) -> None:
        for token in list(self._matches):
            self.remove_listener(token)
        self._cache.clear()

    def _add_receiver(self, callback, **match):
        try:
            token = self._bus.add_signal_receiver(
                callback, bus_name=MANAGER_BUS_NAME, path=MANAGER_PATH, **match
            )
        except Exception as exc:
            if not _is_dbus_error(exc):
                raise
            raise translate_error(exc, "AddMatch") from exc
        self._matches.append(token)
        return token

    def _invoke(self, what: str, method, *args) -> Any:
        kwargs = {"timeout": self._timeout} if self._timeout else {}
        _logger.debug("calling %s", what)
        try:
            return method(*args, **kwargs)
        except Exception as exc:
            if not _is_dbus_error(exc):
                raise
            raise translate_error(exc, what) from exc
