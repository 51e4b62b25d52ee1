"""Exceptions raised by the status engine and its bus handle."""


class StatusError(Exception):
    """Base class for sdstatus failures."""


class StartupError(StatusError):
    """Raised when the engine cannot acquire the manager or subscribe to it."""


class TransportError(StatusError):
    """Raised when a bus round trip fails or times out."""


class RemoteFault(StatusError):
    """Raised when the manager answers a call with an error reply."""

    def __init__(self, message: str, dbus_name: str | None = None) -> None:
        super().__init__(message)
        self.dbus_name = dbus_name
