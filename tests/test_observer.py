"""Tests for the observer daemon's startup paths that need no real bus."""

from __future__ import annotations

import pytest

from sdstatus import observer
from sdstatus.config import Settings


class UnreachableBus:
    def get_object(self, bus_name, path):
        error = Exception("systemd is not on this bus")
        error.get_dbus_name = lambda: "org.freedesktop.DBus.Error.ServiceUnknown"
        raise error


@pytest.fixture(autouse=True)
def quiet(monkeypatch):
    monkeypatch.setattr(observer, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(observer.signal, "signal", lambda *args: None)


def test_invalid_configuration_exits_2(monkeypatch):
    monkeypatch.setenv("SDSTATUS_BUS", "bogus")

    assert observer.main() == 2


def test_missing_dbus_support_exits_1(monkeypatch):
    monkeypatch.delenv("SDSTATUS_BUS", raising=False)
    monkeypatch.setattr(observer, "dbus", None)

    assert observer.main() == 1


def test_engine_not_returned_when_manager_unreachable():
    assert observer._start_engine(UnreachableBus(), Settings()) is None
