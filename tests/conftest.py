"""Shared fixtures: a recording stand-in for the systemd manager handle."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from sdstatus.status import Missing, StatusSyncEngine  # noqa: E402


class FakeToken:
    def __init__(self, kind: str, handler) -> None:
        self.kind = kind
        self.handler = handler


class FakeHandle:
    """Records remote calls and lets tests fire notifications by hand."""

    def __init__(self, state="running", failed=(), failures=None) -> None:
        self.remote = {"SystemState": state}
        self.failed = list(failed)
        self.failures = dict(failures or {})
        self.cache = {}
        self.calls = []
        self.listeners = []
        self.closed = False

    def get_cached_property(self, name):
        return self.cache.get(name, Missing)

    def set_cached_property(self, name, value):
        self.cache[name] = value

    def get_remote_property(self, name):
        self.calls.append(("Get", name))
        self._maybe_fail("Get")
        return self.remote[name]

    def call_method(self, name, *args):
        self.calls.append((name,) + args)
        self._maybe_fail(name)
        if name == "ListUnitsFiltered":
            return [(unit, "desc", "loaded", "failed", "failed") for unit in self.failed]
        return None

    def on_properties_changed(self, handler):
        return self._listen("properties", handler)

    def on_signal(self, handler):
        return self._listen("signal", handler)

    def remove_listener(self, token):
        self.listeners.remove(token)

    def close(self):
        self.closed = True

    def fire_properties(self, changed, invalidated=()):
        for token in list(self.listeners):
            if token.kind == "properties":
                token.handler(dict(changed), list(invalidated))

    def fire_signal(self, name, *args):
        for token in list(self.listeners):
            if token.kind == "signal":
                token.handler(name, args)

    def remote_gets(self):
        return [call for call in self.calls if call[0] == "Get"]

    def _listen(self, kind, handler):
        self._maybe_fail("listen")
        token = FakeToken(kind, handler)
        self.listeners.append(token)
        return token

    def _maybe_fail(self, name):
        exc = self.failures.get(name)
        if exc is not None:
            raise exc


@pytest.fixture
def handle():
    return FakeHandle()


@pytest.fixture
def snapshots():
    return []


@pytest.fixture
def engine(handle, snapshots):
    return StatusSyncEngine(lambda: handle, snapshots.append)


@pytest.fixture
def started(engine, handle, snapshots):
    engine.start()
    handle.calls.clear()
    snapshots.clear()
    return engine
