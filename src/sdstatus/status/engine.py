from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable

from sdstatus.errors import RemoteFault, StartupError, StatusError, TransportError

STATE_PROPERTY = "SystemState"
FAILED_COUNT_PROPERTY = "NFailedUnits"
RECONCILE_SIGNALS = frozenset({"JobRemoved", "StartupFinished"})


class ManagerState(str, Enum):
    INITIALIZING = "initializing"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    MAINTENANCE = "maintenance"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Any) -> "ManagerState":
        if not isinstance(raw, str):
            return cls.UNKNOWN
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


class Severity(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


_SEVERITY = {
    ManagerState.INITIALIZING: Severity.YELLOW,
    ManagerState.STARTING: Severity.YELLOW,
    ManagerState.MAINTENANCE: Severity.YELLOW,
    ManagerState.STOPPING: Severity.YELLOW,
    ManagerState.RUNNING: Severity.GREEN,
}


def classify(state: ManagerState) -> Severity:
    """Degraded and anything unrecognized is treated as the worst case."""
    return _SEVERITY.get(state, Severity.RED)


@dataclass(frozen=True)
class HealthSnapshot:
    severity: Severity
    state: ManagerState
    failed_units: tuple[str, ...] = ()


class EngineState(str, Enum):
    INACTIVE = "inactive"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    UNSUBSCRIBING = "unsubscribing"


@dataclass
class _Subscription:
    handle: Any
    subscribed: bool = False
    properties_token: Any = None
    signal_token: Any = None


class StatusSyncEngine:
    """Keep a HealthSnapshot of the systemd manager current.

    Notifications from the handle are queued and processed one at a time in
    arrival order. Each processed notification that matters ends in a full
    reconciliation: the failed unit list is always fetched again, the cached
    manager state is reused unless the notification carried a new one.
    """

    def __init__(
        self,
        acquire_handle: Callable[[], Any],
        sink: Callable[[HealthSnapshot], None],
        logger: logging.Logger | None = None,
    ) -> None:
        self._acquire_handle = acquire_handle
        self._sink = sink
        self._logger = logger or logging.getLogger("sdstatus.engine")
        self._lock = threading.RLock()
        self._events: deque[Callable[[], None]] = deque()
        self._draining = False
        self._subscription: _Subscription | None = None
        self._state = EngineState.INACTIVE
        self._last_snapshot: HealthSnapshot | None = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is EngineState.ACTIVE

    @property
    def last_snapshot(self) -> HealthSnapshot | None:
        return self._last_snapshot

    def start(self) -> HealthSnapshot | None:
        with self._lock:
            if self._state is not EngineState.INACTIVE:
                raise RuntimeError(f"engine is {self._state.value}, cannot start")
            self._state = EngineState.SUBSCRIBING
            try:
                self._subscription = self._subscribe()
            except BaseException:
                self._state = EngineState.INACTIVE
                raise
            self._state = EngineState.ACTIVE
            self._logger.info("subscribed to systemd manager")
            self._dispatch(self._full_refresh)
            return self._last_snapshot

    def stop(self) -> None:
        with self._lock:
            if self._state is EngineState.INACTIVE:
                return
            subscription = self._subscription
            self._state = EngineState.UNSUBSCRIBING
            self._events.clear()
            try:
                if subscription is not None:
                    self._teardown(subscription)
            finally:
                self._subscription = None
                self._state = EngineState.INACTIVE
            self._logger.info("unsubscribed from systemd manager")

    def _subscribe(self) -> _Subscription:
        try:
            handle = self._acquire_handle()
        except Exception as exc:
            raise StartupError(f"cannot acquire systemd manager: {exc}") from exc
        subscription = _Subscription(handle)
        try:
            handle.call_method("Subscribe")
            subscription.subscribed = True
            subscription.properties_token = handle.on_properties_changed(self._on_properties_changed)
            subscription.signal_token = handle.on_signal(self._on_signal)
        except Exception as exc:
            try:
                self._teardown(subscription)
            except Exception as cleanup_exc:
                self._logger.warning("rollback after failed subscribe failed: %s", cleanup_exc)
            raise StartupError(f"cannot subscribe to systemd manager: {exc}") from exc
        return subscription

    def _teardown(self, subscription: _Subscription) -> None:
        # Listeners go first so nothing reconciles against a closing handle.
        handle = subscription.handle
        for token in (subscription.properties_token, subscription.signal_token):
            if token is not None:
                handle.remove_listener(token)
        subscription.properties_token = subscription.signal_token = None
        if subscription.subscribed:
            try:
                handle.call_method("Unsubscribe")
            except StatusError as exc:
                self._logger.warning("Unsubscribe failed during teardown: %s", exc)
            subscription.subscribed = False
        handle.close()

    def _on_properties_changed(self, changed: dict, _invalidated: list) -> None:
        self._dispatch(partial(self._handle_properties_changed, changed))

    def _on_signal(self, name: str, _args: tuple) -> None:
        self._dispatch(partial(self._handle_signal, name))

    def _dispatch(self, event: Callable[[], None]) -> None:
        with self._lock:
            if self._state is not EngineState.ACTIVE:
                return
            self._events.append(event)
            if not self._draining:
                self._drain()

    def _drain(self) -> None:
        self._draining = True
        try:
            while self._events and self._state is EngineState.ACTIVE:
                self._events.popleft()()
        except (TransportError, RemoteFault) as exc:
            self._logger.error("reconciliation failed: %s", exc)
            raise
        finally:
            self._draining = False

    def _full_refresh(self) -> None:
        self._refresh_state()
        self._reconcile()

    def _handle_properties_changed(self, changed: dict) -> None:
        if STATE_PROPERTY in changed:
            self._handle().set_cached_property(STATE_PROPERTY, changed[STATE_PROPERTY])
        elif FAILED_COUNT_PROPERTY in changed:
            self._refresh_state_on_failed_count()
        self._reconcile()

    def _handle_signal(self, name: str) -> None:
        if name not in RECONCILE_SIGNALS:
            return
        self._reconcile()

    def _refresh_state_on_failed_count(self) -> None:
        """Re-query SystemState when only NFailedUnits was announced.

        systemd (seen with 253.3) changes SystemState between running and
        degraded as units fail or recover without emitting PropertiesChanged
        for it. The NFailedUnits change is the only hint that it moved.
        """
        self._logger.debug("%s changed without %s; querying it", FAILED_COUNT_PROPERTY, STATE_PROPERTY)
        self._refresh_state()

    def _refresh_state(self) -> None:
        handle = self._handle()
        handle.set_cached_property(STATE_PROPERTY, handle.get_remote_property(STATE_PROPERTY))

    def _reconcile(self) -> HealthSnapshot:
        handle = self._handle()
        state = ManagerState.parse(handle.get_cached_property(STATE_PROPERTY))
        records = handle.call_method("ListUnitsFiltered", ["failed"])
        failed_units = tuple(str(record[0]) for record in records)
        snapshot = HealthSnapshot(classify(state), state, failed_units)
        self._logger.debug(
            "reconciled state=%s severity=%s failed=%d",
            state.value,
            snapshot.severity.value,
            len(failed_units),
        )
        self._last_snapshot = snapshot
        self._sink(snapshot)
        return snapshot

    def _handle(self):
        if self._subscription is None:
            raise RuntimeError("engine has no live subscription")
        return self._subscription.handle
