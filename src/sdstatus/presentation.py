"""Text rendering of health snapshots for indicators and logs."""

from __future__ import annotations

import logging

from sdstatus.status import HealthSnapshot, Severity

_LOG_LEVELS = {
    Severity.GREEN: logging.INFO,
    Severity.YELLOW: logging.WARNING,
    Severity.RED: logging.ERROR,
}


def icon_name(severity: Severity) -> str:
    return f"systemd-{severity.value}"


def format_state(snapshot: HealthSnapshot) -> str:
    return f"Systemd state: {snapshot.state.value}"


def format_failed(snapshot: HealthSnapshot) -> str:
    if not snapshot.failed_units:
        return "All units are running"
    return "Failed units:\n • " + "\n • ".join(snapshot.failed_units)


class LogSink:
    """Log snapshots, skipping ones identical to the previous emission."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("sdstatus.presentation")
        self._previous: HealthSnapshot | None = None

    @property
    def previous(self) -> HealthSnapshot | None:
        return self._previous

    def __call__(self, snapshot: HealthSnapshot) -> None:
        if snapshot == self._previous:
            return
        self._previous = snapshot
        failed = ", ".join(snapshot.failed_units) or "none"
        self._logger.log(
            _LOG_LEVELS[snapshot.severity],
            "STATUS=%s STATE=%s FAILED=%s",
            snapshot.severity.value,
            snapshot.state.value,
            failed,
        )
