from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass

_BUS_KINDS = ("system", "session")


@dataclass(frozen=True)
class Settings:
    bus: str = "system"
    call_timeout: float = 25.0
    runtime_limit: float = 0.0
    log_level: str = "INFO"


def _float_env(environ, name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


def load_settings(environ=None) -> Settings:
    """Build settings from SDSTATUS_* environment variables."""
    environ = os.environ if environ is None else environ
    bus = environ.get("SDSTATUS_BUS", "system").lower()
    if bus not in _BUS_KINDS:
        raise ValueError(f"SDSTATUS_BUS must be one of {', '.join(_BUS_KINDS)}, got {bus!r}")
    log_level = environ.get("SDSTATUS_LOG_LEVEL", "INFO").upper()
    if not isinstance(logging.getLevelName(log_level), int):
        raise ValueError(f"unknown SDSTATUS_LOG_LEVEL {log_level!r}")
    return Settings(
        bus=bus,
        call_timeout=_float_env(environ, "SDSTATUS_CALL_TIMEOUT", Settings.call_timeout),
        runtime_limit=_float_env(environ, "SDSTATUS_RUNTIME_LIMIT", Settings.runtime_limit),
        log_level=log_level,
    )


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Send log messages to stdout so systemd can forward them to journald."""
    logger = logging.getLogger("sdstatus")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logger.setLevel(level)
    logger.handlers[:] = [handler]
    logger.propagate = False
    return logger
