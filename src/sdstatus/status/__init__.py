from sdstatus.status.engine import (
    EngineState,
    HealthSnapshot,
    ManagerState,
    Severity,
    StatusSyncEngine,
    classify,
)
from sdstatus.status.handle import BusManagerHandle, Missing

__all__ = [
    "BusManagerHandle",
    "EngineState",
    "HealthSnapshot",
    "ManagerState",
    "Missing",
    "Severity",
    "StatusSyncEngine",
    "classify",
]
