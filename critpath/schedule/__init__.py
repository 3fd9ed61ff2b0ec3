"""Schedule module: critical path calculation and write-back."""

from critpath.schedule.critical_path import (
    CriticalPathInfo,
    CriticalPathResult,
    CriticalTaskInfo,
    calculate_critical_path,
    describe_critical_path,
)
from critpath.schedule.persister import ScheduleOutcome, SchedulePersister

__all__ = [
    "CriticalPathInfo",
    "CriticalPathResult",
    "CriticalTaskInfo",
    "ScheduleOutcome",
    "SchedulePersister",
    "calculate_critical_path",
    "describe_critical_path",
]
