"""critpath: dependency-graph and critical-path scheduling engine.

Tasks connected by finish-to-start dependencies are scheduled with the
Critical Path Method. Every structural change is cycle-checked before it is
committed, and the full schedule is recomputed and written back in the same
transaction.
"""

from critpath.errors import (
    AlgorithmInvariantViolation,
    CycleError,
    SchedulingError,
    StorageError,
    ValidationError,
)
from critpath.graph import DependencyGraph, TaskNode, build_graph, topological_sort, would_create_cycle
from critpath.schedule import CriticalPathResult, SchedulePersister, calculate_critical_path
from critpath.service import DependencyCheck, DependencyMutationService

__version__ = "0.1.0"

__all__ = [
    "AlgorithmInvariantViolation",
    "CriticalPathResult",
    "CycleError",
    "DependencyCheck",
    "DependencyGraph",
    "DependencyMutationService",
    "SchedulePersister",
    "SchedulingError",
    "StorageError",
    "TaskNode",
    "ValidationError",
    "build_graph",
    "calculate_critical_path",
    "topological_sort",
    "would_create_cycle",
]
