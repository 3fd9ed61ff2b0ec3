"""Graph module: construction, cycle detection and topological ordering."""

from critpath.graph.builder import build_graph
from critpath.graph.cycle_detector import find_cycle, iter_cycles, would_create_cycle
from critpath.graph.dependency_graph import DependencyGraph, TaskNode
from critpath.graph.topological_sort import topological_sort
from critpath.graph.validator import GraphValidator, ValidationReport

__all__ = [
    "DependencyGraph",
    "GraphValidator",
    "TaskNode",
    "ValidationReport",
    "build_graph",
    "find_cycle",
    "iter_cycles",
    "topological_sort",
    "would_create_cycle",
]
