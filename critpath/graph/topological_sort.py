"""Prerequisite-first ordering of a dependency graph (Kahn's algorithm)."""

from collections import deque

import structlog

from critpath.errors import AlgorithmInvariantViolation
from critpath.graph.dependency_graph import DependencyGraph

logger = structlog.get_logger(__name__)


def topological_sort(graph: DependencyGraph) -> list[int]:
    """Order tasks so every task comes after all of its predecessors.

    The in-degree of a task is its number of predecessors. Tasks without
    predecessors seed the queue in index order; emitting a task releases each
    of its successors once.

    Args:
        graph: An acyclic dependency graph

    Returns:
        Task ids in prerequisite-first order

    Raises:
        AlgorithmInvariantViolation: If not every task could be emitted, which
            means a cycle got past the mutation-time check
    """
    size = len(graph)
    remaining = [len(graph.predecessor_indices(i)) for i in range(size)]
    queue = deque(i for i in range(size) if remaining[i] == 0)
    order: list[int] = []

    while queue:
        current = queue.popleft()
        order.append(current)
        for successor in graph.successor_indices(current):
            remaining[successor] -= 1
            if remaining[successor] == 0:
                queue.append(successor)

    if len(order) != size:
        unresolved = sorted(graph.id_at(i) for i in range(size) if remaining[i] > 0)
        logger.critical(
            "topological_sort_incomplete",
            task_count=size,
            emitted=len(order),
            unresolved=unresolved,
        )
        msg = (
            f"Topological sort emitted {len(order)} of {size} tasks; "
            f"tasks {unresolved} are part of or blocked by a cycle"
        )
        raise AlgorithmInvariantViolation(msg)

    return [graph.id_at(i) for i in order]
