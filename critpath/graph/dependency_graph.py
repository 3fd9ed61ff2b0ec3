"""In-memory dependency graph over a dense index arena.

Task ids are arbitrary integers. On construction every id is assigned a
compact index (its position in ``ids``) and all adjacency is stored as lists of
indices, so the traversal algorithms can keep their per-node state in flat
arrays. Ids are translated back only at the boundary.

A graph is a request-scoped snapshot: it is built from storage at the start of
an operation and thrown away at the end. Nothing mutates it after
construction.

The graph owns copies of the nodes it was given; callers keep their
``TaskNode`` objects unchanged.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field, replace
from datetime import datetime

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class TaskNode:
    """A task as seen by the scheduling algorithms.

    Attributes:
        id: Unique task id
        title: Display title
        duration: Whole days, at least one
        due_date: Informational due date
        predecessor_ids: Tasks this task depends on
        successor_ids: Tasks that depend on this task
        is_draft: Speculative task included in a what-if graph
        earliest_start_date: Derived by the last reschedule
        is_on_critical_path: Derived by the last reschedule
    """

    id: int
    title: str
    duration: int
    due_date: datetime | None = None
    predecessor_ids: list[int] = field(default_factory=list)
    successor_ids: list[int] = field(default_factory=list)
    is_draft: bool = False
    earliest_start_date: datetime | None = None
    is_on_critical_path: bool = False


class DependencyGraph:
    """Directed graph where an edge ``task -> predecessor`` means the task
    cannot start before the predecessor finishes.

    The graph does not check acyclicity itself; see
    :mod:`critpath.graph.cycle_detector`.

    Example:
        >>> graph = DependencyGraph([
        ...     TaskNode(id=1, title="Design", duration=2),
        ...     TaskNode(id=2, title="Build", duration=3, predecessor_ids=[1]),
        ... ])
        >>> graph.adjacency
        {1: [], 2: [1]}
        >>> graph.successors(1)
        [2]
    """

    def __init__(self, nodes: Iterable[TaskNode] = ()):
        self.nodes: dict[int, TaskNode] = {}
        for node in nodes:
            if node.id in self.nodes:
                msg = f"Duplicate task id in graph: {node.id}"
                raise ValueError(msg)
            self.nodes[node.id] = replace(
                node,
                predecessor_ids=list(node.predecessor_ids),
                successor_ids=[],
            )

        self._ids: list[int] = list(self.nodes)
        self._index: dict[int, int] = {task_id: i for i, task_id in enumerate(self._ids)}
        self._preds: list[list[int]] = []
        self._succs: list[list[int]] = [[] for _ in self._ids]

        for i, task_id in enumerate(self._ids):
            node = self.nodes[task_id]
            pred_indices = []
            for pred_id in node.predecessor_ids:
                if pred_id not in self._index:
                    msg = f"Task {task_id} depends on unknown task {pred_id}"
                    raise ValueError(msg)
                pred_indices.append(self._index[pred_id])
            self._preds.append(pred_indices)
            for p in pred_indices:
                self._succs[p].append(i)

        for i, task_id in enumerate(self._ids):
            self.nodes[task_id].successor_ids = [self._ids[s] for s in self._succs[i]]

        logger.debug(
            "dependency_graph_constructed",
            task_count=len(self._ids),
            dependency_count=self.edge_count,
        )

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._index

    def __iter__(self) -> Iterator[int]:
        return iter(self._ids)

    @property
    def ids(self) -> tuple[int, ...]:
        """Task ids in index order."""
        return tuple(self._ids)

    @property
    def edge_count(self) -> int:
        return sum(len(preds) for preds in self._preds)

    @property
    def adjacency(self) -> dict[int, list[int]]:
        """Mapping from task id to the ids it depends on."""
        return {
            task_id: [self._ids[p] for p in self._preds[i]]
            for i, task_id in enumerate(self._ids)
        }

    def index_of(self, task_id: int) -> int:
        """Translate a task id to its dense index.

        Raises:
            KeyError: If the task is not in the graph
        """
        return self._index[task_id]

    def id_at(self, index: int) -> int:
        return self._ids[index]

    def predecessor_indices(self, index: int) -> list[int]:
        return self._preds[index]

    def successor_indices(self, index: int) -> list[int]:
        return self._succs[index]

    def duration_at(self, index: int) -> int:
        return self.nodes[self._ids[index]].duration

    def predecessors(self, task_id: int) -> list[int]:
        return [self._ids[p] for p in self._preds[self._index[task_id]]]

    def successors(self, task_id: int) -> list[int]:
        return [self._ids[s] for s in self._succs[self._index[task_id]]]

    def has_dependency(self, task_id: int, depends_on_id: int) -> bool:
        if task_id not in self._index or depends_on_id not in self._index:
            return False
        return self._index[depends_on_id] in self._preds[self._index[task_id]]

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the graph.

        Returns:
            Dictionary with total_tasks, total_dependencies, root_tasks (no
            predecessors) and leaf_tasks (no successors)
        """
        return {
            "total_tasks": len(self._ids),
            "total_dependencies": self.edge_count,
            "root_tasks": sum(1 for preds in self._preds if not preds),
            "leaf_tasks": sum(1 for succs in self._succs if not succs),
        }
