"""Critical Path Method: forward and backward pass over a dependency graph.

All offsets are whole days counted from the project start, so slack is
compared with exact integer equality.
"""

from dataclasses import dataclass, field

import structlog

from critpath.errors import AlgorithmInvariantViolation
from critpath.graph.dependency_graph import DependencyGraph
from critpath.graph.topological_sort import topological_sort

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CriticalPathResult:
    """Timing of every task in a schedule.

    Attributes:
        order: Task ids in the topological order used for the passes
        earliest_start: Earliest start offset per task
        earliest_finish: Earliest finish offset per task
        latest_start: Latest start offset that does not delay the project
        latest_finish: Latest finish offset that does not delay the project
        slack: latest_start - earliest_start per task
        critical: Tasks with zero slack
        project_duration: Maximum earliest finish over all tasks
    """

    order: list[int] = field(default_factory=list)
    earliest_start: dict[int, int] = field(default_factory=dict)
    earliest_finish: dict[int, int] = field(default_factory=dict)
    latest_start: dict[int, int] = field(default_factory=dict)
    latest_finish: dict[int, int] = field(default_factory=dict)
    slack: dict[int, int] = field(default_factory=dict)
    critical: frozenset[int] = frozenset()
    project_duration: int = 0

    @property
    def critical_path(self) -> list[int]:
        """Critical tasks in topological order."""
        return [task_id for task_id in self.order if task_id in self.critical]


def calculate_critical_path(graph: DependencyGraph) -> CriticalPathResult:
    """Run the forward and backward CPM passes.

    Forward pass: a task starts when its latest-finishing predecessor
    finishes, or at 0 without predecessors. Backward pass: a task must finish
    by the earliest latest-start among its successors, or by the project
    duration without successors.

    Args:
        graph: An acyclic dependency graph

    Returns:
        CriticalPathResult with per-task offsets, slack and the critical set

    Raises:
        AlgorithmInvariantViolation: If the graph is cyclic or a task ends up
            with negative slack
    """
    order_ids = topological_sort(graph)
    order = [graph.index_of(task_id) for task_id in order_ids]
    size = len(order)

    es = [0] * size
    ef = [0] * size
    for i in order:
        es[i] = max((ef[p] for p in graph.predecessor_indices(i)), default=0)
        ef[i] = es[i] + graph.duration_at(i)

    project_duration = max(ef, default=0)

    ls = [0] * size
    lf = [0] * size
    for i in reversed(order):
        lf[i] = min((ls[s] for s in graph.successor_indices(i)), default=project_duration)
        ls[i] = lf[i] - graph.duration_at(i)

    slack = [ls[i] - es[i] for i in range(size)]
    negative = sorted(graph.id_at(i) for i in range(size) if slack[i] < 0)
    if negative:
        logger.critical("negative_slack_computed", task_ids=negative)
        msg = f"Tasks {negative} have negative slack"
        raise AlgorithmInvariantViolation(msg)

    def by_id(values: list[int]) -> dict[int, int]:
        return {graph.id_at(i): values[i] for i in range(size)}

    result = CriticalPathResult(
        order=order_ids,
        earliest_start=by_id(es),
        earliest_finish=by_id(ef),
        latest_start=by_id(ls),
        latest_finish=by_id(lf),
        slack=by_id(slack),
        critical=frozenset(graph.id_at(i) for i in range(size) if slack[i] == 0),
        project_duration=project_duration,
    )

    logger.debug(
        "critical_path_calculated",
        task_count=size,
        project_duration=project_duration,
        critical_count=len(result.critical),
    )
    return result


@dataclass(frozen=True)
class CriticalTaskInfo:
    id: int
    title: str
    duration: int
    earliest_start: int
    latest_start: int
    slack: int


@dataclass(frozen=True)
class CriticalPathInfo:
    """Read-only report of the critical chain and total project length."""

    critical_path: list[CriticalTaskInfo]
    total_duration: int

    def to_dict(self) -> dict:
        return {
            "critical_path": [vars(task) for task in self.critical_path],
            "total_duration": self.total_duration,
        }


def describe_critical_path(graph: DependencyGraph, result: CriticalPathResult) -> CriticalPathInfo:
    """Combine CPM offsets with task details for the critical tasks."""
    return CriticalPathInfo(
        critical_path=[
            CriticalTaskInfo(
                id=task_id,
                title=graph.nodes[task_id].title,
                duration=graph.nodes[task_id].duration,
                earliest_start=result.earliest_start[task_id],
                latest_start=result.latest_start[task_id],
                slack=result.slack[task_id],
            )
            for task_id in result.critical_path
        ],
        total_duration=result.project_duration,
    )
