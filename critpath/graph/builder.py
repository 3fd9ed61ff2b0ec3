"""Graph construction from storage records."""

from collections.abc import Iterable

import structlog

from critpath.errors import ValidationError
from critpath.graph.dependency_graph import DependencyGraph, TaskNode
from critpath.storage.models import TaskRecord

logger = structlog.get_logger(__name__)


def build_graph(
    records: Iterable[TaskRecord],
    include_speculative: bool = False,
) -> DependencyGraph:
    """Build a dependency graph from task records.

    Draft tasks and draft edges are left out unless ``include_speculative`` is
    set; when it is, they take part in the graph exactly like committed ones.
    Records are processed in id order so the same input always produces the
    same index assignment.

    Args:
        records: Task records as returned by the storage collaborator
        include_speculative: Include draft tasks and draft edges

    Returns:
        A fully populated DependencyGraph

    Raises:
        ValidationError: If a record lists itself as a predecessor
    """
    selected = sorted(
        (r for r in records if include_speculative or not r.is_draft),
        key=lambda r: r.id,
    )
    known_ids = {r.id for r in selected}

    nodes: list[TaskNode] = []
    skipped = 0
    for record in selected:
        predecessor_ids: list[int] = []
        for dep in record.dependencies:
            if dep.is_draft and not include_speculative:
                continue
            if dep.depends_on_id == record.id:
                msg = f"Task {record.id} lists itself as a predecessor"
                logger.error("self_dependency_in_records", task_id=record.id)
                raise ValidationError(msg, task_id=record.id)
            if dep.depends_on_id not in known_ids:
                skipped += 1
                logger.warning(
                    "dependency_on_unknown_task_skipped",
                    task_id=record.id,
                    depends_on_id=dep.depends_on_id,
                )
                continue
            if dep.depends_on_id not in predecessor_ids:
                predecessor_ids.append(dep.depends_on_id)

        nodes.append(
            TaskNode(
                id=record.id,
                title=record.title,
                duration=record.duration,
                due_date=record.due_date,
                predecessor_ids=predecessor_ids,
                is_draft=record.is_draft,
                earliest_start_date=record.earliest_start_date,
                is_on_critical_path=record.is_on_critical_path,
            ),
        )

    graph = DependencyGraph(nodes)

    # Successor lists are derived from predecessor lists; the stored ones are
    # only cross-checked.
    for record in selected:
        stored = {
            dep.task_id
            for dep in record.dependents
            if dep.task_id in known_ids and (include_speculative or not dep.is_draft)
        }
        derived = set(graph.successors(record.id))
        if stored != derived:
            logger.warning(
                "successor_list_mismatch",
                task_id=record.id,
                stored=sorted(stored),
                derived=sorted(derived),
            )

    logger.debug(
        "graph_built_from_records",
        task_count=len(graph),
        dependency_count=graph.edge_count,
        include_speculative=include_speculative,
        skipped_dependencies=skipped,
    )
    return graph
