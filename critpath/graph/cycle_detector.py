"""Cycle detection for proposed dependency edges.

Both functions are pure: candidate edges are overlaid on the graph logically
and the graph itself is never touched, so callers can evaluate a whole batch
of tentative edges before committing any of them.
"""

from collections.abc import Iterable, Iterator

import structlog

from critpath.graph.dependency_graph import DependencyGraph

logger = structlog.get_logger(__name__)

UNVISITED = 0
ON_STACK = 1
EXPLORED = 2


def iter_cycles(
    graph: DependencyGraph,
    extra_edges: Iterable[tuple[int, int]] = (),
) -> Iterator[list[int]]:
    """Yield at most one cycle per depth-first search root.

    Runs an iterative depth-first search from every unvisited node, keeping a
    per-index state of unvisited / on stack / explored. Reaching a node that
    is still on the stack closes a cycle. Every node and edge is visited at
    most once overall.

    Args:
        graph: The committed (or speculative) dependency graph
        extra_edges: ``(task_id, depends_on_id)`` pairs to overlay. Ids not in
            the graph are treated as isolated nodes.

    Yields:
        Cycles as task ids ``[a, b, ..., a]`` where each task depends on the
        next one.
    """
    size = len(graph)
    outside: dict[int, int] = {}

    def index(task_id: int) -> int:
        if task_id in graph:
            return graph.index_of(task_id)
        if task_id not in outside:
            outside[task_id] = size + len(outside)
        return outside[task_id]

    overlay: dict[int, list[int]] = {}
    for task_id, depends_on_id in extra_edges:
        overlay.setdefault(index(task_id), []).append(index(depends_on_id))

    id_of = [*graph.ids, *outside]
    total = len(id_of)

    def neighbours(i: int) -> Iterator[int]:
        if i < size:
            yield from graph.predecessor_indices(i)
        yield from overlay.get(i, ())

    state = bytearray(total)
    for root in range(total):
        if state[root] != UNVISITED:
            continue

        state[root] = ON_STACK
        stack: list[tuple[int, Iterator[int]]] = [(root, neighbours(root))]
        while stack:
            node, pending = stack[-1]
            for nxt in pending:
                if state[nxt] == ON_STACK:
                    start = next(k for k, (n, _) in enumerate(stack) if n == nxt)
                    yield [id_of[n] for n, _ in stack[start:]] + [id_of[nxt]]
                    for n, _ in stack:
                        state[n] = EXPLORED
                    stack.clear()
                    break
                if state[nxt] == UNVISITED:
                    state[nxt] = ON_STACK
                    stack.append((nxt, neighbours(nxt)))
                    break
            else:
                state[node] = EXPLORED
                stack.pop()


def find_cycle(
    graph: DependencyGraph,
    extra_edges: Iterable[tuple[int, int]] = (),
) -> list[int] | None:
    """Find a cycle in ``graph`` extended with ``extra_edges``.

    Returns:
        The first cycle found as ``[a, b, ..., a]``, or None if the extended
        graph is acyclic.
    """
    return next(iter_cycles(graph, extra_edges), None)


def would_create_cycle(graph: DependencyGraph, from_id: int, to_id: int) -> bool:
    """Check whether adding ``from_id -> to_id`` (from depends on to) makes a cycle.

    Example:
        >>> graph = build_graph(records)  # 1 depends on 2, 2 depends on 3
        >>> would_create_cycle(graph, 3, 1)
        True
        >>> would_create_cycle(graph, 1, 3)
        False
    """
    if from_id == to_id:
        return True

    cycle = find_cycle(graph, [(from_id, to_id)])
    if cycle is not None:
        logger.debug(
            "candidate_dependency_creates_cycle",
            task_id=from_id,
            depends_on_id=to_id,
            cycle=cycle,
        )
    return cycle is not None
