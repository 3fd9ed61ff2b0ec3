"""Dependency mutations and rescheduling as single failure units.

Every structural change follows the same sequence inside one storage
transaction: re-read the graph, validate the request, run cycle detection,
write the change, recompute the whole schedule and write it back. If any step
fails the transaction is rolled back, so callers never observe an edge without
the schedule that accounts for it.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from critpath.errors import CycleError, SchedulingError, StorageError, ValidationError
from critpath.graph.builder import build_graph
from critpath.graph.cycle_detector import find_cycle, would_create_cycle
from critpath.graph.dependency_graph import DependencyGraph
from critpath.log_config import bind_context, get_logger, unbind_context
from critpath.schedule.critical_path import (
    CriticalPathInfo,
    calculate_critical_path,
    describe_critical_path,
)
from critpath.schedule.persister import ScheduleOutcome, SchedulePersister
from critpath.storage.base import StoreTransaction, TaskStore
from critpath.storage.models import DependencyRecord, TaskRecord

logger = get_logger(__name__)

STATUS_OK = "ok"
STATUS_REJECTED = "rejected"


@dataclass(frozen=True)
class DependencyCheck:
    """Outcome of a what-if check for one candidate edge.

    Attributes:
        task_id: The would-be dependent task
        depends_on_id: The would-be prerequisite
        status: ``ok`` or ``rejected``
        reason: Why the edge was rejected
        cycle: The cycle the edge would close, if that is the reason
    """

    task_id: int
    depends_on_id: int
    status: str
    reason: str | None = None
    cycle: list[int] | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


class DependencyMutationService:
    """Adds and removes dependencies and keeps the stored schedule current.

    Mutations are serialized with an asyncio lock and each one runs in its own
    storage transaction, so two edges that are individually safe can never be
    committed concurrently in a way that jointly forms a cycle.

    Example:
        >>> service = DependencyMutationService(InMemoryTaskStore())
        >>> outcome = await service.add_dependency(2, 1)
        >>> outcome.critical_path
        [1, 2]

    Attributes:
        store: The storage collaborator
        persister: Converts offsets to dates and writes them back
        lock: Serializes structural mutations and reschedules
    """

    would_create_cycle = staticmethod(would_create_cycle)

    def __init__(self, store: TaskStore, persister: SchedulePersister | None = None):
        self.store = store
        self.persister = persister or SchedulePersister()
        self.lock = asyncio.Lock()

        logger.info("dependency_mutation_service_initialized", store=type(store).__name__)

    @asynccontextmanager
    async def _transaction(
        self,
        operation: str,
        exclusive: bool = True,
    ) -> AsyncIterator[StoreTransaction]:
        """Open a store transaction for ``operation``.

        Scheduling errors propagate unchanged; anything else raised while the
        transaction is open is reported as a StorageError. Either way the
        store rolls the transaction back.
        """
        if exclusive:
            await self.lock.acquire()
        bind_context(operation=operation)
        try:
            async with self.store.transaction() as tx:
                yield tx
        except SchedulingError:
            raise
        except Exception as e:
            logger.exception("storage_operation_failed", error=str(e))
            msg = f"Storage failure during {operation}: {e}"
            raise StorageError(msg) from e
        finally:
            if exclusive:
                self.lock.release()
            unbind_context("operation")

    async def _load_graph(
        self,
        tx: StoreTransaction,
        include_speculative: bool = False,
    ) -> DependencyGraph:
        return build_graph(await tx.fetch_tasks(), include_speculative=include_speculative)

    async def _reschedule(self, tx: StoreTransaction) -> ScheduleOutcome:
        graph = await self._load_graph(tx)
        result = calculate_critical_path(graph)
        return await self.persister.persist(tx, graph, result)

    @staticmethod
    def _check_edge(
        graph: DependencyGraph,
        existing: set[tuple[int, int]],
        task_id: int,
        depends_on_id: int,
    ) -> None:
        """Raise ValidationError for self edges, unknown tasks and duplicates."""
        if task_id == depends_on_id:
            msg = "A task cannot depend on itself"
            raise ValidationError(msg, task_id=task_id)
        for ref in (task_id, depends_on_id):
            if ref not in graph:
                msg = f"Task {ref} does not exist"
                raise ValidationError(msg, task_id=ref)
        if (task_id, depends_on_id) in existing:
            msg = "This dependency already exists"
            raise ValidationError(msg, task_id=task_id)

    async def build_graph(self, include_speculative: bool = False) -> DependencyGraph:
        """Build a fresh graph snapshot from storage."""
        async with self._transaction("build_graph", exclusive=False) as tx:
            return await self._load_graph(tx, include_speculative=include_speculative)

    async def list_tasks(self) -> list[TaskRecord]:
        """Read every task record, drafts included, with its edges attached."""
        async with self._transaction("list_tasks", exclusive=False) as tx:
            return await tx.fetch_tasks()

    async def add_dependency(self, task_id: int, depends_on_id: int) -> ScheduleOutcome:
        """Make ``task_id`` depend on ``depends_on_id`` and reschedule.

        Raises:
            ValidationError: Self edge, unknown task, or existing edge
            CycleError: The edge would close a cycle; nothing is written
            StorageError: Storage failed; nothing is written
        """
        if task_id == depends_on_id:
            msg = "A task cannot depend on itself"
            raise ValidationError(msg, task_id=task_id)

        logger.info("adding_dependency", task_id=task_id, depends_on_id=depends_on_id)

        async with self._transaction("add_dependency") as tx:
            graph = await self._load_graph(tx)
            existing = {dep.key for dep in await tx.fetch_dependencies()}
            self._check_edge(graph, existing, task_id, depends_on_id)

            cycle = find_cycle(graph, [(task_id, depends_on_id)])
            if cycle is not None:
                logger.warning(
                    "dependency_rejected_cycle",
                    task_id=task_id,
                    depends_on_id=depends_on_id,
                    cycle=cycle,
                )
                raise CycleError(cycle)

            await tx.create_dependency(task_id, depends_on_id)
            outcome = await self._reschedule(tx)

        logger.info(
            "dependency_added",
            task_id=task_id,
            depends_on_id=depends_on_id,
            project_duration=outcome.project_duration,
        )
        return outcome

    async def remove_dependency(self, task_id: int, depends_on_id: int) -> ScheduleOutcome:
        """Delete the edge if present and reschedule. Removing a missing edge is not an error."""
        async with self._transaction("remove_dependency") as tx:
            removed = await tx.delete_dependency(task_id, depends_on_id)
            outcome = await self._reschedule(tx)

        logger.info(
            "dependency_removed" if removed else "dependency_remove_noop",
            task_id=task_id,
            depends_on_id=depends_on_id,
            project_duration=outcome.project_duration,
        )
        return outcome

    async def recompute_schedule(self) -> ScheduleOutcome:
        """Recompute and write the schedule for every committed task.

        Idempotent: on an unchanged graph (and the same calendar day) it
        writes identical values.
        """
        async with self._transaction("recompute_schedule") as tx:
            outcome = await self._reschedule(tx)

        logger.info(
            "schedule_recomputed",
            task_count=len(outcome.updates),
            project_duration=outcome.project_duration,
            critical_path=outcome.critical_path,
        )
        return outcome

    async def update_task_duration(self, task_id: int, duration: int) -> ScheduleOutcome:
        """Change a task's duration and reschedule.

        Raises:
            ValidationError: Duration below one day or unknown task
        """
        self._check_duration(duration, task_id=task_id)

        async with self._transaction("update_task_duration") as tx:
            await self._require_task(tx, task_id)
            await tx.update_task_duration(task_id, duration)
            outcome = await self._reschedule(tx)

        logger.info("task_duration_updated", task_id=task_id, duration=duration)
        return outcome

    async def add_task(
        self,
        title: str,
        duration: int = 1,
        due_date: datetime | None = None,
    ) -> tuple[TaskRecord, ScheduleOutcome]:
        """Create a committed task and reschedule.

        A new task has no edges, so it starts on day zero and is critical only
        if it is at least as long as the current project.

        Returns:
            The stored task (with its assigned id) and the new schedule

        Raises:
            ValidationError: Duration below one day
        """
        self._check_duration(duration)

        async with self._transaction("add_task") as tx:
            task = await tx.create_task(title, duration, due_date=due_date)
            outcome = await self._reschedule(tx)

        logger.info(
            "task_added",
            task_id=task.id,
            duration=duration,
            project_duration=outcome.project_duration,
        )
        return task, outcome

    async def remove_task(self, task_id: int) -> ScheduleOutcome:
        """Delete a task together with every edge touching it, then reschedule.

        Raises:
            ValidationError: Unknown task
        """
        async with self._transaction("remove_task") as tx:
            record = await self._require_task(tx, task_id)
            await tx.delete_task(task_id)
            outcome = await self._reschedule(tx)

        logger.info(
            "task_removed",
            task_id=task_id,
            edges_removed=len(record.dependencies) + len(record.dependents),
            project_duration=outcome.project_duration,
        )
        return outcome

    @staticmethod
    def _check_duration(duration: int, task_id: int | None = None) -> None:
        if isinstance(duration, bool) or not isinstance(duration, int) or duration < 1:
            msg = f"Duration must be a positive whole number of days, got {duration!r}"
            raise ValidationError(msg, task_id=task_id)

    @staticmethod
    async def _require_task(tx: StoreTransaction, task_id: int) -> TaskRecord:
        for record in await tx.fetch_tasks():
            if record.id == task_id:
                return record
        msg = f"Task {task_id} does not exist"
        raise ValidationError(msg, task_id=task_id)

    async def preview_dependencies(
        self,
        edges: Iterable[tuple[int, int]],
    ) -> list[DependencyCheck]:
        """Evaluate a batch of candidate edges without writing anything.

        Each candidate is checked against the speculative graph (drafts
        included) plus every earlier candidate in the batch that was accepted,
        so edges that are only cyclic together are caught.

        Args:
            edges: ``(task_id, depends_on_id)`` pairs in evaluation order
        """
        edges = list(edges)
        async with self._transaction("preview_dependencies", exclusive=False) as tx:
            graph = await self._load_graph(tx, include_speculative=True)
            existing = {dep.key for dep in await tx.fetch_dependencies()}

        accepted: list[tuple[int, int]] = []
        checks: list[DependencyCheck] = []
        for task_id, depends_on_id in edges:
            try:
                self._check_edge(graph, existing | set(accepted), task_id, depends_on_id)
            except ValidationError as e:
                checks.append(
                    DependencyCheck(task_id, depends_on_id, STATUS_REJECTED, reason=e.message),
                )
                continue

            cycle = find_cycle(graph, [*accepted, (task_id, depends_on_id)])
            if cycle is not None:
                checks.append(
                    DependencyCheck(
                        task_id,
                        depends_on_id,
                        STATUS_REJECTED,
                        reason=CycleError(cycle).message,
                        cycle=cycle,
                    ),
                )
                continue

            accepted.append((task_id, depends_on_id))
            checks.append(DependencyCheck(task_id, depends_on_id, STATUS_OK))

        logger.info(
            "dependency_batch_previewed",
            candidate_count=len(edges),
            accepted_count=len(accepted),
        )
        return checks

    async def stage_dependency(self, task_id: int, depends_on_id: int) -> DependencyRecord:
        """Record a draft edge after checking it against the speculative graph.

        Drafts do not affect the stored schedule until accepted.

        Raises:
            ValidationError: Self edge, unknown task, or existing edge
            CycleError: The edge would close a cycle with committed or draft edges
        """
        async with self._transaction("stage_dependency") as tx:
            graph = await self._load_graph(tx, include_speculative=True)
            existing = {dep.key for dep in await tx.fetch_dependencies()}
            self._check_edge(graph, existing, task_id, depends_on_id)

            cycle = find_cycle(graph, [(task_id, depends_on_id)])
            if cycle is not None:
                raise CycleError(cycle)

            record = await tx.create_dependency(task_id, depends_on_id, is_draft=True)

        logger.info("draft_dependency_staged", task_id=task_id, depends_on_id=depends_on_id)
        return record

    async def accept_dependency(self, task_id: int, depends_on_id: int) -> ScheduleOutcome:
        """Commit a draft edge and reschedule.

        Cycle detection is re-run against the committed graph because other
        drafts the edge was checked alongside may since have been rejected or
        committed differently.

        Raises:
            ValidationError: No such draft edge, or an endpoint is still a draft task
            CycleError: Committing the edge would close a cycle
        """
        async with self._transaction("accept_dependency") as tx:
            draft = await self._require_draft(tx, task_id, depends_on_id)

            graph = await self._load_graph(tx)
            for ref in (draft.task_id, draft.depends_on_id):
                if ref not in graph:
                    msg = f"Task {ref} is not committed"
                    raise ValidationError(msg, task_id=ref)

            cycle = find_cycle(graph, [draft.key])
            if cycle is not None:
                raise CycleError(cycle)

            await tx.set_dependency_draft(task_id, depends_on_id, is_draft=False)
            outcome = await self._reschedule(tx)

        logger.info("draft_dependency_accepted", task_id=task_id, depends_on_id=depends_on_id)
        return outcome

    async def reject_dependency(self, task_id: int, depends_on_id: int) -> None:
        """Discard a draft edge.

        Raises:
            ValidationError: No such draft edge
        """
        async with self._transaction("reject_dependency") as tx:
            await self._require_draft(tx, task_id, depends_on_id)
            await tx.delete_dependency(task_id, depends_on_id)

        logger.info("draft_dependency_rejected", task_id=task_id, depends_on_id=depends_on_id)

    async def _require_draft(
        self,
        tx: StoreTransaction,
        task_id: int,
        depends_on_id: int,
    ) -> DependencyRecord:
        for dep in await tx.fetch_dependencies():
            if dep.key == (task_id, depends_on_id):
                if not dep.is_draft:
                    msg = f"Dependency {task_id} -> {depends_on_id} is already committed"
                    raise ValidationError(msg, task_id=task_id)
                return dep

        msg = f"No draft dependency {task_id} -> {depends_on_id}"
        raise ValidationError(msg, task_id=task_id)

    async def get_critical_path_info(self) -> CriticalPathInfo:
        """Compute the critical chain of the committed graph without writing."""
        async with self._transaction("get_critical_path_info", exclusive=False) as tx:
            graph = await self._load_graph(tx)
        return describe_critical_path(graph, calculate_critical_path(graph))
