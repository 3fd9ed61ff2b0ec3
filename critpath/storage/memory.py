"""In-memory reference implementation of the storage collaborator.

Each transaction holds the store lock for its whole duration, which gives
serializable isolation, and works on a private copy of the state. The copy
replaces the committed state only when the transaction block exits normally,
so a failure half-way through a batch leaves the previous state untouched.
"""

import asyncio
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from critpath.errors import StorageError
from critpath.storage.models import DependencyRecord, ScheduleUpdate, TaskRecord

logger = structlog.get_logger(__name__)


@dataclass
class StoreState:
    """Rows held by a store: bare task rows plus the edge table."""

    tasks: dict[int, TaskRecord] = field(default_factory=dict)
    dependencies: dict[tuple[int, int], DependencyRecord] = field(default_factory=dict)
    next_task_id: int = 1

    def copy(self) -> "StoreState":
        return StoreState(
            tasks={task_id: task.model_copy(deep=True) for task_id, task in self.tasks.items()},
            dependencies={
                key: dep.model_copy() for key, dep in self.dependencies.items()
            },
            next_task_id=self.next_task_id,
        )


class InMemoryTransaction:
    """Operations on the working copy of a store's state."""

    def __init__(self, state: StoreState):
        self.state = state

    async def fetch_tasks(self) -> list[TaskRecord]:
        incoming: dict[int, list[DependencyRecord]] = {}
        outgoing: dict[int, list[DependencyRecord]] = {}
        for dep in self.state.dependencies.values():
            incoming.setdefault(dep.task_id, []).append(dep.model_copy())
            outgoing.setdefault(dep.depends_on_id, []).append(dep.model_copy())

        return [
            task.model_copy(
                update={
                    "dependencies": incoming.get(task_id, []),
                    "dependents": outgoing.get(task_id, []),
                },
            )
            for task_id, task in sorted(self.state.tasks.items())
        ]

    async def fetch_dependencies(self) -> list[DependencyRecord]:
        return [dep.model_copy() for _, dep in sorted(self.state.dependencies.items())]

    async def create_task(
        self,
        title: str,
        duration: int = 1,
        due_date: datetime | None = None,
        is_draft: bool = False,
    ) -> TaskRecord:
        task = TaskRecord(
            id=self.state.next_task_id,
            title=title,
            duration=duration,
            due_date=due_date,
            is_draft=is_draft,
        )
        self.state.tasks[task.id] = task
        self.state.next_task_id += 1
        return task.model_copy()

    async def delete_task(self, task_id: int) -> bool:
        if self.state.tasks.pop(task_id, None) is None:
            return False
        # Edges touching the task go with it
        for key in [k for k in self.state.dependencies if task_id in k]:
            del self.state.dependencies[key]
        return True

    async def create_dependency(
        self,
        task_id: int,
        depends_on_id: int,
        is_draft: bool = False,
    ) -> DependencyRecord:
        key = (task_id, depends_on_id)
        if key in self.state.dependencies:
            msg = f"Dependency {task_id} -> {depends_on_id} already exists"
            raise StorageError(msg)
        for ref in key:
            if ref not in self.state.tasks:
                msg = f"Task {ref} does not exist"
                raise StorageError(msg)

        dep = DependencyRecord(task_id=task_id, depends_on_id=depends_on_id, is_draft=is_draft)
        self.state.dependencies[key] = dep
        return dep.model_copy()

    async def delete_dependency(self, task_id: int, depends_on_id: int) -> bool:
        return self.state.dependencies.pop((task_id, depends_on_id), None) is not None

    async def set_dependency_draft(
        self,
        task_id: int,
        depends_on_id: int,
        is_draft: bool,
    ) -> DependencyRecord:
        key = (task_id, depends_on_id)
        if key not in self.state.dependencies:
            msg = f"Dependency {task_id} -> {depends_on_id} does not exist"
            raise StorageError(msg)
        dep = self.state.dependencies[key].model_copy(update={"is_draft": is_draft})
        self.state.dependencies[key] = dep
        return dep.model_copy()

    async def update_task_duration(self, task_id: int, duration: int) -> TaskRecord:
        task = self._require_task(task_id)
        updated = TaskRecord.model_validate({**task.model_dump(), "duration": duration})
        self.state.tasks[task_id] = updated
        return updated.model_copy()

    async def write_schedule(self, updates: Sequence[ScheduleUpdate]) -> None:
        for update in updates:
            task = self._require_task(update.task_id)
            self.state.tasks[update.task_id] = task.model_copy(
                update={
                    "earliest_start_date": update.earliest_start_date,
                    "is_on_critical_path": update.is_on_critical_path,
                },
            )

    def _require_task(self, task_id: int) -> TaskRecord:
        try:
            return self.state.tasks[task_id]
        except KeyError:
            msg = f"Task {task_id} does not exist"
            raise StorageError(msg) from None


class InMemoryTaskStore:
    """Task store kept entirely in process memory.

    Transactions are not re-entrant: opening a second transaction from inside
    one on the same store deadlocks.

    Example:
        >>> store = InMemoryTaskStore()
        >>> async with store.transaction() as tx:
        ...     a = await tx.create_task("Design", duration=2)
        ...     b = await tx.create_task("Build", duration=3)
        ...     await tx.create_dependency(b.id, a.id)
    """

    transaction_class: type[InMemoryTransaction] = InMemoryTransaction

    def __init__(self, state: StoreState | None = None):
        self._state = state or StoreState()
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryTransaction]:
        async with self._lock:
            working = self._state.copy()
            try:
                yield self.transaction_class(working)
            except BaseException as e:
                logger.warning(
                    "store_transaction_rolled_back",
                    store=type(self).__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            await self._commit(working)
            self._state = working
            logger.debug(
                "store_transaction_committed",
                store=type(self).__name__,
                task_count=len(working.tasks),
                dependency_count=len(working.dependencies),
            )

    async def _commit(self, state: StoreState) -> None:
        """Persist ``state`` before it becomes visible; raise to abort."""

    async def add_task(
        self,
        title: str,
        duration: int = 1,
        due_date: datetime | None = None,
        is_draft: bool = False,
    ) -> TaskRecord:
        """Create a task in its own transaction."""
        async with self.transaction() as tx:
            return await tx.create_task(title, duration, due_date=due_date, is_draft=is_draft)

    async def snapshot(self) -> list[TaskRecord]:
        """Read every task record in its own transaction."""
        async with self.transaction() as tx:
            return await tx.fetch_tasks()
