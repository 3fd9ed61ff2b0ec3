"""Protocol definitions for the storage collaborator.

The scheduling core never talks to a database directly. It opens a
transaction, reads the current task and edge records, and writes edges and
derived schedule fields back through the methods below. Whatever happens inside
``transaction()`` is either committed as a whole or not at all.
"""

from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from datetime import datetime
from typing import Protocol

from critpath.storage.models import DependencyRecord, ScheduleUpdate, TaskRecord


class StoreTransaction(Protocol):
    """Operations available inside a storage transaction."""

    async def fetch_tasks(self) -> list[TaskRecord]:
        """Return every task record, each with its incoming and outgoing edges."""
        ...

    async def fetch_dependencies(self) -> list[DependencyRecord]:
        """Return every stored edge, committed and draft."""
        ...

    async def create_task(
        self,
        title: str,
        duration: int = 1,
        due_date: datetime | None = None,
        is_draft: bool = False,
    ) -> TaskRecord:
        """Insert a new task and return it with its assigned id."""
        ...

    async def delete_task(self, task_id: int) -> bool:
        """Delete a task and every edge touching it; return False when it did not exist."""
        ...

    async def create_dependency(
        self,
        task_id: int,
        depends_on_id: int,
        is_draft: bool = False,
    ) -> DependencyRecord:
        """Insert a new edge.

        Raises:
            StorageError: If the edge already exists or references a missing task
        """
        ...

    async def delete_dependency(self, task_id: int, depends_on_id: int) -> bool:
        """Delete an edge; return False when it did not exist."""
        ...

    async def set_dependency_draft(
        self,
        task_id: int,
        depends_on_id: int,
        is_draft: bool,
    ) -> DependencyRecord:
        """Flip the draft flag on an existing edge."""
        ...

    async def update_task_duration(self, task_id: int, duration: int) -> TaskRecord:
        """Change a task's duration."""
        ...

    async def write_schedule(self, updates: Sequence[ScheduleUpdate]) -> None:
        """Write derived schedule fields for a batch of tasks."""
        ...


class TaskStore(Protocol):
    """Authoritative source of tasks and dependencies."""

    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """Open a serializable transaction, rolled back if the block raises."""
        ...
