"""Records exchanged with the storage collaborator.

Durations are validated here, at the boundary, so nothing downstream ever sees
a zero or negative duration.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class DependencyRecord(BaseModel):
    """A stored finish-to-start edge: ``task_id`` depends on ``depends_on_id``.

    Attributes:
        task_id: The dependent task
        depends_on_id: The prerequisite task
        is_draft: Speculative edge that has not been accepted yet
    """

    task_id: int
    depends_on_id: int
    is_draft: bool = False

    @property
    def key(self) -> tuple[int, int]:
        return (self.task_id, self.depends_on_id)


class TaskRecord(BaseModel):
    """A stored task along with the edges touching it.

    Attributes:
        id: Unique task id
        title: Display title, not used by scheduling
        duration: Whole days, at least one
        due_date: Externally set due date, informational only
        is_draft: Speculative task that has not been accepted yet
        earliest_start_date: Derived by the last reschedule
        is_on_critical_path: Derived by the last reschedule
        dependencies: Edges where this task is the dependent
        dependents: Edges where this task is the prerequisite
    """

    id: int
    title: str = ""
    duration: int = Field(default=1, gt=0)
    due_date: datetime | None = None
    is_draft: bool = False
    earliest_start_date: datetime | None = None
    is_on_critical_path: bool = False
    dependencies: list[DependencyRecord] = Field(default_factory=list)
    dependents: list[DependencyRecord] = Field(default_factory=list)

    @property
    def predecessor_ids(self) -> list[int]:
        return [dep.depends_on_id for dep in self.dependencies]

    @property
    def successor_ids(self) -> list[int]:
        return [dep.task_id for dep in self.dependents]


class ScheduleUpdate(BaseModel):
    """Derived schedule fields for one task, written back as part of a batch."""

    task_id: int
    earliest_start_date: datetime
    is_on_critical_path: bool

    model_config = {"frozen": True}
