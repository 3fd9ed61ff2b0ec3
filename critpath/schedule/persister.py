"""Conversion of CPM offsets to calendar dates and batch write-back."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta, tzinfo

import structlog

from critpath.graph.dependency_graph import DependencyGraph
from critpath.schedule.critical_path import CriticalPathResult
from critpath.storage.base import StoreTransaction
from critpath.storage.models import ScheduleUpdate

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ScheduleOutcome:
    """What a reschedule computed and wrote.

    Attributes:
        reference_date: Project start, midnight of the current day
        result: The CPM offsets the dates were derived from
        updates: One update per task, in topological order
    """

    reference_date: datetime
    result: CriticalPathResult
    updates: list[ScheduleUpdate] = field(default_factory=list)

    @property
    def critical_path(self) -> list[int]:
        return self.result.critical_path

    @property
    def project_duration(self) -> int:
        return self.result.project_duration


class SchedulePersister:
    """Writes derived schedule fields for every task as one batch.

    Example:
        >>> persister = SchedulePersister(tz=ZoneInfo("Europe/Berlin"))
        >>> async with store.transaction() as tx:
        ...     outcome = await persister.persist(tx, graph, result)
    """

    def __init__(
        self,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the persister.

        Args:
            tz: Timezone whose midnight marks the start of the project
            clock: Returns the current time; defaults to ``datetime.now(tz)``
        """
        self.tz = tz
        self.clock = clock or (lambda: datetime.now(self.tz))

    def reference_date(self) -> datetime:
        """Current calendar day truncated to midnight in ``tz``."""
        now = self.clock()
        now = now.replace(tzinfo=self.tz) if now.tzinfo is None else now.astimezone(self.tz)
        return datetime.combine(now.date(), time.min, tzinfo=self.tz)

    def build_updates(
        self,
        result: CriticalPathResult,
        reference_date: datetime,
    ) -> list[ScheduleUpdate]:
        return [
            ScheduleUpdate(
                task_id=task_id,
                earliest_start_date=reference_date + timedelta(days=result.earliest_start[task_id]),
                is_on_critical_path=task_id in result.critical,
            )
            for task_id in result.order
        ]

    async def persist(
        self,
        tx: StoreTransaction,
        graph: DependencyGraph,
        result: CriticalPathResult,
    ) -> ScheduleOutcome:
        """Write every task's earliest start date and critical flag.

        The updates go through a single ``write_schedule`` call inside the
        caller's transaction, so either all tasks reflect the new schedule or
        none do.
        """
        reference = self.reference_date()
        updates = self.build_updates(result, reference)
        await tx.write_schedule(updates)

        changed = sum(
            1
            for update in updates
            if graph.nodes[update.task_id].is_on_critical_path != update.is_on_critical_path
            or graph.nodes[update.task_id].earliest_start_date != update.earliest_start_date
        )
        logger.info(
            "schedule_written",
            task_count=len(updates),
            changed_count=changed,
            reference_date=reference.isoformat(),
            project_duration=result.project_duration,
        )
        return ScheduleOutcome(reference_date=reference, result=result, updates=updates)
