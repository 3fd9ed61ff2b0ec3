"""Unit tests for SchedulePersister date conversion and write-back."""

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from critpath.graph.builder import build_graph
from critpath.graph.dependency_graph import DependencyGraph, TaskNode
from critpath.schedule.critical_path import calculate_critical_path
from critpath.schedule.persister import SchedulePersister
from critpath.storage.memory import InMemoryTaskStore


def fixed_clock(moment: datetime):
    return lambda: moment


class TestReferenceDate:
    """Test project start date computation."""

    def test_truncates_to_midnight_utc(self):
        """Test the time of day is dropped."""
        persister = SchedulePersister(clock=fixed_clock(datetime(2024, 3, 5, 17, 42, tzinfo=UTC)))

        assert persister.reference_date() == datetime(2024, 3, 5, tzinfo=UTC)

    def test_uses_configured_timezone(self):
        """Test midnight is taken in the configured zone, not UTC."""
        tz = ZoneInfo("Asia/Tokyo")
        # 20:00 UTC on the 5th is already the 6th in Tokyo
        persister = SchedulePersister(tz=tz, clock=fixed_clock(datetime(2024, 3, 5, 20, 0, tzinfo=UTC)))

        assert persister.reference_date() == datetime(2024, 3, 6, tzinfo=tz)

    def test_naive_clock_interpreted_in_zone(self):
        """Test a naive clock value is read as local to the zone."""
        tz = ZoneInfo("America/New_York")
        persister = SchedulePersister(tz=tz, clock=fixed_clock(datetime(2024, 3, 5, 23, 30)))

        assert persister.reference_date() == datetime(2024, 3, 5, tzinfo=tz)

    def test_default_clock(self):
        """Test the default clock yields today's midnight."""
        reference = SchedulePersister().reference_date()

        assert reference.tzinfo is UTC
        assert (reference.hour, reference.minute, reference.second) == (0, 0, 0)


class TestPersist:
    """Test batch write-back through a transaction."""

    @pytest.fixture
    def persister(self):
        return SchedulePersister(clock=fixed_clock(datetime(2024, 1, 10, 9, 0, tzinfo=UTC)))

    @pytest.mark.asyncio
    async def test_writes_every_task(self, persister):
        """Test dates and flags are written for all tasks."""
        store = InMemoryTaskStore()
        async with store.transaction() as tx:
            a = await tx.create_task("A", duration=2)
            b = await tx.create_task("B", duration=3)
            c = await tx.create_task("C", duration=1)
            await tx.create_dependency(b.id, a.id)
            await tx.create_dependency(c.id, a.id)

            graph = build_graph(await tx.fetch_tasks())
            outcome = await persister.persist(tx, graph, calculate_critical_path(graph))

        start = datetime(2024, 1, 10, tzinfo=UTC)
        assert outcome.reference_date == start
        assert outcome.critical_path == [a.id, b.id]
        assert outcome.project_duration == 5

        records = {record.id: record for record in await store.snapshot()}
        assert records[a.id].earliest_start_date == start
        assert records[b.id].earliest_start_date == start + timedelta(days=2)
        assert records[c.id].earliest_start_date == start + timedelta(days=2)
        assert records[a.id].is_on_critical_path
        assert records[b.id].is_on_critical_path
        assert not records[c.id].is_on_critical_path

    def test_build_updates_in_topological_order(self, persister):
        """Test updates follow the order used by the passes."""
        graph = DependencyGraph(
            [
                TaskNode(id=1, title="late", duration=1, predecessor_ids=[2]),
                TaskNode(id=2, title="early", duration=1),
            ],
        )
        result = calculate_critical_path(graph)
        updates = persister.build_updates(result, persister.reference_date())

        assert [u.task_id for u in updates] == [2, 1]
        assert updates[1].earliest_start_date - updates[0].earliest_start_date == timedelta(days=1)
