"""Unit tests for GraphValidator class.

Tests cover:
- Cycle detection with path reporting
- Missing reference and one-sided edge detection
- Validation report generation and merging
"""

import pytest

from critpath.graph.dependency_graph import DependencyGraph, TaskNode
from critpath.graph.validator import GraphValidator, ValidationReport
from critpath.storage.models import DependencyRecord, TaskRecord


class TestValidationReport:
    """Test ValidationReport functionality."""

    def test_initialization(self):
        """Test that ValidationReport initializes correctly."""
        report = ValidationReport()

        assert report.is_valid is True
        assert report.errors == []
        assert report.warnings == []
        assert report.cycles == []
        assert report.missing_refs == set()
        assert report.inconsistent_links == set()
        assert report.self_references == set()

    def test_add_error(self):
        """Test adding errors marks validation as failed."""
        report = ValidationReport()
        report.add_error("Test error")

        assert not report.is_valid
        assert report.errors == ["Test error"]

    def test_add_warning(self):
        """Test adding warnings doesn't fail validation."""
        report = ValidationReport()
        report.add_warning("Test warning")

        assert report.is_valid
        assert report.warnings == ["Test warning"]

    def test_merge(self):
        """Test merging combines findings and validity."""
        first = ValidationReport()
        first.add_warning("w")
        second = ValidationReport()
        second.add_error("e")
        second.missing_refs.add(7)
        second.self_references.add(3)

        first.merge(second)

        assert not first.is_valid
        assert first.errors == ["e"]
        assert first.warnings == ["w"]
        assert first.missing_refs == {7}
        assert first.self_references == {3}

    def test_summary_empty_report(self):
        """Test summary generation for empty report."""
        summary = ValidationReport().summary()

        assert "Validation Status: PASS" in summary
        assert "Errors: 0" in summary
        assert "Warnings: 0" in summary

    def test_summary_with_cycles(self):
        """Test summary generation with cycle information."""
        report = ValidationReport()
        report.cycles = [[1, 2, 1]]
        summary = report.summary()

        assert "Cycles: 1" in summary
        assert "1 -> 2 -> 1" in summary


class TestGraphValidator:
    """Test GraphValidator checks."""

    @pytest.fixture
    def validator(self):
        return GraphValidator()

    def test_acyclic_graph_passes(self, validator):
        """Test a DAG validates cleanly."""
        graph = DependencyGraph(
            [
                TaskNode(id=1, title="a", duration=1),
                TaskNode(id=2, title="b", duration=1, predecessor_ids=[1]),
            ],
        )

        report = validator.validate(graph)

        assert report.is_valid
        assert report.cycles == []

    def test_cycle_reported(self, validator):
        """Test a stored cycle is reported with its path."""
        graph = DependencyGraph(
            [
                TaskNode(id=1, title="a", duration=1, predecessor_ids=[2]),
                TaskNode(id=2, title="b", duration=1, predecessor_ids=[1]),
            ],
        )

        report = validator.validate(graph)

        assert not report.is_valid
        assert len(report.cycles) == 1
        assert report.cycles[0][0] == report.cycles[0][-1]
        assert "Cycle detected" in report.errors[0]

    def test_records_clean(self, validator):
        """Test consistent records produce no findings."""
        edge = DependencyRecord(task_id=2, depends_on_id=1)
        records = [
            TaskRecord(id=1, dependents=[edge]),
            TaskRecord(id=2, dependencies=[edge]),
        ]

        report = validator.validate_records(records)

        assert report.is_valid
        assert report.warnings == []

    def test_self_reference(self, validator):
        """Test a task depending on itself is an error."""
        edge = DependencyRecord(task_id=1, depends_on_id=1)
        report = validator.validate_records([TaskRecord(id=1, dependencies=[edge], dependents=[edge])])

        assert not report.is_valid
        assert any("depends on itself" in e for e in report.errors)
        assert report.self_references == {1}

    def test_missing_reference_warns(self, validator):
        """Test an edge to a missing task is a warning."""
        edge = DependencyRecord(task_id=1, depends_on_id=99)
        report = validator.validate_records([TaskRecord(id=1, dependencies=[edge])])

        assert report.is_valid
        assert report.missing_refs == {99}
        assert "99" in report.warnings[0]

    def test_one_sided_edge_warns(self, validator):
        """Test an edge missing from its prerequisite's dependents list."""
        edge = DependencyRecord(task_id=2, depends_on_id=1)
        records = [TaskRecord(id=1), TaskRecord(id=2, dependencies=[edge])]

        report = validator.validate_records(records)

        assert report.is_valid
        assert report.inconsistent_links == {(2, 1)}
