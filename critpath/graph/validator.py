"""Graph validation with detailed cycle and consistency reporting.

Where the builder is lenient (it skips dangling references and only logs
mismatched successor lists), the validator collects every such problem into a
report that can be shown to an operator.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from critpath.graph.cycle_detector import iter_cycles
from critpath.graph.dependency_graph import DependencyGraph
from critpath.storage.models import TaskRecord

logger = structlog.get_logger(__name__)


@dataclass
class ValidationReport:
    """Report containing validation results for task records or a graph.

    Attributes:
        is_valid: Whether all checks passed (warnings do not fail validation)
        errors: Critical issues
        warnings: Potential issues
        cycles: Detected cycles, each as ``[a, b, ..., a]``
        missing_refs: Task ids referenced by an edge but not present
        inconsistent_links: Edges recorded on only one of their two endpoints
        self_references: Tasks with an edge to themselves
    """

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cycles: list[list[int]] = field(default_factory=list)
    missing_refs: set[int] = field(default_factory=set)
    inconsistent_links: set[tuple[int, int]] = field(default_factory=set)
    self_references: set[int] = field(default_factory=set)

    def add_error(self, message: str) -> None:
        """Add an error message and mark validation as failed."""
        self.errors.append(message)
        self.is_valid = False
        logger.error("validation_error", message=message)

    def add_warning(self, message: str) -> None:
        """Add a warning message without failing validation."""
        self.warnings.append(message)
        logger.warning("validation_warning", message=message)

    def merge(self, other: "ValidationReport") -> None:
        self.is_valid = self.is_valid and other.is_valid
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.cycles.extend(other.cycles)
        self.missing_refs |= other.missing_refs
        self.inconsistent_links |= other.inconsistent_links
        self.self_references |= other.self_references

    def summary(self) -> str:
        """Generate a human-readable summary of the validation report."""
        lines = [
            f"Validation Status: {'PASS' if self.is_valid else 'FAIL'}",
            f"Errors: {len(self.errors)}",
            f"Warnings: {len(self.warnings)}",
            f"Cycles: {len(self.cycles)}",
        ]

        if self.errors:
            lines.append("\nErrors:")
            lines.extend(f"  - {error}" for error in self.errors)

        if self.warnings:
            lines.append("\nWarnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)

        if self.cycles:
            lines.append("\nCycles Detected:")
            for i, cycle in enumerate(self.cycles, 1):
                lines.append(f"  {i}. {' -> '.join(str(t) for t in cycle)}")

        return "\n".join(lines)


class GraphValidator:
    """Validator for stored task records and built dependency graphs."""

    def validate(self, graph: DependencyGraph) -> ValidationReport:
        """Check a built graph for cycles.

        Args:
            graph: The DependencyGraph to validate
        """
        logger.info("starting_graph_validation", task_count=len(graph))

        report = ValidationReport()
        for cycle in iter_cycles(graph):
            report.cycles.append(cycle)
            report.add_error(f"Cycle detected: {' -> '.join(str(t) for t in cycle)}")

        logger.info(
            "graph_validation_complete",
            is_valid=report.is_valid,
            cycle_count=len(report.cycles),
        )
        return report

    def validate_records(self, records: Iterable[TaskRecord]) -> ValidationReport:
        """Check raw task records for problems the graph builder tolerates.

        Errors: tasks that depend on themselves.
        Warnings: references to missing tasks, edges recorded on only one end.
        """
        records = list(records)
        report = ValidationReport()

        known = {record.id for record in records}
        incoming: set[tuple[int, int]] = set()
        outgoing: set[tuple[int, int]] = set()

        for record in records:
            for dep in record.dependencies:
                if dep.depends_on_id == record.id:
                    report.self_references.add(record.id)
                    report.add_error(f"Task {record.id} depends on itself")
                if dep.depends_on_id not in known:
                    report.missing_refs.add(dep.depends_on_id)
                incoming.add((record.id, dep.depends_on_id))
            for dep in record.dependents:
                if dep.task_id not in known:
                    report.missing_refs.add(dep.task_id)
                outgoing.add((dep.task_id, record.id))

        if report.missing_refs:
            refs = ", ".join(str(t) for t in sorted(report.missing_refs))
            report.add_warning(f"Tasks referenced by dependencies but not defined: {refs}")

        one_sided = {
            edge for edge in incoming ^ outgoing if edge[0] in known and edge[1] in known
        }
        if one_sided:
            report.inconsistent_links = one_sided
            edges = ", ".join(f"{t} -> {d}" for t, d in sorted(one_sided))
            report.add_warning(f"Dependencies recorded on only one endpoint: {edges}")

        logger.info(
            "record_validation_complete",
            is_valid=report.is_valid,
            error_count=len(report.errors),
            warning_count=len(report.warnings),
        )
        return report
