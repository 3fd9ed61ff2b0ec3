#!/usr/bin/env python3
"""Main Entry Point and CLI Integration.

Command-line front end for the critical-path scheduler. It loads
configuration, opens the configured task store, runs one operation through
the DependencyMutationService and prints the result as JSON on stdout. Logs
go to stderr.
"""

import argparse
import asyncio
import json
import sys
import uuid
from datetime import datetime
from typing import Any

from critpath.config import CritpathConfig, load_config
from critpath.errors import CycleError, SchedulingError, ValidationError
from critpath.graph.builder import build_graph
from critpath.graph.validator import GraphValidator
from critpath.log_config import bind_correlation_id, clear_context, configure_logging, get_logger
from critpath.schedule.persister import ScheduleOutcome, SchedulePersister
from critpath.service import DependencyMutationService
from critpath.storage import InMemoryTaskStore, JsonFileTaskStore, TaskStore

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_REJECTED = 2


def open_store(config: CritpathConfig) -> TaskStore:
    """Open the task store named by the configuration."""
    if config.storage.path is None:
        logger.warning(
            "using_in_memory_store",
            message="No storage.path configured; changes will not be persisted",
        )
        return InMemoryTaskStore()
    return JsonFileTaskStore(config.storage.path)


def outcome_to_dict(outcome: ScheduleOutcome) -> dict[str, Any]:
    return {
        "reference_date": outcome.reference_date.isoformat(),
        "project_duration": outcome.project_duration,
        "critical_path": outcome.critical_path,
        "tasks": [
            {
                "id": update.task_id,
                "earliest_start_date": update.earliest_start_date.isoformat(),
                "is_on_critical_path": update.is_on_critical_path,
                "slack": outcome.result.slack[update.task_id],
            }
            for update in outcome.updates
        ],
    }


def parse_edge(value: str) -> tuple[int, int]:
    """Parse ``TASK:DEPENDS_ON`` into a pair of ids."""
    try:
        task_id, depends_on_id = value.split(":")
        return int(task_id), int(depends_on_id)
    except ValueError as e:
        msg = f"Expected TASK:DEPENDS_ON, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from e


def parse_due_date(value: str) -> datetime:
    """Parse an ISO 8601 date or datetime."""
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        msg = f"Expected an ISO 8601 date, got {value!r}"
        raise argparse.ArgumentTypeError(msg) from e


async def run_command(args: argparse.Namespace, service: DependencyMutationService) -> tuple[int, Any]:
    """Dispatch one CLI command; return the exit code and the JSON payload."""
    if args.command == "schedule":
        return EXIT_OK, outcome_to_dict(await service.recompute_schedule())

    if args.command == "add":
        return EXIT_OK, outcome_to_dict(await service.add_dependency(args.task, args.depends_on))

    if args.command == "remove":
        return EXIT_OK, outcome_to_dict(await service.remove_dependency(args.task, args.depends_on))

    if args.command == "duration":
        return EXIT_OK, outcome_to_dict(await service.update_task_duration(args.task, args.days))

    if args.command == "critical-path":
        return EXIT_OK, (await service.get_critical_path_info()).to_dict()

    if args.command == "preview":
        checks = await service.preview_dependencies(args.edges)
        payload = [
            {
                "task_id": check.task_id,
                "depends_on_id": check.depends_on_id,
                "status": check.status,
                "reason": check.reason,
                "cycle": check.cycle,
            }
            for check in checks
        ]
        code = EXIT_OK if all(check.ok for check in checks) else EXIT_REJECTED
        return code, payload

    if args.command == "task":
        if args.task_command == "add":
            task, outcome = await service.add_task(args.title, args.duration, due_date=args.due)
            task_fields = task.model_dump(
                mode="json",
                exclude={"dependencies", "dependents", "earliest_start_date", "is_on_critical_path"},
            )
            return EXIT_OK, {"task": task_fields, "schedule": outcome_to_dict(outcome)}
        return EXIT_OK, outcome_to_dict(await service.remove_task(args.task))

    if args.command == "validate":
        validator = GraphValidator()
        records = await service.list_tasks()
        report = validator.validate_records(records)
        # The graph cannot be built while a task lists itself as a predecessor
        if not report.self_references:
            report.merge(validator.validate(build_graph(records, include_speculative=True)))
        payload = {
            "is_valid": report.is_valid,
            "errors": report.errors,
            "warnings": report.warnings,
            "summary": report.summary(),
        }
        return (EXIT_OK if report.is_valid else EXIT_FAILURE), payload

    msg = f"Unknown command: {args.command}"
    raise ValueError(msg)


async def main_async(args: argparse.Namespace) -> int:
    """Main async entry point.

    Returns:
        Exit code (0 success, 1 failure, 2 request rejected)
    """
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        configure_logging(args.log_level or "INFO", stream=sys.stderr)
        logger.exception("configuration_error", error=str(e))
        return EXIT_FAILURE

    configure_logging(args.log_level or config.logging_level, json_logs=config.json_logs, stream=sys.stderr)
    bind_correlation_id(uuid.uuid4().hex)

    try:
        store = open_store(config)
        service = DependencyMutationService(
            store,
            SchedulePersister(tz=config.schedule.tzinfo),
        )
        exit_code, payload = await run_command(args, service)
    except (ValidationError, CycleError) as e:
        logger.warning("request_rejected", command=args.command, error=e.message)
        payload = {"error": e.message}
        if isinstance(e, CycleError):
            payload["cycle"] = e.path
        exit_code = EXIT_REJECTED
    except SchedulingError as e:
        logger.exception("operation_failed", command=args.command, error=e.message)
        payload = {"error": "Operation failed"}
        exit_code = EXIT_FAILURE
    finally:
        clear_context()

    print(json.dumps(payload, indent=2))
    return exit_code


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Critical-path scheduler for tasks with finish-to-start dependencies",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Recompute and store the schedule
  python main.py --config critpath.yaml schedule

  # Task 4 cannot start before task 2 finishes
  python main.py add 4 2

  # Check a batch of edges without writing anything
  python main.py preview 4:2 2:4

  # Create a three-day task
  python main.py task add "Write docs" --duration 3
        """,
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to configuration YAML file (default: critpath.yaml if present)",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug output (DEBUG level)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override the configured logging level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("schedule", help="Recompute and store the schedule")
    subparsers.add_parser("critical-path", help="Show the critical chain")
    subparsers.add_parser("validate", help="Check stored tasks and dependencies")

    for name, help_text in (
        ("add", "Add a dependency and reschedule"),
        ("remove", "Remove a dependency and reschedule"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("task", type=int, help="Dependent task id")
        sub.add_argument("depends_on", type=int, help="Prerequisite task id")

    duration = subparsers.add_parser("duration", help="Change a task's duration and reschedule")
    duration.add_argument("task", type=int, help="Task id")
    duration.add_argument("days", type=int, help="New duration in days")

    preview = subparsers.add_parser("preview", help="What-if check for candidate dependencies")
    preview.add_argument("edges", nargs="+", type=parse_edge, metavar="TASK:DEPENDS_ON")

    task = subparsers.add_parser("task", help="Create or delete tasks")
    task_commands = task.add_subparsers(dest="task_command", required=True)

    task_add = task_commands.add_parser("add", help="Create a task and reschedule")
    task_add.add_argument("title", help="Task title")
    task_add.add_argument("--duration", type=int, default=1, help="Duration in days (default: 1)")
    task_add.add_argument("--due", type=parse_due_date, default=None, help="Due date, ISO 8601")

    task_remove = task_commands.add_parser(
        "remove",
        help="Delete a task and its dependencies, then reschedule",
    )
    task_remove.add_argument("task", type=int, help="Task id")

    args = parser.parse_args(argv)
    if args.debug:
        args.log_level = "DEBUG"
    return args


def main() -> None:
    """Parse arguments, run the command and exit with its code."""
    args = parse_args()
    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
