"""Exception taxonomy for dependency mutation and scheduling.

ValidationError and CycleError are caller-correctable rejections raised before
any write. StorageError and AlgorithmInvariantViolation are operation failures
that abort the enclosing transaction.
"""


class SchedulingError(Exception):
    """Base class for all errors raised by the scheduling core."""

    def __init__(self, message: str):
        """Initialize the exception with a descriptive message.

        Args:
            message: Description of the error
        """
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """A request was malformed: self edge, duplicate edge, bad duration, unknown id."""

    def __init__(self, message: str, task_id: int | None = None):
        super().__init__(message)
        self.task_id = task_id


class CycleError(SchedulingError):
    """A proposed dependency would make the graph circular.

    Attributes:
        path: Task ids forming the cycle, first and last element equal. Each
            task in the path depends on the one that follows it.
    """

    def __init__(self, path: list[int], message: str | None = None):
        self.path = list(path)
        if message is None:
            rendered = " -> ".join(str(task_id) for task_id in self.path)
            message = f"Adding this dependency would create a circular dependency: {rendered}"
        super().__init__(message)


class StorageError(SchedulingError):
    """Reading from or writing to the storage collaborator failed."""


class AlgorithmInvariantViolation(SchedulingError):  # noqa: N818
    """An internal invariant of the scheduling algorithms does not hold."""


__all__ = [
    "AlgorithmInvariantViolation",
    "CycleError",
    "SchedulingError",
    "StorageError",
    "ValidationError",
]
