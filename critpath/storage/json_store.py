"""JSON-file backed task store.

The document layout is::

    {
      "tasks": [{"id": 1, "title": "...", "duration": 2, ...}, ...],
      "dependencies": [{"task_id": 2, "depends_on_id": 1, "is_draft": false}, ...]
    }

The whole document is rewritten on every commit through a temporary file and
``os.replace`` so readers never see a half-written file.
"""

import json
import os
import tempfile
from collections import Counter
from pathlib import Path
from typing import Any

import structlog

from critpath.errors import StorageError
from critpath.storage.memory import InMemoryTaskStore, StoreState
from critpath.storage.models import DependencyRecord, TaskRecord

logger = structlog.get_logger(__name__)


class JsonFileTaskStore(InMemoryTaskStore):
    """Task store persisted to a single JSON document."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> StoreState:
        if not self.path.exists():
            logger.info("json_store_missing_starting_empty", path=str(self.path))
            return StoreState()

        try:
            with self.path.open() as f:
                data = json.load(f)
            tasks, dependencies = self._parse_document(data)
        except (OSError, ValueError) as e:
            logger.exception("json_store_load_failed", path=str(self.path), error=str(e))
            msg = f"Cannot load task store from {self.path}: {e}"
            raise StorageError(msg) from e

        state = StoreState(
            tasks={task.id: task for task in tasks},
            dependencies={dep.key: dep for dep in dependencies},
            next_task_id=max((task.id for task in tasks), default=0) + 1,
        )
        logger.info(
            "json_store_loaded",
            path=str(self.path),
            task_count=len(state.tasks),
            dependency_count=len(state.dependencies),
        )
        return state

    @staticmethod
    def _parse_document(data: Any) -> tuple[list[TaskRecord], list[DependencyRecord]]:
        """Validate the document shape and its rows.

        Raises:
            ValueError: Wrong shape, invalid row, or a task id used twice
        """
        if not isinstance(data, dict):
            msg = f"Document must be a JSON object, got {type(data).__name__}"
            raise ValueError(msg)
        for key in ("tasks", "dependencies"):
            if not isinstance(data.get(key, []), list):
                msg = f"'{key}' must be a list, got {type(data[key]).__name__}"
                raise ValueError(msg)

        tasks = []
        for row in data.get("tasks", []):
            if not isinstance(row, dict):
                msg = f"Task row must be an object, got {row!r}"
                raise ValueError(msg)
            tasks.append(TaskRecord.model_validate({**row, "dependencies": [], "dependents": []}))
        dependencies = [DependencyRecord.model_validate(row) for row in data.get("dependencies", [])]

        counts = Counter(task.id for task in tasks)
        duplicates = sorted(task_id for task_id, count in counts.items() if count > 1)
        if duplicates:
            msg = f"Duplicate task ids: {duplicates}"
            raise ValueError(msg)

        return tasks, dependencies

    async def _commit(self, state: StoreState) -> None:
        document = {
            "tasks": [
                task.model_dump(mode="json", exclude={"dependencies", "dependents"})
                for _, task in sorted(state.tasks.items())
            ],
            "dependencies": [
                dep.model_dump(mode="json") for _, dep in sorted(state.dependencies.items())
            ],
        }

        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
            )
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.exception("json_store_write_failed", path=str(self.path), error=str(e))
            msg = f"Cannot write task store to {self.path}: {e}"
            raise StorageError(msg) from e
