"""Storage collaborator interface and reference stores."""

from critpath.storage.base import StoreTransaction, TaskStore
from critpath.storage.json_store import JsonFileTaskStore
from critpath.storage.memory import InMemoryTaskStore, InMemoryTransaction, StoreState
from critpath.storage.models import DependencyRecord, ScheduleUpdate, TaskRecord

__all__ = [
    "DependencyRecord",
    "InMemoryTaskStore",
    "InMemoryTransaction",
    "JsonFileTaskStore",
    "ScheduleUpdate",
    "StoreState",
    "StoreTransaction",
    "TaskRecord",
    "TaskStore",
]
