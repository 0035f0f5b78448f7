"""Storage adapters implementing core ports."""

from opslens.adapters.storage.in_memory import (
    InMemoryEventStorage,
    InMemoryJobExecutionStorage,
)
from opslens.adapters.storage.ring_buffer import RingBufferEventCollector
from opslens.adapters.storage.sqlite_events import (
    SQLiteQueryEventStorage,
    SQLiteRequestEventStorage,
)
from opslens.adapters.storage.sqlite_jobs import SQLiteJobExecutionStorage

__all__ = [
    "InMemoryEventStorage",
    "InMemoryJobExecutionStorage",
    "RingBufferEventCollector",
    "SQLiteJobExecutionStorage",
    "SQLiteQueryEventStorage",
    "SQLiteRequestEventStorage",
]
