"""Generation record storage, state machine and polling."""

from genstudio.jobs.poller import GenerationPoller, PollSchedule
from genstudio.jobs.state import GenerationTracker, RecordNotFoundError
from genstudio.jobs.store import FileRecordStore, InMemoryRecordStore, RecordStore, build_record_store

__all__ = [
    "FileRecordStore",
    "GenerationPoller",
    "GenerationTracker",
    "InMemoryRecordStore",
    "PollSchedule",
    "RecordNotFoundError",
    "RecordStore",
    "build_record_store",
]
