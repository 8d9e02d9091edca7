"""GenerationRecord storage: file-based (default) or in-memory."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol

from genstudio.config import Settings
from genstudio.schemas.models import GenerationRecord, GenerationStatus

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    def create(self, record: GenerationRecord) -> GenerationRecord: ...
    def get(self, record_id: str) -> GenerationRecord | None: ...
    def get_by_provider_job_id(self, provider_job_id: str) -> GenerationRecord | None: ...
    def update(self, record: GenerationRecord) -> None: ...
    def delete(self, record_id: str) -> bool: ...
    def list(self, status: GenerationStatus | None = None, limit: int | None = None) -> list[GenerationRecord]: ...


def _newest_first(records: list[GenerationRecord], status, limit) -> list[GenerationRecord]:
    if status is not None:
        records = [r for r in records if r.status == status]
    records.sort(key=lambda r: r.created_at, reverse=True)
    return records[:limit] if limit else records


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------

class InMemoryRecordStore:
    """Process-local store; records are lost on restart."""

    def __init__(self):
        self._records: dict[str, GenerationRecord] = {}

    def create(self, record: GenerationRecord) -> GenerationRecord:
        self._records[record.id] = record.model_copy(deep=True)
        return record

    def get(self, record_id: str) -> GenerationRecord | None:
        record = self._records.get(record_id)
        return record.model_copy(deep=True) if record else None

    def get_by_provider_job_id(self, provider_job_id: str) -> GenerationRecord | None:
        for record in self._records.values():
            if record.provider_job_id == provider_job_id:
                return record.model_copy(deep=True)
        return None

    def update(self, record: GenerationRecord) -> None:
        self._records[record.id] = record.model_copy(deep=True)

    def delete(self, record_id: str) -> bool:
        return self._records.pop(record_id, None) is not None

    def list(self, status: GenerationStatus | None = None, limit: int | None = None) -> list[GenerationRecord]:
        return _newest_first([r.model_copy(deep=True) for r in self._records.values()], status, limit)


# ---------------------------------------------------------------------------
# File-based implementation
# ---------------------------------------------------------------------------

class FileRecordStore:
    """Persist records as JSON files. Survives restarts within same data dir."""

    def __init__(self, records_dir: Path):
        self._dir = Path(records_dir)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._index_path = self._dir / "index.json"
        self._index: dict[str, str] = self._load_index()

    def _load_index(self) -> dict[str, str]:
        """Maps provider_job_id -> record id for webhook lookup."""
        if self._index_path.exists():
            try:
                with open(self._index_path, "r", encoding="utf-8") as f:
                    return json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable record index %s: %s", self._index_path, e)
        return {}

    def _save_index(self) -> None:
        with open(self._index_path, "w", encoding="utf-8") as f:
            json.dump(self._index, f, indent=2)

    def _record_path(self, record_id: str) -> Path:
        return self._dir / f"{Path(record_id).name}.json"

    def create(self, record: GenerationRecord) -> GenerationRecord:
        self._write_record(record)
        self._index_provider_job(record)
        return record

    def get(self, record_id: str) -> GenerationRecord | None:
        path = self._record_path(record_id)
        if not path.exists():
            return None
        return self._read_record(path)

    def get_by_provider_job_id(self, provider_job_id: str) -> GenerationRecord | None:
        record_id = self._index.get(provider_job_id)
        if not record_id:
            return None
        return self.get(record_id)

    def update(self, record: GenerationRecord) -> None:
        self._write_record(record)
        self._index_provider_job(record)

    def delete(self, record_id: str) -> bool:
        path = self._record_path(record_id)
        stale = [job_id for job_id, rid in self._index.items() if rid == record_id]
        for job_id in stale:
            del self._index[job_id]
        if stale:
            self._save_index()
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list(self, status: GenerationStatus | None = None, limit: int | None = None) -> list[GenerationRecord]:
        records = [
            self._read_record(p) for p in self._dir.glob("*.json") if p.name != self._index_path.name
        ]
        return _newest_first(records, status, limit)

    def _index_provider_job(self, record: GenerationRecord) -> None:
        if record.provider_job_id and self._index.get(record.provider_job_id) != record.id:
            self._index[record.provider_job_id] = record.id
            self._save_index()

    def _write_record(self, record: GenerationRecord) -> None:
        path = self._record_path(record.id)
        data = record.model_dump(mode="json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)

    def _read_record(self, path: Path) -> GenerationRecord:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return GenerationRecord.model_validate(data)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def build_record_store(settings: Settings) -> RecordStore:
    if settings.record_store == "memory":
        logger.info("Using in-memory generation record store")
        return InMemoryRecordStore()
    logger.info("Using file-based generation record store (%s)", settings.records_dir)
    return FileRecordStore(settings.records_dir)
