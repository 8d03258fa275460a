import asyncio
import itertools
from dataclasses import replace

from usagegate.app.exceptions import StorageConflictError
from usagegate.app.storage.base import QuotaBackend
from usagegate.app.storage.models import UserQuotaRecord


class InMemoryQuotaBackend(QuotaBackend):
    """In-process record store.

    Used when durable storage is not configured or has been abandoned after
    a permission failure. Data is lost when the process restarts.
    """

    def __init__(self, conditional_writes: bool = True) -> None:
        self._data: dict[str, UserQuotaRecord] = {}
        self._lock = asyncio.Lock()
        self._versions = itertools.count(1)
        self._conditional_writes = conditional_writes

    async def read(self, safe_id: str) -> UserQuotaRecord | None:
        async with self._lock:
            record = self._data.get(safe_id)
            return replace(record) if record is not None else None

    async def write(self, record: UserQuotaRecord) -> UserQuotaRecord:
        async with self._lock:
            if self._conditional_writes:
                current = self._data.get(record.safe_id)
                current_version = current.version if current is not None else None
                if current_version != record.version:
                    raise StorageConflictError(
                        f"Version mismatch for {record.safe_id}", key=record.safe_id
                    )
            stored = replace(record, version=str(next(self._versions)))
            self._data[record.safe_id] = stored
            return replace(stored)

    async def remove(self, safe_id: str) -> None:
        async with self._lock:
            self._data.pop(safe_id, None)

    async def scan(self) -> list[UserQuotaRecord]:
        async with self._lock:
            return [replace(record) for record in self._data.values()]
