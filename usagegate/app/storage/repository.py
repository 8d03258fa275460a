"""Usage record repository with one-way durable → memory failover.

The repository starts on the durable backend when one is configured. The
first permission failure from it moves the whole process onto the in-memory
backend for the rest of its lifetime; the failed operation is replayed there.
Other storage errors propagate to the caller.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from usagegate.app.core.config import StorageOptions
from usagegate.app.core.identity import require_safe_id
from usagegate.app.core.logging import get_logger
from usagegate.app.exceptions import StorageConflictError, StoragePermissionError
from usagegate.app.storage.base import QuotaBackend
from usagegate.app.storage.memory import InMemoryQuotaBackend
from usagegate.app.storage.models import UserQuotaRecord, normalize_record

logger = get_logger(__name__)

T = TypeVar("T")


class StorageMode(str, Enum):
    """Which backend is serving requests."""

    DURABLE = "durable"
    MEMORY = "memory"


class QuotaRepository:
    """Key-value access to usage records keyed by sanitized user id.

    State machine with two states and a single irreversible transition
    ``DURABLE → MEMORY``, triggered by ``StoragePermissionError``.
    """

    def __init__(
        self,
        durable: Optional[QuotaBackend] = None,
        memory: Optional[InMemoryQuotaBackend] = None,
    ) -> None:
        """Initialize the repository.

        Args:
            durable: Durable backend. If None, the repository starts in memory mode.
            memory: Volatile backend. If None, a fresh one is created.
        """
        self._durable = durable
        self._memory = memory or InMemoryQuotaBackend()
        self._mode = StorageMode.DURABLE if durable is not None else StorageMode.MEMORY

    @classmethod
    def from_options(cls, options: StorageOptions) -> "QuotaRepository":
        """Build a repository from storage configuration.

        No bucket, or ``QUOTA_STORE_MODE=memory``, starts in memory mode.
        """
        memory = InMemoryQuotaBackend(conditional_writes=options.conditional_writes)
        if not options.durable_enabled:
            reason = "forced by QUOTA_STORE_MODE" if options.force_memory else "no bucket configured"
            logger.warning(
                "Using in-memory usage storage (%s). Changes will not persist across restarts.",
                reason,
            )
            return cls(durable=None, memory=memory)

        from usagegate.app.storage.s3 import S3QuotaBackend

        durable = S3QuotaBackend(
            bucket_name=options.bucket,
            prefix=options.prefix,
            region=options.region,
            endpoint_url=options.endpoint_url,
            conditional_writes=options.conditional_writes,
        )
        return cls(durable=durable, memory=memory)

    @property
    def mode(self) -> StorageMode:
        return self._mode

    @property
    def backend(self) -> QuotaBackend:
        if self._mode is StorageMode.DURABLE and self._durable is not None:
            return self._durable
        return self._memory

    def _fail_over(self, error: StoragePermissionError) -> None:
        if self._mode is StorageMode.MEMORY:
            return
        self._mode = StorageMode.MEMORY
        logger.warning(
            "Durable usage storage denied access, falling back to in-memory storage. "
            "Changes will not persist across restarts.",
            extra={"storage": self._mode.value, "error": str(error)},
        )

    async def _call(self, operation: Callable[[QuotaBackend], Awaitable[T]]) -> T:
        backend = self.backend
        try:
            return await operation(backend)
        except StoragePermissionError as e:
            if backend is self._memory:
                raise
            self._fail_over(e)
            return await operation(self._memory)

    async def load(self, user_id: Any) -> UserQuotaRecord:
        """Return the user's record, creating and persisting a zeroed one if absent.

        Raises:
            InvalidIdentityError: If ``user_id`` sanitizes to nothing.
            StorageError: For non-permission backend failures.
        """
        safe_id = require_safe_id(user_id)
        record = await self._call(lambda backend: backend.read(safe_id))
        if record is not None:
            return normalize_record(record)

        fresh = UserQuotaRecord.fresh(user_id, safe_id)
        try:
            record = await self._call(lambda backend: backend.write(fresh))
        except StorageConflictError:
            # Created concurrently; use the winner's record.
            record = await self._call(lambda backend: backend.read(safe_id))
            if record is None:
                raise
        return normalize_record(record)

    async def save(self, user_id: Any, record: UserQuotaRecord) -> UserQuotaRecord:
        """Persist ``record`` under the user's sanitized id.

        Raises:
            StorageConflictError: If the record changed since it was loaded.
        """
        safe_id = require_safe_id(user_id)
        clean = normalize_record(record)
        clean.safe_id = safe_id
        stored = await self._call(lambda backend: backend.write(clean))
        return normalize_record(stored)

    async def delete(self, user_id: Any) -> None:
        """Remove the user's record. Deleting a missing record is a no-op."""
        safe_id = require_safe_id(user_id)
        await self._call(lambda backend: backend.remove(safe_id))

    async def list_all(self) -> list[UserQuotaRecord]:
        records = await self._call(lambda backend: backend.scan())
        return [normalize_record(record) for record in records]
