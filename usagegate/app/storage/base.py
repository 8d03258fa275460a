"""Storage backend abstraction for usage records.

Provides a pluggable backend system with S3 and in-memory implementations.
"""

from abc import ABC, abstractmethod

from usagegate.app.storage.models import UserQuotaRecord


class QuotaBackend(ABC):
    """Abstract base class for usage record backends.

    Records are addressed by sanitized user id. Backends return records with
    ``version`` set to their own version token, which ``write`` checks when
    conditional writes are enabled.
    """

    @abstractmethod
    async def read(self, safe_id: str) -> UserQuotaRecord | None:
        """Retrieve the record for ``safe_id``.

        Returns:
            The stored record, or None if nothing is stored yet.
        """
        pass

    @abstractmethod
    async def write(self, record: UserQuotaRecord) -> UserQuotaRecord:
        """Store ``record`` under ``record.safe_id``.

        When conditional writes are enabled, a record whose ``version`` is
        None may only create a new entry, and any other record may only
        replace the entry carrying the same version.

        Returns:
            The stored record carrying its new version.

        Raises:
            StorageConflictError: If the stored version does not match.
        """
        pass

    @abstractmethod
    async def remove(self, safe_id: str) -> None:
        """Remove the record for ``safe_id``. Missing records are not an error."""
        pass

    @abstractmethod
    async def scan(self) -> list[UserQuotaRecord]:
        """Return every stored record."""
        pass
