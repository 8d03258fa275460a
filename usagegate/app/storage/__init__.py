"""Usage record storage: backends and the failover repository."""

from usagegate.app.storage.base import QuotaBackend
from usagegate.app.storage.memory import InMemoryQuotaBackend
from usagegate.app.storage.models import UserQuotaRecord, normalize_record
from usagegate.app.storage.repository import QuotaRepository, StorageMode

__all__ = [
    "QuotaBackend",
    "InMemoryQuotaBackend",
    "UserQuotaRecord",
    "normalize_record",
    "QuotaRepository",
    "StorageMode",
]
