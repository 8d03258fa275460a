"""Usage accounting on top of the quota repository.

Enforces per-category caps on increment and exposes the admin operations
(reset, delete, list). Increments and resets are read-modify-write cycles;
with conditional writes enabled a lost race surfaces as
``StorageConflictError`` and the cycle is retried.
"""

import math
from dataclasses import replace
from typing import Any, Callable, Optional

from usagegate.app.core.config import CATEGORIES, AppConfig, QuotaLimits
from usagegate.app.core.logging import get_logger
from usagegate.app.exceptions import (
    QuotaExceededError,
    StorageConflictError,
    UnsupportedCategoryError,
)
from usagegate.app.storage.models import UserQuotaRecord, utc_now_iso
from usagegate.app.storage.repository import QuotaRepository

logger = get_logger(__name__)


def normalize_amount(amount: Any) -> int:
    """Floor a positive finite amount to an int; anything else counts as 1.

    Sub-unit amounts floor to 0 and leave the counter unchanged.
    """
    if amount is None or isinstance(amount, bool):
        return 1
    try:
        number = float(amount)
    except (TypeError, ValueError):
        return 1
    if not math.isfinite(number) or number <= 0:
        return 1
    return math.floor(number)


def compute_remaining(record: UserQuotaRecord, limits: QuotaLimits) -> dict[str, float]:
    """Remaining quota per category; ``math.inf`` where the category is unlimited."""
    remaining: dict[str, float] = {}
    for category in CATEGORIES:
        cap = limits.overall(category)
        if math.isinf(cap):
            remaining[category] = math.inf
        else:
            remaining[category] = max(0, int(cap) - record.used(category))
    return remaining


def _finite_or_none(values: dict[str, float]) -> dict[str, Optional[int]]:
    return {key: None if math.isinf(value) else int(value) for key, value in values.items()}


class QuotaService:
    """Usage accounting service.

    Args:
        config: Immutable application configuration
        repository: Record repository; built from ``config.storage`` if None
    """

    def __init__(self, config: AppConfig, repository: Optional[QuotaRepository] = None) -> None:
        self._config = config
        self._limits = config.limits
        self._repository = repository or QuotaRepository.from_options(config.storage)
        self._max_attempts = config.storage.write_retries

    @property
    def limits(self) -> QuotaLimits:
        return self._limits

    @property
    def repository(self) -> QuotaRepository:
        return self._repository

    @property
    def storage_mode(self) -> str:
        """``"durable"`` or ``"memory"``."""
        return self._repository.mode.value

    async def get_usage(self, user_id: Any) -> UserQuotaRecord:
        """Return the user's record, creating a zeroed one if absent."""
        return await self._repository.load(user_id)

    async def _mutate(
        self,
        user_id: Any,
        change: Callable[[UserQuotaRecord], UserQuotaRecord],
    ) -> UserQuotaRecord:
        attempt = 1
        while True:
            current = await self._repository.load(user_id)
            updated = change(current)
            try:
                return await self._repository.save(user_id, updated)
            except StorageConflictError:
                if attempt >= self._max_attempts:
                    logger.error(
                        "Giving up on usage update after %d conflicting writes",
                        attempt,
                        extra={"user_id": current.safe_id},
                    )
                    raise
                logger.info(
                    "Concurrent usage update detected, retrying (attempt %d/%d)",
                    attempt,
                    self._max_attempts,
                    extra={"user_id": current.safe_id},
                )
                attempt += 1

    async def increment_usage(
        self, user_id: Any, category: Any, amount: Any = None
    ) -> UserQuotaRecord:
        """Add ``amount`` to one category, enforcing the overall cap.

        Raises:
            UnsupportedCategoryError: If ``category`` is not a known category.
            QuotaExceededError: If the new total would exceed the cap. Nothing
                is written in that case.
        """
        if category not in CATEGORIES:
            raise UnsupportedCategoryError(category)
        increment_by = normalize_amount(amount)
        cap = self._limits.overall(category)

        def change(record: UserQuotaRecord) -> UserQuotaRecord:
            used = record.used(category)
            if not math.isinf(cap) and used + increment_by > cap:
                raise QuotaExceededError(
                    category=category, limit=int(cap), used=used, usage=record
                )
            return record.with_usage(category, used + increment_by, utc_now_iso())

        try:
            return await self._mutate(user_id, change)
        except QuotaExceededError as e:
            logger.info(
                "Usage limit reached for %s (%d/%d)",
                category,
                e.used,
                e.limit,
                extra={"user_id": e.usage.safe_id},
            )
            raise

    async def reset_usage(self, user_id: Any) -> UserQuotaRecord:
        """Zero every counter and stamp ``resetAt``/``updatedAt``."""

        def change(record: UserQuotaRecord) -> UserQuotaRecord:
            now = utc_now_iso()
            return replace(
                record,
                listening_used=0,
                translation_used=0,
                pronunciation_used=0,
                reset_at=now,
                updated_at=now,
            )

        record = await self._mutate(user_id, change)
        logger.info("Usage reset", extra={"user_id": record.safe_id})
        return record

    async def delete_usage(self, user_id: Any) -> None:
        """Remove the user's record. Idempotent."""
        await self._repository.delete(user_id)

    async def list_usage(self) -> list[UserQuotaRecord]:
        return await self._repository.list_all()

    def compute_remaining(self, record: UserQuotaRecord) -> dict[str, float]:
        return compute_remaining(record, self._limits)

    def limits_payload(self) -> dict:
        """Limit fields shared by the usage and admin responses."""
        return {
            "limits": _finite_or_none(self._limits.overall_caps()),
            "perSectionLimits": _finite_or_none(self._limits.per_section_caps()),
            "sectionCount": self._limits.section_count,
            "storage": self.storage_mode,
        }

    def format_record(self, record: UserQuotaRecord) -> dict:
        """Record fields plus remaining quota (``None`` for unlimited)."""
        return {
            **record.to_dict(),
            "remaining": _finite_or_none(self.compute_remaining(record)),
        }

    def snapshot(self, record: UserQuotaRecord) -> dict:
        """Usage response payload for one user."""
        return {
            "usage": record.to_dict(),
            **self.limits_payload(),
            "remaining": _finite_or_none(self.compute_remaining(record)),
        }
