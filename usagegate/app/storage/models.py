"""Usage record model and normalization."""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional

from usagegate.app.core.identity import sanitize_user_id


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def to_count(value: Any) -> int:
    """Coerce a stored counter to a non-negative integer.

    Non-numeric, negative, NaN and infinite values collapse to 0; fractions
    are floored.
    """
    if isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number <= 0:
        return 0
    return int(math.floor(number))


@dataclass
class UserQuotaRecord:
    """Usage counters for one sanitized user id.

    Attributes:
        id: The user id as first supplied
        safe_id: Sanitized id, used as the storage key
        listening_used: Listening exercises consumed
        translation_used: Translation exercises consumed
        pronunciation_used: Pronunciation exercises consumed
        reset_at: ISO timestamp of the last explicit reset
        updated_at: ISO timestamp of the last mutation
        version: Backend version token for conditional writes (not serialized)
    """

    id: str
    safe_id: str
    listening_used: int = 0
    translation_used: int = 0
    pronunciation_used: int = 0
    reset_at: Optional[str] = None
    updated_at: Optional[str] = None
    version: Optional[str] = field(default=None, compare=False, repr=False)

    @classmethod
    def fresh(cls, user_id: Any, safe_id: str) -> "UserQuotaRecord":
        """Create a zeroed record for a user seen for the first time."""
        raw = str(user_id).strip() if user_id is not None else ""
        return cls(id=raw or safe_id, safe_id=safe_id)

    def used(self, category: str) -> int:
        return getattr(self, f"{category}_used")

    def with_usage(self, category: str, value: int, now: str) -> "UserQuotaRecord":
        return replace(self, **{f"{category}_used": value}, updated_at=now)

    def to_dict(self) -> dict:
        """Convert to the camelCase JSON shape used in storage and the API."""
        return {
            "id": self.id,
            "safeId": self.safe_id,
            "listeningUsed": self.listening_used,
            "translationUsed": self.translation_used,
            "pronunciationUsed": self.pronunciation_used,
            "resetAt": self.reset_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(
        cls, data: Any, safe_id: str | None = None, version: str | None = None
    ) -> "UserQuotaRecord":
        """Build a normalized record from stored JSON.

        Args:
            data: Decoded JSON; anything that is not a dict yields a zeroed record
            safe_id: Storage key the data was read from; wins over the stored value
            version: Backend version token to attach
        """
        if not isinstance(data, dict):
            data = {}
        key = safe_id or sanitize_user_id(data.get("safeId") or data.get("id"))
        raw_id = data.get("id")
        return cls(
            id=str(raw_id).strip() if raw_id else key,
            safe_id=key,
            listening_used=to_count(data.get("listeningUsed")),
            translation_used=to_count(data.get("translationUsed")),
            pronunciation_used=to_count(data.get("pronunciationUsed")),
            reset_at=data.get("resetAt") or None,
            updated_at=data.get("updatedAt") or None,
            version=version,
        )


def normalize_record(record: UserQuotaRecord) -> UserQuotaRecord:
    """Clamp counters to non-negative integers and re-derive ``safe_id``.

    Applied to every record leaving a backend, so hand-edited or corrupted
    data can never surface a negative or fractional count.
    """
    return replace(
        record,
        safe_id=sanitize_user_id(record.safe_id) or sanitize_user_id(record.id),
        listening_used=to_count(record.listening_used),
        translation_used=to_count(record.translation_used),
        pronunciation_used=to_count(record.pronunciation_used),
        reset_at=record.reset_at or None,
        updated_at=record.updated_at or None,
    )
