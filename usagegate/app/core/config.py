import json
import math
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Annotated, Any, Literal, Mapping

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from usagegate.app.core.principals import AdminSource, parse_admin_set, parse_credentials

CATEGORIES = ("listening", "translation", "pronunciation")
UNLIMITED_MARKERS = frozenset({"unlimited", "none", "inf", "infinite", "infinity"})


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]

    parts = [p for p in re.split(r"[,\s]+", raw) if p]
    if "*" in parts:
        return ["*"]
    return list(dict.fromkeys(parts))


def _parse_section_cap(raw: Any) -> int | None:
    """Return the per-section cap, or None when the category is unlimited."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError("per-section limit must be a number or 'unlimited'")
    if isinstance(raw, (int, float)):
        if math.isinf(raw) or raw <= 0:
            return None
        return int(raw)
    text = str(raw).strip().lower()
    if not text or text in UNLIMITED_MARKERS:
        return None
    try:
        value = float(text)
    except ValueError as e:
        raise ValueError(
            f"per-section limit must be a number or 'unlimited', got {raw!r}"
        ) from e
    if math.isnan(value):
        raise ValueError("per-section limit must not be NaN")
    if math.isinf(value) or value <= 0:
        return None
    return int(value)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    Several settings also accept older variable names as aliases.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Token signing
    auth_secret: str = Field(
        default="",
        validation_alias=AliasChoices("AUTH_SECRET", "JWT_SECRET", "AUTH_JWT_SECRET"),
        repr=False,
    )
    auth_token_ttl: int = Field(default=3600, validation_alias="AUTH_TOKEN_TTL")

    # Credentials and admin membership, parsed once into AppConfig
    auth_users: str = Field(
        default="",
        validation_alias=AliasChoices("AUTH_USERS", "APP_AUTH_USERS"),
        repr=False,
    )
    auth_admins: str = Field(
        default="",
        validation_alias=AliasChoices("AUTH_ADMINS", "APP_AUTH_ADMINS", "ADMIN_USERS"),
    )

    # Durable quota storage (S3-compatible)
    s3_bucket: str = Field(
        default="", validation_alias=AliasChoices("AWS_S3_BUCKET", "BUCKET_NAME")
    )
    s3_region: str = Field(default="us-east-1", validation_alias="AWS_REGION")
    s3_endpoint_url: str | None = Field(default=None, validation_alias="S3_ENDPOINT_URL")
    quota_prefix: str = Field(default="quotas", validation_alias="QUOTA_PREFIX")
    quota_store_mode: Literal["auto", "memory"] = Field(
        default="auto",
        validation_alias=AliasChoices("QUOTA_STORE_MODE", "ADMIN_STORE_MODE"),
    )
    quota_conditional_writes: bool = Field(
        default=True, validation_alias="QUOTA_CONDITIONAL_WRITES"
    )
    quota_write_retries: int = Field(default=3, validation_alias="QUOTA_WRITE_RETRIES")

    # Per-section caps; "unlimited" (or 0) disables the cap for a category
    listening_usage_limit: int | None = Field(
        default=10, validation_alias="LISTENING_USAGE_LIMIT"
    )
    translation_usage_limit: int | None = Field(
        default=10, validation_alias="TRANSLATION_USAGE_LIMIT"
    )
    pronunciation_usage_limit: int | None = Field(
        default=10, validation_alias="PRONUNCIATION_USAGE_LIMIT"
    )
    quota_section_count: int = Field(
        default=1, validation_alias=AliasChoices("QUOTA_SECTION_COUNT", "SECTION_COUNT")
    )

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    # CORS settings
    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator(
        "listening_usage_limit",
        "translation_usage_limit",
        "pronunciation_usage_limit",
        mode="before",
    )
    @classmethod
    def decode_section_cap(cls, v: Any) -> int | None:
        return _parse_section_cap(v)

    @field_validator("quota_store_mode", mode="before")
    @classmethod
    def normalize_store_mode(cls, v: Any) -> str:
        text = str(v or "auto").strip().lower()
        return text or "auto"

    @field_validator("quota_section_count")
    @classmethod
    def validate_section_count(cls, v: int) -> int:
        """Validate section count is at least one."""
        if v < 1:
            raise ValueError("quota_section_count must be at least 1")
        return v

    @field_validator("auth_token_ttl")
    @classmethod
    def validate_token_ttl(cls, v: int) -> int:
        """Validate token TTL is positive."""
        if v < 1:
            raise ValueError("auth_token_ttl must be at least 1 second")
        return v

    @field_validator("quota_write_retries")
    @classmethod
    def validate_write_retries(cls, v: int) -> int:
        """Validate the increment attempt budget is positive."""
        if v < 1:
            raise ValueError("quota_write_retries must be at least 1")
        return v

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore", populate_by_name=True
    )


@dataclass(frozen=True)
class QuotaLimits:
    """Per-category caps. ``None`` per-section caps mean unlimited."""

    listening: int | None = 10
    translation: int | None = 10
    pronunciation: int | None = 10
    section_count: int = 1

    def per_section(self, category: str) -> float:
        cap = getattr(self, category)
        return math.inf if not cap else cap

    def overall(self, category: str) -> float:
        """Overall cap: per-section cap times section count, or ``math.inf``."""
        cap = self.per_section(category)
        if math.isinf(cap):
            return math.inf
        return int(cap) * self.section_count

    def per_section_caps(self) -> dict[str, float]:
        return {category: self.per_section(category) for category in CATEGORIES}

    def overall_caps(self) -> dict[str, float]:
        return {category: self.overall(category) for category in CATEGORIES}


@dataclass(frozen=True)
class StorageOptions:
    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    prefix: str = "quotas"
    force_memory: bool = False
    conditional_writes: bool = True
    write_retries: int = 3

    @property
    def durable_enabled(self) -> bool:
        return bool(self.bucket) and not self.force_memory


@dataclass(frozen=True)
class AppConfig:
    """Immutable process-wide configuration.

    Built once at startup from ``Settings`` and handed to the token and quota
    services. Nothing downstream reads the environment again.
    """

    auth_secret: str = field(default="", repr=False)
    token_ttl_seconds: int = 3600
    admins: AdminSource = field(default_factory=lambda: parse_admin_set(""))
    credentials: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({}), repr=False
    )
    limits: QuotaLimits = field(default_factory=QuotaLimits)
    storage: StorageOptions = field(default_factory=StorageOptions)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AppConfig":
        return cls(
            auth_secret=settings.auth_secret.strip(),
            token_ttl_seconds=settings.auth_token_ttl,
            admins=parse_admin_set(settings.auth_admins),
            credentials=MappingProxyType(parse_credentials(settings.auth_users)),
            limits=QuotaLimits(
                listening=settings.listening_usage_limit,
                translation=settings.translation_usage_limit,
                pronunciation=settings.pronunciation_usage_limit,
                section_count=settings.quota_section_count,
            ),
            storage=StorageOptions(
                bucket=settings.s3_bucket.strip(),
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url or None,
                prefix=settings.quota_prefix.strip("/") or "quotas",
                force_memory=settings.quota_store_mode == "memory",
                conditional_writes=settings.quota_conditional_writes,
                write_retries=settings.quota_write_retries,
            ),
        )


# Global settings instance
settings = Settings()
