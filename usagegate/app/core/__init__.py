"""Core utilities for the usage gate application."""

from usagegate.app.core.config import AppConfig, QuotaLimits, Settings, settings
from usagegate.app.core.identity import require_safe_id, sanitize_user_id
from usagegate.app.core.logging import get_logger, setup_logging

__all__ = [
    "AppConfig",
    "QuotaLimits",
    "Settings",
    "settings",
    "require_safe_id",
    "sanitize_user_id",
    "get_logger",
    "setup_logging",
]
