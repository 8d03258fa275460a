"""API endpoints package for the usage gate."""

from usagegate.app.api.admin import router as admin_router
from usagegate.app.api.auth import router as auth_router
from usagegate.app.api.usage import router as usage_router

__all__ = [
    "admin_router",
    "auth_router",
    "usage_router",
]
