"""Middleware package for the usage gate."""

from usagegate.app.middleware.auth import require_admin, require_user
from usagegate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "require_admin",
    "require_user",
    "RequestIdMiddleware",
    "get_request_id",
]
