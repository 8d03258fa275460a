"""Service layer for the usage gate."""

from usagegate.app.services.quota import QuotaService, compute_remaining

__all__ = [
    "QuotaService",
    "compute_remaining",
]
