"""FastAPI dependencies resolving the process-wide services from app state."""

from typing import Annotated

from fastapi import Depends, Request

from usagegate.app.core.security import TokenService
from usagegate.app.services.quota import QuotaService


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_quota_service(request: Request) -> QuotaService:
    return request.app.state.quota_service


TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]
QuotaServiceDep = Annotated[QuotaService, Depends(get_quota_service)]
