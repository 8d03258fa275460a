"""Per-user usage endpoint."""

from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from usagegate.app.dependencies import QuotaServiceDep
from usagegate.app.exceptions import QuotaExceededError
from usagegate.app.middleware.auth import CurrentUser

router = APIRouter(prefix="/api", tags=["usage"])


class UsageIncrement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[Any] = None
    amount: Optional[Any] = None


@router.get("/usage")
async def get_usage(user: CurrentUser, quota: QuotaServiceDep) -> dict:
    """Current usage, limits and remaining quota for the caller."""
    record = await quota.get_usage(user.id)
    return {"ok": True, **quota.snapshot(record)}


@router.post("/usage")
async def increment_usage(
    user: CurrentUser,
    quota: QuotaServiceDep,
    body: Optional[UsageIncrement] = None,
) -> Any:
    """Record one or more completed exercises of ``type``.

    Over-limit requests get 429 with the unchanged usage snapshot.
    """
    body = body or UsageIncrement()
    try:
        record = await quota.increment_usage(user.id, body.type, body.amount)
    except QuotaExceededError as e:
        return JSONResponse(
            status_code=e.status_code,
            content={
                "ok": False,
                **quota.snapshot(e.usage),
                "error": e.message,
                "limitExceeded": e.to_response(),
            },
        )
    return {"ok": True, **quota.snapshot(record)}
