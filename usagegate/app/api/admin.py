"""Admin usage override endpoint."""

from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from usagegate.app.core.identity import sanitize_user_id
from usagegate.app.core.logging import get_logger
from usagegate.app.dependencies import QuotaServiceDep
from usagegate.app.middleware.auth import require_admin

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["admin"], dependencies=[Depends(require_admin)])


class AdminAction(BaseModel):
    model_config = ConfigDict(extra="ignore")

    action: Optional[Any] = None
    userId: Optional[Any] = None
    id: Optional[Any] = None
    safeId: Optional[Any] = None

    def target(self) -> str:
        return sanitize_user_id(self.userId or self.id or self.safeId)


@router.get("/usage-admin")
async def list_usage(quota: QuotaServiceDep) -> dict:
    """Every known record with its remaining quota."""
    items = await quota.list_usage()
    items.sort(key=lambda record: record.safe_id)
    return {
        "ok": True,
        "items": [quota.format_record(record) for record in items],
        **quota.limits_payload(),
    }


@router.post("/usage-admin")
async def apply_action(quota: QuotaServiceDep, body: Optional[AdminAction] = None) -> Any:
    """Run ``reset``, ``delete`` or ``get`` against one user's record."""
    body = body or AdminAction()
    action = body.action.strip().lower() if isinstance(body.action, str) else ""
    target = body.target()
    if not target:
        return JSONResponse(status_code=400, content={"error": "userId is required"})

    if action == "reset":
        record = await quota.reset_usage(target)
        logger.info("Admin reset usage for %s", target)
        return {"ok": True, "item": quota.format_record(record)}

    if action == "delete":
        await quota.delete_usage(target)
        logger.info("Admin deleted usage for %s", target)
        return {"ok": True, "deleted": True, "userId": target}

    if action == "get":
        record = await quota.get_usage(target)
        return {"ok": True, "item": quota.format_record(record)}

    return JSONResponse(status_code=400, content={"error": "Unsupported action"})
