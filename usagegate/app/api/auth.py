"""Login and session introspection endpoints."""

from typing import Any, Optional

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from usagegate.app.core.logging import get_logger
from usagegate.app.core.security import AUTH_COOKIE_NAME
from usagegate.app.dependencies import TokenServiceDep
from usagegate.app.middleware.auth import CurrentUser

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["auth"])


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    userId: Optional[Any] = None
    password: Optional[Any] = None


@router.post("/auth")
async def login(
    response: Response,
    tokens: TokenServiceDep,
    body: Optional[LoginRequest] = None,
) -> Any:
    """Exchange credentials for a session token."""
    body = body or LoginRequest()
    user_id = body.userId.strip() if isinstance(body.userId, str) else ""
    password = body.password if isinstance(body.password, str) else ""
    if not user_id or not password:
        return JSONResponse(status_code=400, content={"error": "userId and password are required"})

    principal = tokens.authenticate(user_id, password)
    if principal is None:
        return JSONResponse(status_code=401, content={"error": "Invalid user ID or password"})

    issued = tokens.issue(principal.id)
    ttl = issued.expires_at - issued.payload.iat
    response.set_cookie(
        AUTH_COOKIE_NAME,
        issued.token,
        max_age=ttl,
        httponly=True,
        samesite="lax",
    )
    logger.info("User logged in", extra={"user_id": principal.safe_id})
    return {
        "ok": True,
        "token": issued.token,
        "userId": principal.id,
        "safeUserId": principal.safe_id,
        "expiresIn": ttl,
        "expiresAt": issued.expires_at * 1000,
    }


@router.get("/auth")
async def whoami(request: Request, user: CurrentUser) -> dict:
    """Return the identity and expiry of the presented token."""
    payload = request.state.auth_payload
    return {
        "ok": True,
        "userId": user.id,
        "safeUserId": user.safe_id,
        "expiresAt": payload.exp * 1000,
    }
