from typing import Annotated

from fastapi import Depends, Request

from usagegate.app.core.identity import sanitize_user_id
from usagegate.app.core.logging import get_logger, user_id_var
from usagegate.app.core.security import AUTH_COOKIE_NAME, Principal, extract_token
from usagegate.app.dependencies import TokenServiceDep
from usagegate.app.exceptions import ForbiddenError, UnauthorizedError

logger = get_logger(__name__)


def get_bearer_token(request: Request) -> str | None:
    """Extract the session token from the Authorization header or auth cookie.

    Args:
        request: The incoming request

    Returns:
        The token string if present, None otherwise
    """
    return extract_token(
        request.headers.get("Authorization"),
        request.cookies.get(AUTH_COOKIE_NAME),
    )


async def require_user(request: Request, tokens: TokenServiceDep) -> Principal:
    """Validate the session token and return the authenticated user.

    The verified claims are kept on ``request.state.auth_payload``.

    Raises:
        UnauthorizedError: Generic 401 for missing, forged or expired tokens.
            The specific reason is only logged.
    """
    token = get_bearer_token(request)
    try:
        payload = tokens.verify(token)
    except UnauthorizedError as e:
        logger.info("Rejected session token: %s", e.reason, extra={"path": request.url.path})
        raise UnauthorizedError() from e

    principal = Principal(id=payload.sub, safe_id=payload.safe_sub or sanitize_user_id(payload.sub))
    request.state.auth_payload = payload
    user_id_var.set(principal.safe_id)
    return principal


async def require_admin(
    principal: Annotated[Principal, Depends(require_user)],
    tokens: TokenServiceDep,
) -> Principal:
    """Require an authenticated user from the configured admin set.

    Raises:
        ForbiddenError: 403 if the user is not an admin
    """
    if tokens.is_admin(principal.id) or tokens.is_admin(principal.safe_id):
        return principal
    logger.warning("Non-admin user attempted admin access")
    raise ForbiddenError()


CurrentUser = Annotated[Principal, Depends(require_user)]
