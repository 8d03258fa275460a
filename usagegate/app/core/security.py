"""Stateless session tokens and password verification.

Tokens are HS256 JWTs issued and checked with PyJWT. The server keeps no
session state, so a token is valid exactly until its ``exp``.
"""

import hmac
import time
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import unquote

import bcrypt
import jwt

from usagegate.app.core.config import AppConfig
from usagegate.app.core.identity import require_safe_id, sanitize_user_id
from usagegate.app.core.logging import get_logger
from usagegate.app.exceptions import (
    ConfigurationError,
    ExpiredTokenError,
    InvalidSignatureError,
    InvalidTokenError,
)

logger = get_logger(__name__)

JWT_ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["exp", "sub"]
AUTH_COOKIE_NAME = "auth_token"
BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")
PLAIN_PREFIX = "plain:"


@dataclass(frozen=True)
class TokenPayload:
    """Claims carried by a session token."""

    sub: str
    safe_sub: str
    iat: int
    exp: int

    def to_dict(self) -> dict:
        return {"sub": self.sub, "safeSub": self.safe_sub, "iat": self.iat, "exp": self.exp}

    @classmethod
    def from_dict(cls, data: Any) -> "TokenPayload":
        """Build claims from decoded JSON.

        Raises:
            InvalidTokenError: If required claims are missing or mistyped.
        """
        if not isinstance(data, dict):
            raise InvalidTokenError()
        sub = data.get("sub")
        exp = data.get("exp")
        if not isinstance(sub, str) or not sub:
            raise InvalidTokenError()
        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            raise InvalidTokenError()
        iat = data.get("iat")
        return cls(
            sub=sub,
            safe_sub=sanitize_user_id(data.get("safeSub") or sub),
            iat=int(iat) if isinstance(iat, (int, float)) and not isinstance(iat, bool) else 0,
            exp=int(exp),
        )


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: int
    payload: TokenPayload


@dataclass(frozen=True)
class Principal:
    """An authenticated user."""

    id: str
    safe_id: str


class TokenService:
    """Issues and verifies session tokens and answers admin membership.

    Args:
        config: Immutable application configuration
        clock: Callable returning the current epoch time in seconds, used
            for ``iat``/``exp`` at issue time
    """

    def __init__(self, config: AppConfig, clock=time.time) -> None:
        self._config = config
        self._clock = clock

    def _secret(self) -> str:
        secret = self._config.auth_secret
        if not secret:
            raise ConfigurationError(
                "AUTH_SECRET (or JWT_SECRET) environment variable is not set"
            )
        return secret

    def issue(self, user_id: Any, ttl_seconds: Optional[int] = None) -> IssuedToken:
        """Issue a signed token for ``user_id``.

        Args:
            user_id: Raw user id; carried verbatim as ``sub`` alongside its
                sanitized form
            ttl_seconds: Lifetime; defaults to the configured AUTH_TOKEN_TTL

        Raises:
            ConfigurationError: If no signing secret is configured.
            InvalidIdentityError: If the id sanitizes to nothing.
        """
        secret = self._secret()
        safe_id = require_safe_id(user_id)
        ttl = int(ttl_seconds) if ttl_seconds else self._config.token_ttl_seconds
        now = int(self._clock())
        payload = TokenPayload(sub=str(user_id), safe_sub=safe_id, iat=now, exp=now + ttl)
        token = jwt.encode(payload.to_dict(), secret, algorithm=JWT_ALGORITHM)
        return IssuedToken(token=token, expires_at=payload.exp, payload=payload)

    def verify(self, token: Optional[str]) -> TokenPayload:
        """Verify ``token`` and return its claims.

        Raises:
            ConfigurationError: If no signing secret is configured.
            InvalidTokenError: Missing, malformed or undecodable token.
            InvalidSignatureError: Signature does not match.
            ExpiredTokenError: ``exp`` is at or before now.
        """
        secret = self._secret()
        if not token or not isinstance(token, str):
            raise InvalidTokenError("Token missing")
        try:
            data = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError() from e
        except jwt.ExpiredSignatureError as e:
            raise ExpiredTokenError() from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(str(e)) from e
        return TokenPayload.from_dict(data)

    def is_admin(self, user_id: Any) -> bool:
        safe_id = sanitize_user_id(user_id)
        if not safe_id:
            return False
        return safe_id in self._config.admins

    def authenticate(self, user_id: Any, password: Optional[str]) -> Optional[Principal]:
        """Check ``password`` against the configured credential map.

        Returns:
            The principal on success, None for unknown users or wrong passwords.
        """
        safe_id = sanitize_user_id(user_id)
        if not safe_id or not password:
            return None
        stored = self._config.credentials.get(safe_id)
        if not stored:
            return None
        if not _password_matches(str(password), stored):
            logger.info("Password rejected", extra={"user_id": safe_id})
            return None
        return Principal(id=str(user_id).strip(), safe_id=safe_id)


def _password_matches(candidate: str, stored: str) -> bool:
    if stored.startswith(BCRYPT_PREFIXES):
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), stored.encode("utf-8"))
        except ValueError:
            # Malformed hash, or a candidate longer than bcrypt accepts
            logger.warning("bcrypt password check failed")
            return False
    if stored.startswith(PLAIN_PREFIX):
        stored = stored[len(PLAIN_PREFIX):]
    return hmac.compare_digest(candidate.encode("utf-8"), stored.encode("utf-8"))


def extract_token(authorization: Optional[str], cookie_value: Optional[str]) -> Optional[str]:
    """Pick the session token from a bearer header or the auth cookie.

    Args:
        authorization: Raw ``Authorization`` header value
        cookie_value: Raw value of the ``auth_token`` cookie
    """
    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
        if token:
            return token
    if cookie_value:
        return unquote(cookie_value).strip() or None
    return None
