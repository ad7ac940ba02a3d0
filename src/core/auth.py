"""
Bearer-token auth for the search API.

Tokens are Supabase access tokens (HS256, audience "authenticated").
Public search routes take the caller optionally, to attribute misses and
nothing else; admin analytics routes need `app_metadata.role` to be one of
`settings.admin_roles`.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.settings import get_settings
from core.logging import get_logger

logger = get_logger(__name__)


bearer_scheme = HTTPBearer(
    scheme_name="Supabase JWT",
    description="Access token issued by Supabase Auth.",
    auto_error=False,
)

REQUIRED_CLAIMS = ["sub", "exp", "aud", "role"]

_TOKEN_ERRORS = {
    jwt.ExpiredSignatureError: "Token has expired",
    jwt.InvalidAudienceError: "Invalid token audience",
}


@dataclass
class SupabaseUser:
    """Caller identity taken from a verified token."""
    id: str
    email: Optional[str] = None
    role: str = "authenticated"
    is_anonymous: bool = False
    app_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def app_role(self) -> str:
        return str(self.app_metadata.get("role", "")).lower()

    @property
    def is_admin(self) -> bool:
        return self.app_role in get_settings().admin_roles


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_jwt(token: str) -> dict:
    """
    Decode and verify a Supabase access token.

    Raises:
        HTTPException: 401 for an expired, mis-addressed or malformed token.
    """
    try:
        return jwt.decode(
            token,
            get_settings().supabase_jwt_secret,
            algorithms=["HS256"],
            audience="authenticated",
            options={"require": REQUIRED_CLAIMS},
        )
    except jwt.InvalidTokenError as e:
        detail = next(
            (msg for exc_type, msg in _TOKEN_ERRORS.items() if isinstance(e, exc_type)),
            f"Invalid token: {e}",
        )
        logger.info("Rejected bearer token", reason=detail)
        raise _unauthorized(detail)


def extract_user(payload: dict) -> SupabaseUser:
    return SupabaseUser(
        id=str(payload["sub"]),
        email=payload.get("email"),
        role=payload.get("role", "authenticated"),
        is_anonymous=bool(payload.get("is_anonymous", False)),
        app_metadata=payload.get("app_metadata") or {},
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[SupabaseUser]:
    """The caller, or None when no token was sent. A bad token is still a 401."""
    if not credentials or not credentials.credentials:
        return None
    return extract_user(verify_jwt(credentials.credentials))


def require_auth(
    user: Optional[SupabaseUser] = Depends(get_current_user),
) -> SupabaseUser:
    if user is None:
        raise _unauthorized("Authorization header required")
    return user


def require_admin(user: SupabaseUser = Depends(require_auth)) -> SupabaseUser:
    if not user.is_admin:
        logger.warning("Admin endpoint refused", user_id=user.id, app_role=user.app_role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user
