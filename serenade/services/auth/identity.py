"""
Identity: HS256 access tokens from the external identity provider (sub = user id),
and the shared-key guard for admin routes.
"""
import hashlib
import hmac
import logging
from dataclasses import dataclass

import jwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from serenade.core.config import settings
from serenade.db.session import get_db
from serenade.services.users.service import UserService

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    id: str
    email: str | None = None


def decode_access_token(token: str) -> AuthUser:
    options = {"require": ["sub", "exp"]}
    try:
        claims = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=["HS256"],
            audience=settings.auth_jwt_audience or None,
            options=options if settings.auth_jwt_audience else {**options, "verify_aud": False},
        )
    except jwt.PyJWTError as e:
        logger.info("auth_token_rejected", extra={"error": type(e).__name__})
        raise HTTPException(status_code=401, detail="Unauthorized") from e
    return AuthUser(id=str(claims["sub"]), email=claims.get("email"))


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: Session = Depends(get_db),
) -> AuthUser:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = decode_access_token(credentials.credentials)
    UserService(db).get_or_create(user.id, user.email)
    return user


def require_admin(x_admin_key: str | None = Header(default=None, alias="X-Admin-Key")) -> str:
    """Returns a short fingerprint of the key for the audit trail; the key itself is never stored."""
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not hmac.compare_digest(x_admin_key, expected):
        raise HTTPException(status_code=403, detail="Forbidden")
    return "key:" + hashlib.sha256(x_admin_key.encode()).hexdigest()[:8]
