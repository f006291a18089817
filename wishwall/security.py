"""
Password hashing, access tokens and the per-request session context.

A token is a JWT whose `jti` names a row in auth_sessions. The token is
honoured only while that row exists and has not been revoked, so signing out
invalidates it before it expires.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession

from wishwall.config import settings
from wishwall.database import get_db
from wishwall.models import AuthSession, Profile, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, session_id: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(seconds=settings.access_token_ttl_seconds)
    payload = {"sub": user_id, "jti": session_id, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


@dataclass(frozen=True)
class SessionContext:
    """Who is calling. Resolved once per request and passed to handlers."""
    user_id: str
    email: str
    is_admin: bool
    session_id: str
    profile: Optional[Profile] = None

    def can_moderate(self, owner_id: str) -> bool:
        return self.is_admin or self.user_id == owner_id


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _load_session(token: str, db: AsyncSession) -> SessionContext:
    """Resolve a bearer token, raising 401 when it is invalid, expired or revoked."""
    payload = decode_access_token(token)
    if not payload or "sub" not in payload or "jti" not in payload:
        raise _unauthorized("Invalid or expired token")

    auth_session = await db.get(AuthSession, payload["jti"])
    if (
        auth_session is None
        or auth_session.revoked_at is not None
        or auth_session.user_id != payload["sub"]
    ):
        raise _unauthorized("Session has ended, please sign in again")

    user = await db.get(User, payload["sub"])
    if user is None:
        raise _unauthorized("User not found")

    return SessionContext(
        user_id=user.id,
        email=user.email,
        is_admin=user.is_admin,
        session_id=auth_session.id,
        profile=user.profile,
    )


async def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[SessionContext]:
    """
    Session for public reads.

    None when no token was sent, and also when the token is no longer valid:
    a visitor holding a stale token still sees the public wall, just
    anonymously.
    """
    if credentials is None:
        return None
    try:
        return await _load_session(credentials.credentials, db)
    except HTTPException as exc:
        logger.info("Treating request with stale token as anonymous: %s", exc.detail)
        return None


async def get_current_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> SessionContext:
    if credentials is None:
        raise _unauthorized("Authentication required")
    return await _load_session(credentials.credentials, db)


async def require_admin(
    session: SessionContext = Depends(get_current_session),
) -> SessionContext:
    if not session.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return session
