"""
Authentication endpoints:
  POST /auth/signup   — create user + profile, start a session
  POST /auth/signin   — start a session
  POST /auth/signout  — revoke the current session
  GET  /auth/session  — who am I (user, admin flag, profile)
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wishwall.config import settings
from wishwall.database import get_db
from wishwall.models import AuthSession, Profile, User
from wishwall.schemas import (
    AuthResponse,
    ProfileResponse,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
)
from wishwall.security import (
    SessionContext,
    create_access_token,
    get_current_session,
    get_password_hash,
    verify_password,
)

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _session_response(user: User, profile: Optional[Profile]) -> SessionResponse:
    return SessionResponse(
        user_id=user.id,
        email=user.email,
        is_admin=user.is_admin,
        profile=ProfileResponse.model_validate(profile) if profile else None,
    )


async def _email_taken(db: AsyncSession, email: str) -> bool:
    rows = await db.execute(select(User.id).where(User.email == email))
    return rows.scalar_one_or_none() is not None


def _email_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Email is already registered",
    )


async def _start_session(db: AsyncSession, user: User) -> str:
    auth_session = AuthSession(user_id=user.id)
    db.add(auth_session)
    await db.flush()
    return create_access_token(user.id, auth_session.id)


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def sign_up(body: SignUpRequest, db: AsyncSession = Depends(get_db)):
    """
    Register an account.

    The profile row is provisioned in the same transaction, so every user
    has exactly one profile from the start.
    """
    with tracer.start_as_current_span("sign_up"):
        email = body.email.lower()
        if await _email_taken(db, email):
            raise _email_conflict()

        user = User(
            email=email,
            password_hash=get_password_hash(body.password),
            is_admin=email in settings.admin_email_set,
        )
        db.add(user)
        try:
            await db.flush()  # get user.id before the profile references it
        except IntegrityError:
            # a concurrent sign-up took the address between check and insert
            raise _email_conflict()

        profile = Profile(id=user.id, full_name=body.full_name, city=body.city)
        db.add(profile)
        token = await _start_session(db, user)
        await db.commit()

        logger.info("Created user %s (id=%s, admin=%s)", email, user.id, user.is_admin)
        return AuthResponse(access_token=token, session=_session_response(user, profile))


@router.post("/signin", response_model=AuthResponse)
async def sign_in(body: SignInRequest, db: AsyncSession = Depends(get_db)):
    with tracer.start_as_current_span("sign_in"):
        rows = await db.execute(select(User).where(User.email == body.email.lower()))
        user = rows.scalar_one_or_none()
        if user is None or not verify_password(body.password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        token = await _start_session(db, user)
        await db.commit()
        logger.info("User %s signed in", user.id)
        return AuthResponse(access_token=token, session=_session_response(user, user.profile))


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
async def sign_out(
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    auth_session = await db.get(AuthSession, session.session_id)
    if auth_session is not None:
        auth_session.revoked_at = datetime.now(timezone.utc).replace(tzinfo=None)
        await db.commit()
    logger.info("User %s signed out", session.user_id)


@router.get("/session", response_model=SessionResponse)
async def get_session(session: SessionContext = Depends(get_current_session)):
    return SessionResponse(
        user_id=session.user_id,
        email=session.email,
        is_admin=session.is_admin,
        profile=ProfileResponse.model_validate(session.profile) if session.profile else None,
    )
