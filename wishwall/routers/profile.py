"""
Profile endpoints (caller's own profile only):
  GET /profile — read
  PUT /profile — update full_name / city / avatar_url
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from wishwall.database import get_db
from wishwall.models import Profile
from wishwall.schemas import ProfileResponse, ProfileUpdate
from wishwall.security import SessionContext, get_current_session

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


async def _own_profile(db: AsyncSession, session: SessionContext) -> Profile:
    profile = await db.get(Profile, session.user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.get("", response_model=ProfileResponse)
async def get_profile(
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return await _own_profile(db, session)


@router.put("", response_model=ProfileResponse)
async def update_profile(
    body: ProfileUpdate,
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    with tracer.start_as_current_span("update_profile"):
        profile = await _own_profile(db, session)
        profile.full_name = body.full_name
        profile.city = body.city
        profile.avatar_url = str(body.avatar_url) if body.avatar_url else None
        await db.commit()
        logger.info("Profile %s updated", profile.id)
        return profile
