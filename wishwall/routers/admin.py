"""
Admin endpoints:
  GET /admin/stats — total users, wishes and likes (count-only queries)

Moderation of individual wishes goes through DELETE /wishes/{id}, which
admits admins as well as owners.
"""
from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wishwall.database import get_db
from wishwall.models import Like, Profile, Wish
from wishwall.schemas import AdminStats
from wishwall.security import SessionContext, require_admin

router = APIRouter()


@router.get("/stats", response_model=AdminStats)
async def get_stats(
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    total_users = await db.scalar(select(func.count()).select_from(Profile))
    total_wishes = await db.scalar(select(func.count()).select_from(Wish))
    total_likes = await db.scalar(select(func.count()).select_from(Like))
    return AdminStats(
        total_users=total_users or 0,
        total_wishes=total_wishes or 0,
        total_likes=total_likes or 0,
    )
