"""
Wish endpoints:
  GET    /wishes             — every wish (admin)
  GET    /wishes/public      — public wall, newest first
  GET    /wishes/mine        — caller's wishes, newest first
  GET    /wishes/likes/mine  — ids of wishes the caller has liked
  GET    /wishes/{id}        — single wish (edit form pre-fill)
  POST   /wishes             — create
  PUT    /wishes/{id}        — update (owner)
  DELETE /wishes/{id}        — delete (owner or admin)
  POST   /wishes/{id}/like   — like
  DELETE /wishes/{id}/like   — unlike

Every write publishes a ChangeEvent after commit so realtime subscribers
can refetch.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from opentelemetry import trace
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wishwall.database import get_db
from wishwall.models import Like, Wish
from wishwall.realtime import ChangeEvent, ChangeFeed, ChangeType, get_change_feed
from wishwall.schemas import LikeResponse, WishCreate, WishResponse, WishUpdate
from wishwall.security import (
    SessionContext,
    get_current_session,
    get_optional_session,
    require_admin,
)
from wishwall.telemetry import LIKE_TOGGLES_TOTAL, WISHES_CREATED_TOTAL

logger = logging.getLogger(__name__)
router = APIRouter()
tracer = trace.get_tracer(__name__)


def _build_wish_response(wish: Wish, liked_ids: frozenset[str] = frozenset()) -> WishResponse:
    response = WishResponse.model_validate(wish)
    response.liked_by_me = wish.id in liked_ids
    return response


def _wish_record(wish: Wish) -> dict:
    return {
        "id": wish.id,
        "user_id": wish.user_id,
        "title": wish.title,
        "content": wish.content,
        "image_url": wish.image_url,
        "is_public": wish.is_public,
        "likes_count": wish.likes_count,
        "created_at": wish.created_at.isoformat(),
    }


async def _fetch_wish(db: AsyncSession, wish_id: str) -> Optional[Wish]:
    # populate_existing: counters may have moved under an identity-mapped row
    rows = await db.execute(
        select(Wish).where(Wish.id == wish_id).execution_options(populate_existing=True)
    )
    return rows.scalar_one_or_none()


async def _visible_wish(
    db: AsyncSession, wish_id: str, session: Optional[SessionContext]
) -> Wish:
    """Public wishes are visible to all; private ones to owner and admins."""
    wish = await _fetch_wish(db, wish_id)
    if wish is None:
        raise HTTPException(status_code=404, detail="Wish not found")
    if not wish.is_public and (session is None or not session.can_moderate(wish.user_id)):
        raise HTTPException(status_code=404, detail="Wish not found")
    return wish


async def _liked_wish_ids(db: AsyncSession, user_id: str) -> frozenset[str]:
    rows = await db.execute(select(Like.wish_id).where(Like.user_id == user_id))
    return frozenset(r[0] for r in rows.all())


async def _list(db: AsyncSession, stmt, session: Optional[SessionContext]) -> list[WishResponse]:
    rows = await db.execute(stmt.order_by(Wish.created_at.desc()))
    wishes = rows.scalars().all()
    liked = await _liked_wish_ids(db, session.user_id) if session else frozenset()
    return [_build_wish_response(w, liked) for w in wishes]


# ─────────────────────────── Reads ───────────────────────────────────────

@router.get("", response_model=list[WishResponse])
async def list_all_wishes(
    session: SessionContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _list(db, select(Wish), session)


@router.get("/public", response_model=list[WishResponse])
async def list_public_wishes(
    session: Optional[SessionContext] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    return await _list(db, select(Wish).where(Wish.is_public.is_(True)), session)


@router.get("/mine", response_model=list[WishResponse])
async def list_my_wishes(
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return await _list(db, select(Wish).where(Wish.user_id == session.user_id), session)


@router.get("/likes/mine", response_model=list[str])
async def list_my_likes(
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    return sorted(await _liked_wish_ids(db, session.user_id))


@router.get("/{wish_id}", response_model=WishResponse)
async def get_wish(
    wish_id: str,
    session: Optional[SessionContext] = Depends(get_optional_session),
    db: AsyncSession = Depends(get_db),
):
    wish = await _visible_wish(db, wish_id, session)
    liked = await _liked_wish_ids(db, session.user_id) if session else frozenset()
    return _build_wish_response(wish, liked)


# ─────────────────────────── Writes ──────────────────────────────────────

@router.post("", response_model=WishResponse, status_code=status.HTTP_201_CREATED)
async def create_wish(
    body: WishCreate,
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    with tracer.start_as_current_span("create_wish") as span:
        wish = Wish(
            user_id=session.user_id,
            title=body.title,
            content=body.content,
            image_url=str(body.image_url) if body.image_url else None,
            is_public=body.is_public,
            likes_count=0,
        )
        db.add(wish)
        await db.commit()
        wish = await _fetch_wish(db, wish.id)

        span.set_attribute("wish.id", wish.id)
        span.set_attribute("wish.is_public", wish.is_public)
        WISHES_CREATED_TOTAL.inc()
        logger.info("Wish created: %s by user %s", wish.id, wish.user_id)

        await feed.publish(ChangeEvent("wishes", ChangeType.INSERT, record=_wish_record(wish)))
        return _build_wish_response(wish)


@router.put("/{wish_id}", response_model=WishResponse)
async def update_wish(
    wish_id: str,
    body: WishUpdate,
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    with tracer.start_as_current_span("update_wish"):
        wish = await _fetch_wish(db, wish_id)
        if wish is None:
            raise HTTPException(status_code=404, detail="Wish not found")
        if wish.user_id != session.user_id:
            raise HTTPException(status_code=403, detail="Only the owner can edit this wish")

        old_record = _wish_record(wish)
        wish.title = body.title
        wish.content = body.content
        wish.image_url = str(body.image_url) if body.image_url else None
        wish.is_public = body.is_public
        await db.commit()

        logger.info("Wish updated: %s", wish.id)
        await feed.publish(
            ChangeEvent("wishes", ChangeType.UPDATE, record=_wish_record(wish), old_record=old_record)
        )
        liked = await _liked_wish_ids(db, session.user_id)
        return _build_wish_response(wish, liked)


@router.delete("/{wish_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_wish(
    wish_id: str,
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    with tracer.start_as_current_span("delete_wish"):
        wish = await _fetch_wish(db, wish_id)
        if wish is None:
            raise HTTPException(status_code=404, detail="Wish not found")
        if not session.can_moderate(wish.user_id):
            raise HTTPException(status_code=403, detail="Not allowed to delete this wish")

        old_record = _wish_record(wish)
        await db.execute(delete(Like).where(Like.wish_id == wish_id))
        await db.delete(wish)
        await db.commit()

        logger.info(
            "Wish deleted: %s by %s%s",
            wish_id, session.user_id, " (admin)" if session.user_id != wish.user_id else "",
        )
        await feed.publish(ChangeEvent("wishes", ChangeType.DELETE, old_record=old_record))


# ─────────────────────────── Likes ───────────────────────────────────────

@router.post("/{wish_id}/like", response_model=LikeResponse)
async def like_wish(
    wish_id: str,
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """
    Like a wish.

    The pair insert and the counter increment share one transaction and the
    counter is bumped in SQL, so concurrent likers cannot lose updates.
    """
    with tracer.start_as_current_span("like_wish"):
        await _visible_wish(db, wish_id, session)

        existing = await db.execute(
            select(Like).where(Like.user_id == session.user_id, Like.wish_id == wish_id)
        )
        if existing.scalar_one_or_none():
            raise HTTPException(status_code=409, detail="Wish already liked")

        db.add(Like(user_id=session.user_id, wish_id=wish_id))
        try:
            await db.flush()
        except IntegrityError:
            raise HTTPException(status_code=409, detail="Wish already liked")

        await db.execute(
            update(Wish).where(Wish.id == wish_id).values(likes_count=Wish.likes_count + 1)
        )
        await db.commit()
        wish = await _fetch_wish(db, wish_id)

        LIKE_TOGGLES_TOTAL.labels(action="like").inc()
        await feed.publish(
            ChangeEvent("likes", ChangeType.INSERT, record={"user_id": session.user_id, "wish_id": wish_id})
        )
        await feed.publish(ChangeEvent("wishes", ChangeType.UPDATE, record=_wish_record(wish)))
        return LikeResponse(wish_id=wish_id, liked=True, likes_count=wish.likes_count)


@router.delete("/{wish_id}/like", response_model=LikeResponse)
async def unlike_wish(
    wish_id: str,
    session: SessionContext = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
    feed: ChangeFeed = Depends(get_change_feed),
):
    """
    Unlike a wish. Only decrements when a like row was actually removed.

    A liker may withdraw their like even after the owner made the wish
    private; without a like row a private wish stays hidden (404).
    """
    with tracer.start_as_current_span("unlike_wish"):
        wish = await _fetch_wish(db, wish_id)
        if wish is None:
            raise HTTPException(status_code=404, detail="Wish not found")

        result = await db.execute(
            delete(Like).where(Like.user_id == session.user_id, Like.wish_id == wish_id)
        )
        removed = result.rowcount > 0
        if not removed and not wish.is_public and not session.can_moderate(wish.user_id):
            raise HTTPException(status_code=404, detail="Wish not found")
        if removed:
            await db.execute(
                update(Wish).where(Wish.id == wish_id).values(likes_count=Wish.likes_count - 1)
            )
        await db.commit()
        wish = await _fetch_wish(db, wish_id)

        if removed:
            LIKE_TOGGLES_TOTAL.labels(action="unlike").inc()
            await feed.publish(
                ChangeEvent("likes", ChangeType.DELETE, old_record={"user_id": session.user_id, "wish_id": wish_id})
            )
            await feed.publish(ChangeEvent("wishes", ChangeType.UPDATE, record=_wish_record(wish)))
        return LikeResponse(wish_id=wish_id, liked=False, likes_count=wish.likes_count)
