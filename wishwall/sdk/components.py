"""
Page state for the wish wall, independent of any UI toolkit.

  WishCard       — one wish with its like button and optional delete
  PublicFeed     — the public wall, refetched on every change event
  MyWishes       — the signed-in user's wishes
  AdminDashboard — every wish plus aggregate counts
  WishEditor     — create / edit form
  ProfileEditor  — profile form

User-facing messages go through a `notify` callable (a toast in a UI);
field validation errors are kept per field in `errors`. Loads run as tasks
owned by the page: stop() cancels them and no state changes afterwards.
"""
import abc
import asyncio
import contextlib
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from wishwall.realtime import ChangeEvent, Handler
from wishwall.schemas import AdminStats, ProfileResponse, WishResponse, field_errors
from wishwall.sdk.client import WishWallClient, WishWallError

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]
Callback = Callable[[], Union[None, Awaitable[None]]]
# subscribe(handler) → object with unsubscribe()
Subscribe = Callable[[Handler], Any]

SIGN_IN_TO_LIKE = "Please sign in to like wishes"
LIKE_FAILED = "Failed to update like"
DELETE_CONFIRMATION = "Are you sure you want to delete this wish?"
WISH_DELETED = "Wish deleted"
DELETE_FAILED = "Failed to delete wish"
LOAD_FAILED = "Failed to load wishes"
WISH_LOAD_FAILED = "Failed to load wish"
WISH_SAVED = "Wish saved"
SAVE_FAILED = "Failed to save wish"
PROFILE_SAVED = "Profile updated"
PROFILE_FAILED = "Failed to update profile"
PROFILE_LOAD_FAILED = "Failed to load profile"


def _log_notifier(message: str) -> None:
    logger.info("notify: %s", message)


async def _run_callback(callback: Optional[Callback]) -> None:
    if callback is None:
        return
    result = callback()
    if inspect.isawaitable(result):
        await result


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


class WishCard:
    """
    A wish with its like toggle.

    Local `liked` / `likes_count` change only after the API confirms the
    toggle, taking the server's count. A failed call leaves them untouched.
    `in_flight` blocks a second toggle while one is pending.
    """

    def __init__(
        self,
        client: WishWallClient,
        wish: WishResponse,
        *,
        liked: Optional[bool] = None,
        notify: Optional[Notifier] = None,
        on_like_change: Optional[Callback] = None,
        on_delete: Optional[Callback] = None,
    ) -> None:
        self._client = client
        self.wish = wish
        self.liked = wish.liked_by_me if liked is None else liked
        self.likes_count = wish.likes_count
        self.in_flight = False
        self._notify = notify or _log_notifier
        self._on_like_change = on_like_change
        self._on_delete = on_delete

    async def toggle_like(self) -> bool:
        """Returns True when the like state changed."""
        if self.in_flight:
            return False
        if self._client.session is None:
            self._notify(SIGN_IN_TO_LIKE)
            return False

        self.in_flight = True
        try:
            if self.liked:
                result = await self._client.unlike(self.wish.id)
            else:
                result = await self._client.like(self.wish.id)
        except WishWallError as exc:
            self._notify(exc.message or LIKE_FAILED)
            return False
        finally:
            self.in_flight = False

        self.liked = result.liked
        self.likes_count = result.likes_count
        await _run_callback(self._on_like_change)
        return True

    async def delete(self, confirm: Callable[[str], bool]) -> bool:
        if not confirm(DELETE_CONFIRMATION):
            return False
        try:
            await self._client.delete_wish(self.wish.id)
        except WishWallError as exc:
            self._notify(exc.message or DELETE_FAILED)
            return False

        self._notify(WISH_DELETED)
        await _run_callback(self._on_delete)
        return True


class WishListPage(abc.ABC):
    """Base for pages that show a list of WishCards; subclasses supply _fetch()."""

    def __init__(
        self,
        client: WishWallClient,
        *,
        notify: Optional[Notifier] = None,
        on_update: Optional[Callable[[list[WishResponse]], None]] = None,
    ) -> None:
        self._client = client
        self._notify = notify or _log_notifier
        self._on_update = on_update
        self.wishes: list[WishResponse] = []
        self.cards: list[WishCard] = []
        self.loading = True
        self.closed = False
        self._load_task: Optional[asyncio.Task] = None

    @abc.abstractmethod
    async def _fetch(self) -> Any:
        """Load whatever _apply() expects."""

    def _make_card(self, wish: WishResponse) -> WishCard:
        return WishCard(self._client, wish, notify=self._notify)

    def _apply(self, result: Any) -> None:
        self.wishes = result
        self.cards = [self._make_card(w) for w in result]

    async def refresh(self) -> None:
        """Reload the list. A newer refresh supersedes one still in flight."""
        if self.closed:
            return
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        task = self._load_task = asyncio.create_task(self._fetch())

        try:
            result = await task
        except asyncio.CancelledError:
            if task.cancelled() and (self.closed or task is not self._load_task):
                return
            raise
        except WishWallError as exc:
            if not self.closed:
                self.loading = False
                self._notify(exc.message or LOAD_FAILED)
            return

        if self.closed:
            return
        self._apply(result)
        self.loading = False
        if self._on_update is not None:
            self._on_update(self.wishes)

    async def start(self) -> None:
        await self.refresh()

    async def stop(self) -> None:
        self.closed = True
        await _cancel(self._load_task)


class PublicFeed(WishListPage):
    """
    The public wall.

    Subscribes before the first load so no change is missed. Each change
    event schedules a full refetch; events that arrive while a refetch is
    pending fold into the next one.
    """

    def __init__(
        self,
        client: WishWallClient,
        subscribe: Subscribe,
        *,
        notify: Optional[Notifier] = None,
        on_update: Optional[Callable[[list[WishResponse]], None]] = None,
    ) -> None:
        super().__init__(client, notify=notify, on_update=on_update)
        self._subscribe = subscribe
        self._subscription = None
        self._dirty = False
        self._refetch_task: Optional[asyncio.Task] = None

    async def _fetch(self) -> list[WishResponse]:
        return await self._client.list_public_wishes()

    def _make_card(self, wish: WishResponse) -> WishCard:
        return WishCard(
            self._client, wish, notify=self._notify, on_like_change=self.request_refresh
        )

    async def start(self) -> None:
        self._subscription = self._subscribe(self._on_change)
        await self.refresh()

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug("Public feed change: %s", event.type.value)
        self.request_refresh()

    def request_refresh(self) -> None:
        if self.closed:
            return
        self._dirty = True
        if self._refetch_task is None or self._refetch_task.done():
            self._refetch_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while self._dirty and not self.closed:
            self._dirty = False
            await self.refresh()

    async def stop(self) -> None:
        self.closed = True
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        await _cancel(self._refetch_task)
        await _cancel(self._load_task)


class MyWishes(WishListPage):
    async def _fetch(self) -> list[WishResponse]:
        return await self._client.list_my_wishes()

    def _make_card(self, wish: WishResponse) -> WishCard:
        return WishCard(self._client, wish, notify=self._notify, on_delete=self.refresh)


class AdminDashboard(WishListPage):
    def __init__(self, client: WishWallClient, **kwargs) -> None:
        super().__init__(client, **kwargs)
        self.stats = AdminStats(total_users=0, total_wishes=0, total_likes=0)

    async def _fetch(self) -> tuple[list[WishResponse], AdminStats]:
        wishes = await self._client.list_all_wishes()
        stats = await self._client.admin_stats()
        return wishes, stats

    def _apply(self, result: tuple[list[WishResponse], AdminStats]) -> None:
        wishes, self.stats = result
        super()._apply(wishes)

    def _make_card(self, wish: WishResponse) -> WishCard:
        return WishCard(self._client, wish, notify=self._notify, on_delete=self.refresh)


class WishEditor:
    """Create form, or edit form when wish_id is given (load() pre-fills)."""

    def __init__(
        self,
        client: WishWallClient,
        wish_id: Optional[str] = None,
        *,
        notify: Optional[Notifier] = None,
    ) -> None:
        self._client = client
        self.wish_id = wish_id
        self._notify = notify or _log_notifier
        self.values: dict[str, Any] = {
            "title": "",
            "content": "",
            "image_url": "",
            "is_public": True,
        }
        self.errors: dict[str, str] = {}
        self.saving = False

    async def load(self) -> bool:
        """Pre-fill from the stored wish. Returns False when it could not be read."""
        if self.wish_id is None:
            return True
        try:
            wish = await self._client.get_wish(self.wish_id)
        except WishWallError as exc:
            self._notify(exc.message or WISH_LOAD_FAILED)
            return False
        self.values = {
            "title": wish.title,
            "content": wish.content,
            "image_url": wish.image_url or "",
            "is_public": wish.is_public,
        }
        return True

    async def submit(self, **changes: Any) -> Optional[WishResponse]:
        self.values.update(changes)
        self.errors = {}
        self.saving = True
        try:
            if self.wish_id is None:
                saved = await self._client.create_wish(**self.values)
            else:
                saved = await self._client.update_wish(self.wish_id, **self.values)
        except ValidationError as exc:
            self.errors = field_errors(exc)
            return None
        except WishWallError as exc:
            self._notify(exc.message or SAVE_FAILED)
            return None
        finally:
            self.saving = False

        self._notify(WISH_SAVED)
        return saved


class ProfileEditor:
    def __init__(self, client: WishWallClient, *, notify: Optional[Notifier] = None) -> None:
        self._client = client
        self._notify = notify or _log_notifier
        self.values: dict[str, str] = {"full_name": "", "city": "", "avatar_url": ""}
        self.errors: dict[str, str] = {}
        self.saving = False

    async def load(self) -> bool:
        try:
            profile = await self._client.get_profile()
        except WishWallError as exc:
            self._notify(exc.message or PROFILE_LOAD_FAILED)
            return False
        self.values = {
            "full_name": profile.full_name,
            "city": profile.city or "",
            "avatar_url": profile.avatar_url or "",
        }
        return True

    async def submit(self, **changes: str) -> Optional[ProfileResponse]:
        self.values.update(changes)
        self.errors = {}
        self.saving = True
        try:
            saved = await self._client.update_profile(**self.values)
        except ValidationError as exc:
            self.errors = field_errors(exc)
            return None
        except WishWallError as exc:
            self._notify(exc.message or PROFILE_FAILED)
            return None
        finally:
            self.saving = False

        self._notify(PROFILE_SAVED)
        return saved
