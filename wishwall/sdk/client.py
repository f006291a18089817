"""
Async HTTP client for the Wish Wall API.

Form payloads are built from the shared Pydantic schemas *before* any request
is sent, so invalid input raises pydantic.ValidationError locally and never
reaches the API. Non-2xx responses raise WishWallError carrying the API's
`detail` message.

The signed-in state lives on an explicit Session object:
  sign_up / sign_in  → session created
  refresh_session    → session re-read from /auth/session
  sign_out           → token revoked, session cleared
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from wishwall.schemas import (
    AdminStats,
    AuthResponse,
    LikeResponse,
    ProfileResponse,
    ProfileUpdate,
    SessionResponse,
    SignInRequest,
    SignUpRequest,
    WishCreate,
    WishResponse,
    WishUpdate,
)

logger = logging.getLogger(__name__)


class WishWallError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotAuthenticatedError(WishWallError):
    pass


@dataclass
class Session:
    access_token: str
    user_id: str
    email: str
    is_admin: bool
    profile: Optional[ProfileResponse] = None

    def update(self, info: SessionResponse) -> None:
        self.user_id = info.user_id
        self.email = info.email
        self.is_admin = info.is_admin
        self.profile = info.profile


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str):
        return detail
    if isinstance(detail, list):
        # FastAPI 422 body: [{"loc": [...], "msg": "..."}]
        return "; ".join(str(item.get("msg", item)) for item in detail)
    return resp.text or resp.reason_phrase


class WishWallClient:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url
        self.http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.session: Optional[Session] = None

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "WishWallClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def auth_headers(self) -> dict[str, str]:
        if self.session is None:
            return {}
        return {"Authorization": f"Bearer {self.session.access_token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        requires_session: bool = False,
    ) -> Any:
        if requires_session and self.session is None:
            raise NotAuthenticatedError("Please sign in first")

        resp = await self.http.request(method, path, json=json, headers=self.auth_headers())
        if resp.is_error:
            message = _error_message(resp)
            logger.debug("%s %s failed with %d: %s", method, path, resp.status_code, message)
            raise WishWallError(message, resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    # ── Auth ──────────────────────────────────────────────────────────────

    def _start_session(self, data: dict) -> Session:
        auth = AuthResponse.model_validate(data)
        self.session = Session(
            access_token=auth.access_token,
            user_id=auth.session.user_id,
            email=auth.session.email,
            is_admin=auth.session.is_admin,
            profile=auth.session.profile,
        )
        return self.session

    async def sign_up(
        self, email: str, password: str, full_name: str, city: str = ""
    ) -> Session:
        body = SignUpRequest(email=email, password=password, full_name=full_name, city=city)
        data = await self._request("POST", "/auth/signup", json=body.model_dump(mode="json"))
        return self._start_session(data)

    async def sign_in(self, email: str, password: str) -> Session:
        body = SignInRequest(email=email, password=password)
        data = await self._request("POST", "/auth/signin", json=body.model_dump(mode="json"))
        return self._start_session(data)

    async def refresh_session(self) -> Session:
        data = await self._request("GET", "/auth/session", requires_session=True)
        self.session.update(SessionResponse.model_validate(data))
        return self.session

    async def sign_out(self) -> None:
        if self.session is None:
            return
        try:
            await self._request("POST", "/auth/signout", requires_session=True)
        finally:
            self.session = None

    # ── Profile ───────────────────────────────────────────────────────────

    async def get_profile(self) -> ProfileResponse:
        data = await self._request("GET", "/profile", requires_session=True)
        return ProfileResponse.model_validate(data)

    async def update_profile(
        self, full_name: str, city: str = "", avatar_url: str = ""
    ) -> ProfileResponse:
        body = ProfileUpdate(full_name=full_name, city=city, avatar_url=avatar_url)
        data = await self._request(
            "PUT", "/profile", json=body.model_dump(mode="json"), requires_session=True
        )
        profile = ProfileResponse.model_validate(data)
        if self.session is not None:
            self.session.profile = profile
        return profile

    # ── Wishes ────────────────────────────────────────────────────────────

    async def list_public_wishes(self) -> list[WishResponse]:
        data = await self._request("GET", "/wishes/public")
        return [WishResponse.model_validate(item) for item in data]

    async def list_my_wishes(self) -> list[WishResponse]:
        data = await self._request("GET", "/wishes/mine", requires_session=True)
        return [WishResponse.model_validate(item) for item in data]

    async def list_all_wishes(self) -> list[WishResponse]:
        data = await self._request("GET", "/wishes", requires_session=True)
        return [WishResponse.model_validate(item) for item in data]

    async def liked_wish_ids(self) -> set[str]:
        data = await self._request("GET", "/wishes/likes/mine", requires_session=True)
        return set(data)

    async def get_wish(self, wish_id: str) -> WishResponse:
        data = await self._request("GET", f"/wishes/{wish_id}")
        return WishResponse.model_validate(data)

    async def create_wish(
        self, title: str, content: str, image_url: str = "", is_public: bool = True
    ) -> WishResponse:
        body = WishCreate(title=title, content=content, image_url=image_url, is_public=is_public)
        data = await self._request(
            "POST", "/wishes", json=body.model_dump(mode="json"), requires_session=True
        )
        return WishResponse.model_validate(data)

    async def update_wish(
        self,
        wish_id: str,
        title: str,
        content: str,
        image_url: str = "",
        is_public: bool = True,
    ) -> WishResponse:
        body = WishUpdate(title=title, content=content, image_url=image_url, is_public=is_public)
        data = await self._request(
            "PUT", f"/wishes/{wish_id}", json=body.model_dump(mode="json"), requires_session=True
        )
        return WishResponse.model_validate(data)

    async def delete_wish(self, wish_id: str) -> None:
        await self._request("DELETE", f"/wishes/{wish_id}", requires_session=True)

    async def like(self, wish_id: str) -> LikeResponse:
        data = await self._request("POST", f"/wishes/{wish_id}/like", requires_session=True)
        return LikeResponse.model_validate(data)

    async def unlike(self, wish_id: str) -> LikeResponse:
        data = await self._request("DELETE", f"/wishes/{wish_id}/like", requires_session=True)
        return LikeResponse.model_validate(data)

    # ── Admin ─────────────────────────────────────────────────────────────

    async def admin_stats(self) -> AdminStats:
        data = await self._request("GET", "/admin/stats", requires_session=True)
        return AdminStats.model_validate(data)
