"""
SSE transport for the public-wish change feed.

RemoteChangeFeed(client).subscribe(handler) has the same shape as the
in-process ChangeFeed subscription used by the server, so PublicFeed can run
against either. There is no reconnect: when the stream ends the
subscription simply goes inactive.
"""
import asyncio
import json
import logging
from typing import Optional

import httpx

from wishwall.realtime import ChangeEvent, Handler
from wishwall.sdk.client import WishWallClient

logger = logging.getLogger(__name__)

PUBLIC_WISHES_STREAM = "/realtime/wishes/public"


class RemoteSubscription:
    def __init__(self, client: WishWallClient, path: str, handler: Handler) -> None:
        self._client = client
        self._path = path
        self._handler = handler
        self._task: Optional[asyncio.Task] = asyncio.create_task(self._run())

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def unsubscribe(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        try:
            async with self._client.http.stream(
                "GET",
                self._path,
                headers=self._client.auth_headers(),
                timeout=httpx.Timeout(10.0, read=None),
            ) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    if line.startswith("data:"):
                        await self._dispatch(line[len("data:"):])
        except httpx.HTTPError as exc:
            logger.warning("Change stream %s closed: %s", self._path, exc)

    async def _dispatch(self, data: str) -> None:
        try:
            event = ChangeEvent.from_dict(json.loads(data))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Skipping malformed frame on %s: %s", self._path, exc)
            return
        try:
            await self._handler(event)
        except Exception as exc:
            logger.error(
                "Change handler failed for %s %s: %s", event.type.value, event.table, exc
            )


class RemoteChangeFeed:
    def __init__(self, client: WishWallClient, path: str = PUBLIC_WISHES_STREAM) -> None:
        self._client = client
        self._path = path

    def subscribe(self, handler: Handler) -> RemoteSubscription:
        return RemoteSubscription(self._client, self._path, handler)
