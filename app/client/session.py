"""
HTTP client for one signed-in session.

List and create responses are applied to the session's BookmarkView directly;
deletes only take effect when the matching event arrives on the change feed
opened by ``BookmarkSession.listen()``.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

import httpx
from httpx_ws import AsyncWebSocketSession, WebSocketDisconnect, WebSocketUpgradeError, aconnect_ws

from app.client.view import BookmarkView
from app.schemas.bookmark import BookmarkRead

logger = logging.getLogger(__name__)

FEED_PATH = "/api/bookmarks/ws"


class BookmarkAPIError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class FeedListener:
    """An open change feed. Every event received is applied to the session's view."""

    def __init__(self, websocket: AsyncWebSocketSession, view: BookmarkView):
        self._websocket = websocket
        self._view = view

    async def receive(self) -> dict:
        event = await self._websocket.receive_json()
        if self._view.apply_event(event):
            logger.debug(f"Applied {event['type']} event to the view")
        return event

    async def ping(self):
        await self._websocket.send_text("ping")

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict:
        try:
            return await self.receive()
        except WebSocketDisconnect as e:
            logger.info(f"Feed closed by server ({e.code})")
            raise StopAsyncIteration


class BookmarkSession:
    def __init__(
        self,
        base_url: str,
        access_token: str,
        view: Optional[BookmarkView] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.view = view if view is not None else BookmarkView()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {access_token}"},
            transport=transport,
            timeout=timeout,
        )

    async def __aenter__(self) -> "BookmarkSession":
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        if response.is_success:
            return
        try:
            message = response.json().get("error", response.reason_phrase)
        except ValueError:
            message = response.reason_phrase
        raise BookmarkAPIError(response.status_code, message)

    async def refresh(self) -> List[BookmarkRead]:
        response = await self._client.get("/api/bookmarks")
        self._raise_for_error(response)
        self.view.load(response.json())
        return self.view.bookmarks

    async def create(self, url: str, title: str) -> BookmarkRead:
        response = await self._client.post(
            "/api/bookmarks",
            json={"url": url.strip(), "title": title.strip()},
        )
        self._raise_for_error(response)
        record = BookmarkRead.model_validate(response.json())
        self.view.apply_insert(record)
        return record

    async def delete(self, bookmark_id: str) -> str:
        response = await self._client.delete(f"/api/bookmarks/{bookmark_id}")
        self._raise_for_error(response)
        return response.json()["message"]

    def apply_event(self, event: dict) -> bool:
        return self.view.apply_event(event)

    @asynccontextmanager
    async def listen(self) -> AsyncIterator[FeedListener]:
        """Open the change feed, yielding once the server has registered the subscription."""
        try:
            async with aconnect_ws(FEED_PATH, self._client) as websocket:
                ack = await websocket.receive_json()
                if ack.get("type") != "subscribed":
                    raise BookmarkAPIError(500, f"Unexpected feed handshake: {ack}")
                yield FeedListener(websocket, self.view)
        except WebSocketUpgradeError as e:
            raise BookmarkAPIError(e.response.status_code, "Feed connection rejected")
