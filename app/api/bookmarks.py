import logging
from typing import List, Optional

import anyio
from fastapi import APIRouter, Body, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.websockets import WebSocketState

from app.core.exceptions import (
    AuthFailure,
    BookmarkValidationError,
    CustomHTTPException,
    StoreError,
)
from app.core.security import Identity, get_current_identity, websocket_resolver
from app.core.ws_manager import FeedSubscription, feed
from app.crud.bookmark import create_bookmark, delete_bookmark, list_bookmarks
from app.db.database import get_db
from app.schemas.bookmark import BookmarkCreate, BookmarkRead, MessageResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])

# Close code for a subscriber that fell too far behind; the client should resync
WS_1013_TRY_AGAIN_LATER = 1013


@router.get("", response_model=List[BookmarkRead])
async def get_bookmarks(
    current_user: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Get all bookmarks of the current user, newest first"""
    try:
        return await list_bookmarks(db, current_user)
    except StoreError:
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch bookmarks",
        )
    except Exception as e:
        logger.exception(f"Unexpected error fetching bookmarks: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch bookmarks",
        )


@router.post("", response_model=BookmarkRead, status_code=status.HTTP_201_CREATED)
async def add_bookmark(
    current_user: Identity = Depends(get_current_identity),
    bookmark_in: Optional[BookmarkCreate] = Body(None),
    db: AsyncSession = Depends(get_db),
):
    bookmark_in = bookmark_in or BookmarkCreate()
    try:
        return await create_bookmark(db, current_user, bookmark_in.url, bookmark_in.title)
    except BookmarkValidationError as e:
        raise CustomHTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreError:
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create bookmark",
        )
    except Exception as e:
        logger.exception(f"Unexpected error creating bookmark: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create bookmark",
        )


@router.delete("/{bookmark_id}", response_model=MessageResponse)
async def remove_bookmark(
    bookmark_id: str,
    current_user: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Remove a bookmark. Absent and foreign ids succeed the same way."""
    try:
        await delete_bookmark(db, current_user, bookmark_id)
    except StoreError:
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete bookmark",
        )
    except Exception as e:
        logger.exception(f"Unexpected error deleting bookmark: {e}")
        raise CustomHTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete bookmark",
        )
    return {"message": "Bookmark deleted successfully"}


async def _pump_events(websocket: WebSocket, subscription: FeedSubscription):
    while True:
        event = await subscription.get()
        await websocket.send_json(event)


async def _read_client(websocket: WebSocket):
    """Answer pings until the client goes away"""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
        if message.get("text") == "ping":
            await websocket.send_json({"type": "pong"})
        elif message.get("bytes") is not None:
            logger.warning(f"Ignoring binary WebSocket frame of {len(message['bytes'])} bytes")
        else:
            logger.warning(f"Unexpected WebSocket message: {message.get('text')}")


@router.websocket("/ws")
async def bookmarks_feed(websocket: WebSocket):
    """Live insert/delete events for the authenticated user's bookmarks"""
    try:
        identity = await websocket_resolver.resolve(websocket)
    except AuthFailure:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    errors: List[Exception] = []

    async with feed.subscribe(identity.user_id) as subscription:
        await websocket.send_json({"type": "subscribed"})

        async with anyio.create_task_group() as tg:

            async def run_until_done(func, *args):
                # Whichever side finishes first ends the whole connection
                try:
                    await func(*args)
                except WebSocketDisconnect:
                    pass
                except Exception as e:
                    errors.append(e)
                tg.cancel_scope.cancel()

            tg.start_soon(run_until_done, _pump_events, websocket, subscription)
            tg.start_soon(run_until_done, _read_client, websocket)
            tg.start_soon(run_until_done, subscription.closed.wait)

    if WebSocketState.DISCONNECTED in (websocket.client_state, websocket.application_state):
        logger.info(f"Feed client for {identity.user_id} disconnected")
        return
    if errors:
        logger.error(f"WebSocket error: {str(errors[0])}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    elif subscription.overflowed:
        logger.warning(f"Feed subscriber for {identity.user_id} fell behind, closing")
        await websocket.close(code=WS_1013_TRY_AGAIN_LATER)
