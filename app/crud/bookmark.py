import logging
from typing import List, Optional

from pydantic import HttpUrl, TypeAdapter, ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.exceptions import BookmarkValidationError, StoreError
from app.core.security import Identity
from app.core.ws_manager import feed
from app.db.database import owner_scope
from app.models.bookmark import Bookmark
from app.schemas.bookmark import BookmarkRead

logger = logging.getLogger(__name__)

_http_url = TypeAdapter(HttpUrl)


def validate_bookmark_fields(url: Optional[str], title: Optional[str]) -> tuple[str, str]:
    """Trimmed ``(url, title)``, or BookmarkValidationError naming the bad field."""
    url = url.strip() if isinstance(url, str) else ""
    title = title.strip() if isinstance(title, str) else ""
    if not url or not title:
        raise BookmarkValidationError(
            "URL and title are required",
            field="url" if not url else "title",
        )

    # Validated as a URL, stored as the user typed it
    try:
        _http_url.validate_python(url)
    except ValidationError:
        raise BookmarkValidationError("URL must be a valid http or https URL", field="url")
    return url, title


async def list_bookmarks(db: AsyncSession, identity: Identity) -> List[Bookmark]:
    """All of the owner's bookmarks, newest first."""
    try:
        with owner_scope(db, identity.user_id):
            result = await db.execute(
                select(Bookmark)
                .where(Bookmark.owner_id == identity.user_id)
                .order_by(Bookmark.created_at.desc(), Bookmark.id.desc())
            )
            return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.exception(f"Error listing bookmarks for {identity.user_id}")
        raise StoreError("Failed to fetch bookmarks") from e


async def create_bookmark(
    db: AsyncSession,
    identity: Identity,
    url: Optional[str],
    title: Optional[str],
) -> Bookmark:
    url, title = validate_bookmark_fields(url, title)

    bookmark = Bookmark(owner_id=identity.user_id, url=url, title=title)
    # Everything the feed needs is generated client-side, so nothing awaits between commit and publish
    payload = BookmarkRead.model_validate(bookmark).model_dump(mode="json")
    try:
        with owner_scope(db, identity.user_id):
            db.add(bookmark)
            await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Error creating bookmark for {identity.user_id}")
        raise StoreError("Failed to create bookmark") from e

    try:
        feed.publish_insert(identity.user_id, payload)
    except Exception as feed_error:
        logger.error(f"Failed to publish bookmark insert: {feed_error}")

    return bookmark


async def delete_bookmark(db: AsyncSession, identity: Identity, bookmark_id: str) -> bool:
    """Delete the owner's bookmark ``bookmark_id``.

    Returns False when nothing matched. A foreign id and a missing id both match
    nothing, so callers cannot tell them apart.
    """
    try:
        with owner_scope(db, identity.user_id):
            result = await db.execute(
                delete(Bookmark).where(
                    Bookmark.id == bookmark_id,
                    Bookmark.owner_id == identity.user_id,
                )
            )
            await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception(f"Error deleting bookmark {bookmark_id} for {identity.user_id}")
        raise StoreError("Failed to delete bookmark") from e

    deleted = (result.rowcount or 0) > 0
    if deleted:
        try:
            feed.publish_delete(identity.user_id, bookmark_id)
        except Exception as feed_error:
            logger.error(f"Failed to publish bookmark delete: {feed_error}")
    return deleted
