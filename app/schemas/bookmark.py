from datetime import datetime, timezone
from typing import Literal, Optional, Union
from pydantic import BaseModel, field_serializer


class BookmarkCreate(BaseModel):
    # Both optional here so missing fields surface as a 400 from the store's validation
    url: Optional[str] = None
    title: Optional[str] = None


class BookmarkRead(BaseModel):
    id: str
    owner_id: str
    url: str
    title: str
    created_at: datetime

    @field_serializer("created_at")
    def serialize_created_at(self, value: datetime) -> str:
        # SQLite hands timestamps back naive; they are stored as UTC
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str


class BookmarkInserted(BaseModel):
    type: Literal["insert"] = "insert"
    record: BookmarkRead


class BookmarkDeleted(BaseModel):
    type: Literal["delete"] = "delete"
    id: str


BookmarkEvent = Union[BookmarkInserted, BookmarkDeleted]

