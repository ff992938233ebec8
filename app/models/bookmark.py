from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, Index
from uuid import uuid4
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Bookmark(SQLModel, table=True):
    __table_args__ = (
        Index("ix_bookmark_owner_created", "owner_id", "created_at"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    owner_id: str = Field(index=True, nullable=False)
    url: str = Field(nullable=False)
    title: str = Field(nullable=False)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
