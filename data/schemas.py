"""
Row Schemas for the Hosted Backend

Every row returned by the gateway is validated and coerced here before any
service touches it. Supabase returns aggregate relations as
``likes: [{"count": 3}]``; those are flattened to plain integers.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from data.models import Post, PostAuthor
from utils.helpers import parse_timestamp, safe_get


def _aggregate_count(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, list):
        if not value:
            return 0
        return int(safe_get(value, 0, "count", default=0) or 0)
    if isinstance(value, dict):
        return int(value.get("count", 0) or 0)
    return int(value)


class RowModel(BaseModel):
    """Base for backend rows: unknown columns are ignored, ids become strings."""
    model_config = ConfigDict(extra="ignore")


class UserRow(RowModel):
    id: str
    full_name: str = ""
    avatar_url: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("full_name", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

    def to_author(self) -> PostAuthor:
        return PostAuthor(
            id=self.id,
            full_name=self.full_name,
            avatar_url=self.avatar_url,
            first_name=self.first_name,
            last_name=self.last_name,
        )


class PostRow(RowModel):
    id: str
    user_id: str
    content: str = ""
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    user: Optional[UserRow] = None
    likes: int = 0
    comments: int = 0
    bookmarks: int = 0

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("content", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return value or ""

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return parse_timestamp(value)

    @field_validator("likes", "comments", "bookmarks", mode="before")
    @classmethod
    def _flatten_count(cls, value):
        return _aggregate_count(value)

    def to_post(self, liked: bool = False, bookmarked: bool = False,
                zero_counters: bool = False) -> Post:
        """
        Convert the row into a cache record for the current viewer.

        Args:
            liked: Whether the viewer has a like edge on this post.
            bookmarked: Whether the viewer has a bookmark edge on this post.
            zero_counters: Ignore aggregates (fresh inserts arrive without them).

        Returns:
            Post: A confirmed (non-provisional) post.
        """
        return Post(
            id=self.id,
            user_id=self.user_id,
            content=self.content,
            created_at=self.created_at,
            author=self.user.to_author() if self.user else None,
            image_url=self.image_url,
            updated_at=self.updated_at,
            likes_count=0 if zero_counters else self.likes,
            comments_count=0 if zero_counters else self.comments,
            bookmarks_count=0 if zero_counters else self.bookmarks,
            liked=liked,
            bookmarked=bookmarked,
        )


class EdgeRow(RowModel):
    """A (post, user) relationship row: a like or a bookmark."""
    post_id: str
    user_id: str
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("post_id", "user_id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("id", mode="before")
    @classmethod
    def _optional_id_to_str(cls, value):
        return None if value is None else str(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return parse_timestamp(value)


class LikeEdgeRow(EdgeRow):
    pass


class BookmarkEdgeRow(EdgeRow):
    pass


class CommentRow(RowModel):
    post_id: str
    user_id: str
    content: str = ""
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator("post_id", "user_id", mode="before")
    @classmethod
    def _id_to_str(cls, value):
        return str(value)

    @field_validator("id", mode="before")
    @classmethod
    def _optional_id_to_str(cls, value):
        return None if value is None else str(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return parse_timestamp(value)


EventType = Literal["INSERT", "UPDATE", "DELETE"]


class ChangeEvent(BaseModel):
    """One change-feed notification for a single relation."""
    relation: str
    event_type: EventType
    new: Dict[str, Any] = {}
    old: Dict[str, Any] = {}

    @field_validator("event_type", mode="before")
    @classmethod
    def _upper(cls, value):
        return str(value).upper()

    @property
    def row(self) -> Dict[str, Any]:
        """The row the event is about: the new row, or the old one for deletes."""
        return self.old if self.event_type == "DELETE" else self.new

    @classmethod
    def from_payload(cls, relation: str, payload: Dict[str, Any]) -> "ChangeEvent":
        """
        Build an event from a realtime payload.

        Accepts both the nested ``{"data": {"type", "record", "old_record"}}``
        shape and the flat ``{"eventType", "new", "old"}`` shape.
        """
        body = payload.get("data", payload) if isinstance(payload, dict) else {}
        event_type = body.get("type") or body.get("eventType") or body.get("event_type")
        new = body.get("record") or body.get("new") or {}
        old = body.get("old_record") or body.get("old") or {}
        return cls(relation=relation, event_type=event_type, new=new, old=old)
