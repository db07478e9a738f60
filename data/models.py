"""
Data Models for the DeskStaff Feed Core

This module contains the data classes held in the local post cache.
Row shapes coming from the backend live in data.schemas and are converted
into these records at the gateway boundary.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from utils.helpers import clamp_count, content_signature


@dataclass(frozen=True)
class PostAuthor:
    """Author details shown next to a post."""
    id: str
    full_name: str = ""
    avatar_url: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True)
class Post:
    """A single feed entry as seen by the current viewer.

    Counters are clamped at zero on construction so no code path can store
    a negative count.
    """
    id: str                                 # Server id, or placeholder while provisional
    user_id: str                            # Author's user id
    content: str
    created_at: datetime
    author: Optional[PostAuthor] = None
    image_url: Optional[str] = None
    updated_at: Optional[datetime] = None
    likes_count: int = 0
    comments_count: int = 0
    bookmarks_count: int = 0
    liked: bool = False                     # Liked by current viewer
    bookmarked: bool = False                # Bookmarked by current viewer
    provisional: bool = False               # Not yet acknowledged by the server

    def __post_init__(self):
        for name in ("likes_count", "comments_count", "bookmarks_count"):
            object.__setattr__(self, name, clamp_count(getattr(self, name)))

    @property
    def signature(self) -> tuple:
        return content_signature(self.user_id, self.content, self.image_url)

    def with_changes(self, **changes) -> "Post":
        return replace(self, **changes)


@dataclass(frozen=True)
class PostImage:
    """An image attached to a new post, as handed over by the view layer."""
    filename: str
    data: bytes = field(repr=False)
    content_type: str = "image/jpeg"

    @property
    def size(self) -> int:
        return len(self.data)
