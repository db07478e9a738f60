"""
Data Layer Protocol Definitions

This module defines typing.Protocol interfaces for the remote data gateway.
These protocols enable dependency injection for backend operations,
making services testable without a real backend connection.

Protocols defined:
- RemoteGateway: Interface for auth, row reads/writes, object storage
  and change-feed subscriptions
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Sequence, Set, Tuple

from data.schemas import (
    BookmarkEdgeRow, ChangeEvent, CommentRow, LikeEdgeRow, PostRow, UserRow
)

ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]


@dataclass
class Subscription:
    """Handle returned by RemoteGateway.subscribe, passed back to unsubscribe."""
    relation: str
    events: Tuple[str, ...]
    handle: Any = None


class RemoteGateway(Protocol):
    """Protocol defining the interface to the hosted backend.

    Implementations should provide coroutines for:
    - Reading the signed-in user's id
    - Reading and writing posts, like/bookmark edges and comments
    - Uploading, deleting and listing objects in storage
    - Subscribing to change notifications per relation

    Write methods raise RemoteWriteError (DuplicateEdgeError for an existing
    edge); read methods raise RemoteReadError; uploads raise MediaUploadError.
    """

    async def get_current_user_id(self) -> Optional[str]:
        """Return the authenticated user's id, or None when signed out."""
        ...

    async def fetch_user(self, user_id: str) -> Optional[UserRow]:
        """Fetch a user profile row, or None if it does not exist."""
        ...

    async def fetch_posts(
        self,
        author_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 10
    ) -> Tuple[List[PostRow], Optional[int]]:
        """Fetch one page of posts, newest first.

        Args:
            author_id: Only posts by this user, or None for the global feed.
            offset: Index of the first row.
            limit: Page size.

        Returns:
            Tuple of (rows, total row count or None if unknown).
        """
        ...

    async def fetch_post(self, post_id: str) -> Optional[PostRow]:
        """Fetch one post with author details, or None if it does not exist."""
        ...

    async def fetch_viewer_flags(
        self,
        post_ids: Sequence[str],
        user_id: str
    ) -> Tuple[Set[str], Set[str]]:
        """Return (liked post ids, bookmarked post ids) for the viewer."""
        ...

    async def insert_post(self, user_id: str, content: str,
                          image_url: Optional[str] = None) -> PostRow:
        """Insert a post row and return it with its server-assigned id."""
        ...

    async def delete_post(self, post_id: str, user_id: str) -> None:
        """Delete a post, scoped to its author."""
        ...

    async def insert_like(self, post_id: str, user_id: str) -> LikeEdgeRow:
        ...

    async def delete_like(self, post_id: str, user_id: str) -> None:
        ...

    async def insert_bookmark(self, post_id: str, user_id: str) -> BookmarkEdgeRow:
        ...

    async def delete_bookmark(self, post_id: str, user_id: str) -> None:
        ...

    async def insert_comment(self, post_id: str, user_id: str, content: str) -> CommentRow:
        ...

    async def upload_image(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes to the post images bucket and return the public URL."""
        ...

    async def delete_images(self, paths: Sequence[str]) -> None:
        ...

    async def list_images(self, prefix: str) -> List[str]:
        ...

    async def subscribe(
        self,
        relation: str,
        events: Sequence[str],
        handler: ChangeHandler
    ) -> Subscription:
        """Start delivering change events for a relation to handler."""
        ...

    async def unsubscribe(self, subscription: Subscription) -> None:
        ...
