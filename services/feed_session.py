"""
Feed Session Module

One FeedSession backs one view of the feed (the global feed, or a single
author's posts). It owns the post cache, the mutation dispatcher, the change
feed merger and the cache-bust version cell, and discards all of them when
the view goes away.
"""

from typing import List, Optional

from config import settings
from data.models import Post, PostAuthor, PostImage
from data.protocols import RemoteGateway
from services.cache_bust import VersionCell
from services.dispatcher import MutationDispatcher
from services.echo_ledger import EchoLedger
from services.merger import ChangeFeedMerger
from services.notifications import LogNotifier
from services.post_cache import PostCache
from services.protocols import Notifier
from utils.exceptions import GatewayError, NotAuthenticatedError
from utils.logger import get_logger

logger = get_logger(__name__)


class FeedSession:
    """
    Lifetime owner of a feed view's state.

    Usage:
        async with FeedSession(gateway) as feed:
            await feed.toggle_like(feed.posts[0].id)
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        notifier: Optional[Notifier] = None,
        author_id: Optional[str] = None,
        page_size: Optional[int] = None,
        realtime: bool = True
    ):
        """
        Initialize the session.

        Args:
            gateway: Remote data gateway.
            notifier: Outward notification channel, defaults to LogNotifier.
            author_id: Restrict the feed to one author's posts.
            page_size: Posts per page, defaults to POSTS_PER_PAGE.
            realtime: Subscribe to the change feed on open().
        """
        self.gateway = gateway
        self.notifier = notifier or LogNotifier()
        self.author_id = author_id
        self.page_size = page_size or settings.POSTS_PER_PAGE
        self.realtime = realtime

        self.cache = PostCache()
        self.version = VersionCell()
        self.ledger = EchoLedger()
        self.dispatcher = MutationDispatcher(
            gateway, self.cache, self.notifier, ledger=self.ledger, version=self.version
        )
        self.merger = ChangeFeedMerger(
            gateway, self.cache, author_id=author_id, ledger=self.ledger
        )

        self.viewer_id: Optional[str] = None
        self.page = 0
        self.has_more = True
        self.loading = False
        self.error: Optional[str] = None
        self.is_open = False

    @property
    def posts(self):
        return self.cache.snapshot()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> "FeedSession":
        """
        Resolve the viewer, load the first page and start merging changes.

        Raises:
            NotAuthenticatedError: Nobody is signed in.
        """
        viewer_id = await self.gateway.get_current_user_id()
        if not viewer_id:
            raise NotAuthenticatedError("Please log in to continue")
        await self._set_viewer(viewer_id)

        await self.load()
        if self.realtime:
            active = await self.merger.start()
            logger.info(f"Feed session open with {active} change feed subscriptions")
        self.is_open = True
        return self

    async def close(self) -> None:
        """Stop the change feed and drop all cached state."""
        await self.merger.stop()
        self.cache.clear()
        self.ledger.clear()
        self.page = 0
        self.has_more = True
        self.is_open = False
        logger.info("Feed session closed")

    async def __aenter__(self) -> "FeedSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _set_viewer(self, viewer_id: str) -> None:
        self.viewer_id = viewer_id
        self.dispatcher.viewer_id = viewer_id
        self.merger.viewer_id = viewer_id
        try:
            profile = await self.gateway.fetch_user(viewer_id)
        except GatewayError as e:
            logger.warning(f"Could not load profile for {viewer_id}: {e}")
            profile = None
        self.dispatcher.viewer = profile.to_author() if profile else PostAuthor(id=viewer_id)

    # =========================================================================
    # Hydration
    # =========================================================================

    async def load(self) -> List[Post]:
        """
        (Re)load the first page, replacing the cache.

        On failure the cache is left as it was and self.error is set.
        """
        posts = await self._fetch_page(0)
        if posts is None:
            return []
        self.cache.reset(posts)
        self.page = 0
        return posts

    async def load_more(self) -> List[Post]:
        """Append the next page if there is one and no load is running."""
        if self.loading or not self.has_more:
            return []
        next_page = self.page + 1
        posts = await self._fetch_page(next_page)
        if posts is None:
            return []
        self.cache.extend(posts)
        self.page = next_page
        return posts

    async def refresh(self) -> List[Post]:
        """Reload from the top and tell image observers to refetch."""
        posts = await self.load()
        self.version.bump()
        return posts

    async def _fetch_page(self, page: int) -> Optional[List[Post]]:
        self.loading = True
        self.error = None
        offset = page * self.page_size
        try:
            rows, total = await self.gateway.fetch_posts(
                author_id=self.author_id, offset=offset, limit=self.page_size
            )
            liked, bookmarked = set(), set()
            if self.viewer_id and rows:
                liked, bookmarked = await self.gateway.fetch_viewer_flags(
                    [row.id for row in rows], self.viewer_id
                )
        except GatewayError as e:
            logger.error(f"Error fetching posts: {e}")
            self.error = str(e) or "Failed to load posts"
            self.notifier.error("Failed to load posts")
            return None
        finally:
            self.loading = False

        if total is not None:
            self.has_more = offset + self.page_size < total
        else:
            self.has_more = len(rows) == self.page_size

        return [row.to_post(liked=row.id in liked, bookmarked=row.id in bookmarked) for row in rows]

    # =========================================================================
    # Mutations
    # =========================================================================

    async def create_post(self, content: str, image: Optional[PostImage] = None) -> Post:
        return await self.dispatcher.create_post(content, image)

    async def delete_post(self, post_id: str) -> bool:
        return await self.dispatcher.delete_post(post_id)

    async def toggle_like(self, post_id: str) -> bool:
        return await self.dispatcher.toggle_like(post_id)

    async def toggle_bookmark(self, post_id: str) -> bool:
        return await self.dispatcher.toggle_bookmark(post_id)

    async def add_comment(self, post_id: str, text: str) -> bool:
        return await self.dispatcher.add_comment(post_id, text)

    def image_url(self, post: Post) -> Optional[str]:
        """The post's image URL with the session's cache-bust token."""
        return self.version.bust_storage_url(post.image_url) if post.image_url else None
