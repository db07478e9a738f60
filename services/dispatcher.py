"""
Mutation Dispatcher Module

Turns a user action on the feed into an immediate, reversible change to the
local post cache plus the matching remote write. If the write fails the local
change is reverted and the failure is reported through the notifier.

Every operation follows the same shape:
    1. validate input locally (no state change on failure)
    2. apply the optimistic delta to the cache
    3. issue the remote write
    4. confirm (success) or revert and notify (failure)

Two calls on the same post are not serialized: toggling twice before the
first write resolves sends both writes and the last one to finish wins.
"""

from typing import Optional

from config import settings
from data.models import Post, PostAuthor, PostImage
from data.protocols import RemoteGateway
from services.cache_bust import VersionCell
from services.echo_ledger import EchoLedger, edge_signature
from services.notifications import LogNotifier
from services.post_cache import PostCache
from services.protocols import Notifier
from services.validation import validate_comment, validate_new_post
from utils.exceptions import (
    DeskStaffError, DuplicateEdgeError, NotAuthenticatedError,
    PermissionDeniedError, PostNotFoundError, ValidationError
)
from utils.helpers import build_post_image_path, make_placeholder_id, now_millis, utc_now
from utils.logger import get_logger

logger = get_logger(__name__)


class MutationDispatcher:
    """Optimistic writer for one session's post cache."""

    def __init__(
        self,
        gateway: RemoteGateway,
        cache: PostCache,
        notifier: Optional[Notifier] = None,
        ledger: Optional[EchoLedger] = None,
        version: Optional[VersionCell] = None,
        viewer_id: Optional[str] = None,
        viewer: Optional[PostAuthor] = None
    ):
        """
        Initialize the dispatcher.

        Args:
            gateway: Remote data gateway used for every write.
            cache: The session's post cache.
            notifier: Outward notification channel, defaults to LogNotifier.
            ledger: Shared with the change feed merger so own writes are not
                applied twice when they come back as events.
            version: Cache-bust cell bumped when a post with an image lands.
            viewer_id: Signed-in user id, resolved lazily when omitted.
            viewer: Author details used on provisional posts.
        """
        self.gateway = gateway
        self.cache = cache
        self.notifier = notifier or LogNotifier()
        self.ledger = ledger or EchoLedger()
        self.version = version or VersionCell()
        self.viewer_id = viewer_id
        self.viewer = viewer

    async def _viewer_id(self) -> str:
        if self.viewer_id:
            return self.viewer_id
        user_id = await self.gateway.get_current_user_id()
        if not user_id:
            raise NotAuthenticatedError("You must be logged in")
        self.viewer_id = user_id
        return user_id

    # =========================================================================
    # Create
    # =========================================================================

    async def create_post(self, content: str, image: Optional[PostImage] = None) -> Post:
        """
        Create a post optimistically.

        A provisional post with a placeholder id is shown at once. The image
        (if any) is uploaded, then the row is inserted. On success the
        provisional entry is replaced by the confirmed one; on failure it is
        removed. If the upload succeeded but the insert failed, the uploaded
        image is left orphaned in storage.

        Args:
            content: Post text.
            image: Optional image attachment.

        Returns:
            Post: The confirmed post with its server id.

        Raises:
            ValidationError: Empty post or bad image, before anything happens.
            DeskStaffError: Any remote failure, after the provisional post
                has been removed, so the caller can keep the user's input.
        """
        try:
            text = validate_new_post(content, image)
            user_id = await self._viewer_id()
        except DeskStaffError as e:
            self.notifier.error(str(e))
            raise

        placeholder_id = make_placeholder_id(settings.PLACEHOLDER_ID_PREFIX)
        provisional = Post(
            id=placeholder_id,
            user_id=user_id,
            content=text,
            created_at=utc_now(),
            author=self.viewer or PostAuthor(id=user_id),
            provisional=True,
        )
        self.cache.add(provisional)
        logger.debug(f"Added provisional post {placeholder_id}")

        image_url = None
        try:
            if image is not None:
                image_url = await self._upload_image(user_id, image)
                self.cache.update(placeholder_id, image_url=image_url)
            row = await self.gateway.insert_post(user_id, text, image_url)
        except Exception as e:
            self.cache.remove(placeholder_id)
            if image_url:
                logger.warning(f"Post insert failed after upload; image left orphaned: {image_url}")
            logger.error(f"Error creating post: {e}")
            self.notifier.error(str(e) if isinstance(e, DeskStaffError) else "Failed to create post")
            raise

        confirmed = row.to_post(zero_counters=True)
        if confirmed.author is None:
            confirmed = confirmed.with_changes(author=provisional.author)
        self.cache.replace(placeholder_id, confirmed)
        self.ledger.expect(edge_signature(settings.POSTS_TABLE, "INSERT", confirmed.id, user_id))
        if confirmed.image_url:
            self.version.bump()

        logger.info(f"Post {confirmed.id} confirmed (was {placeholder_id})")
        self.notifier.success("Post created successfully!")
        return confirmed

    async def _upload_image(self, user_id: str, image: PostImage) -> str:
        timestamp = now_millis()
        path = build_post_image_path(user_id, image.filename, timestamp)
        public_url = await self.gateway.upload_image(path, image.data, image.content_type)
        separator = "&" if "?" in public_url else "?"
        return f"{public_url}{separator}t={timestamp}"

    # =========================================================================
    # Toggles
    # =========================================================================

    async def toggle_like(self, post_id: str) -> bool:
        """
        Like the post if the viewer has not liked it yet, otherwise unlike it.

        On a failed write the flag and the count go back to exactly their
        values from before the call.

        Returns:
            bool: True if the remote write succeeded.
        """
        return await self._toggle_edge(
            post_id,
            relation=settings.LIKES_TABLE,
            flag="liked",
            counter="likes_count",
            insert=self.gateway.insert_like,
            delete=self.gateway.delete_like,
            on_message=("Post liked!", "Post unliked"),
            noun="like",
        )

    async def toggle_bookmark(self, post_id: str) -> bool:
        """Bookmark or unbookmark a post; same protocol as toggle_like."""
        return await self._toggle_edge(
            post_id,
            relation=settings.BOOKMARKS_TABLE,
            flag="bookmarked",
            counter="bookmarks_count",
            insert=self.gateway.insert_bookmark,
            delete=self.gateway.delete_bookmark,
            on_message=("Post bookmarked!", "Post removed from bookmarks"),
            noun="bookmark",
        )

    async def _toggle_edge(self, post_id, relation, flag, counter, insert, delete, on_message, noun) -> bool:
        try:
            post = self._require_post(post_id)
            self._reject_provisional(post)
            user_id = await self._viewer_id()
        except DeskStaffError as e:
            self.notifier.error(str(e))
            return False

        was_set = getattr(post, flag)
        before_count = getattr(post, counter)
        event_type = "DELETE" if was_set else "INSERT"
        signature = edge_signature(relation, event_type, post_id, user_id)

        self.cache.update(post_id, **{
            flag: not was_set,
            counter: before_count - 1 if was_set else before_count + 1,
        })
        self.ledger.expect(signature)

        try:
            if was_set:
                await delete(post_id, user_id)
            else:
                await insert(post_id, user_id)
        except DuplicateEdgeError:
            # the edge was already there, so the remote count did not move
            self.ledger.discard(signature)
            self.cache.update(post_id, **{flag: True, counter: before_count})
            logger.info(f"{noun.capitalize()} on post {post_id} already existed")
            return True
        except Exception as e:
            self.ledger.discard(signature)
            self.cache.update(post_id, **{flag: was_set, counter: before_count})
            logger.warning(f"Reverted {noun} toggle on post {post_id}: {e}")
            action = f"un{noun}" if was_set else noun
            self.notifier.error(str(e) if isinstance(e, DeskStaffError) else f"Failed to {action} post")
            return False

        self.notifier.info(on_message[1] if was_set else on_message[0])
        return True

    # =========================================================================
    # Comments
    # =========================================================================

    async def add_comment(self, post_id: str, text: str) -> bool:
        """
        Add a comment, bumping the post's comment count optimistically.

        A failed insert takes the increment back again.

        Returns:
            bool: True if the comment was stored.
        """
        try:
            content = validate_comment(text)
            post = self.cache.get(post_id)
            if post is not None:
                self._reject_provisional(post)
            user_id = await self._viewer_id()
        except DeskStaffError as e:
            self.notifier.error(str(e))
            return False

        signature = edge_signature(settings.COMMENTS_TABLE, "INSERT", post_id, user_id)
        counted = self.cache.adjust(post_id, "comments_count", 1) is not None
        self.ledger.expect(signature)

        try:
            await self.gateway.insert_comment(post_id, user_id, content)
        except Exception as e:
            self.ledger.discard(signature)
            if counted:
                self.cache.adjust(post_id, "comments_count", -1)
            logger.warning(f"Reverted comment count on post {post_id}: {e}")
            self.notifier.error(str(e) if isinstance(e, DeskStaffError) else "Failed to add comment")
            return False

        self.notifier.success("Comment added!")
        return True

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_post(self, post_id: str) -> bool:
        """
        Remove one of the viewer's posts.

        The post disappears from the cache at once; if the remote delete fails
        it is put back at its original position.

        Returns:
            bool: True if the post was deleted remotely.
        """
        try:
            post = self._require_post(post_id)
            user_id = await self._viewer_id()
            if post.user_id != user_id:
                raise PermissionDeniedError("You can only delete your own posts")
            self._reject_provisional(post)
        except DeskStaffError as e:
            self.notifier.error(str(e))
            return False

        removed = self.cache.remove(post_id)
        try:
            await self.gateway.delete_post(post_id, user_id)
        except Exception as e:
            if removed is not None and post_id not in self.cache:
                self.cache.add(removed)
            logger.warning(f"Restored post {post_id} after failed delete: {e}")
            self.notifier.error(str(e) if isinstance(e, DeskStaffError) else "Failed to delete post")
            return False

        logger.info(f"Deleted post {post_id}")
        self.notifier.success("Post deleted successfully!")
        return True

    def _require_post(self, post_id: str) -> Post:
        post = self.cache.get(post_id)
        if post is None:
            raise PostNotFoundError("Post not found")
        return post

    @staticmethod
    def _reject_provisional(post: Post) -> None:
        if post.provisional:
            raise ValidationError("This post is still being published")
