"""
Supabase Gateway Module

This module handles all communication with the hosted backend: auth session,
Postgres rows through PostgREST, object storage and the realtime change feed.
It implements data.protocols.RemoteGateway; services never import supabase
directly.
"""

import asyncio
import inspect
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from postgrest.exceptions import APIError
from pydantic import ValidationError as SchemaError
from supabase import AsyncClient, acreate_client

from config import settings
from data.protocols import ChangeHandler, Subscription
from data.schemas import (
    BookmarkEdgeRow, ChangeEvent, CommentRow, LikeEdgeRow, PostRow, UserRow
)
from utils.exceptions import (
    DuplicateEdgeError, GatewayError, MediaUploadError, NotAuthenticatedError,
    RemoteReadError, RemoteWriteError, SubscriptionError
)
from utils.logger import get_logger

logger = get_logger(__name__)


def _write_error(action: str, error: APIError) -> RemoteWriteError:
    code = getattr(error, "code", None)
    message = getattr(error, "message", None) or str(error)
    if code == settings.DUPLICATE_KEY_CODE:
        return DuplicateEdgeError(f"{action}: already exists", code=code)
    return RemoteWriteError(f"{action} failed: {message}", code=code)


class SupabaseGateway:
    """Remote data gateway backed by a Supabase project."""

    def __init__(self, client: Optional[AsyncClient] = None):
        """
        Initialize the gateway.

        Args:
            client: An already created async client. When omitted, connect()
                creates one from SUPABASE_URL / SUPABASE_ANON_KEY.
        """
        self.client = client
        self._tasks: Set[asyncio.Task] = set()

    # =========================================================================
    # Connection & Auth
    # =========================================================================

    async def connect(self) -> bool:
        """
        Create the async Supabase client.

        Returns:
            bool: True if the client was created, False otherwise.
        """
        if self.client is not None:
            return True
        try:
            self.client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)
            logger.info("Successfully created Supabase client")
            return True
        except Exception as e:
            logger.error(f"Failed to create Supabase client: {e}")
            self.client = None
            return False

    async def close(self) -> None:
        """Drop every realtime channel and sign out."""
        if self.client is None:
            return
        try:
            await self.client.remove_all_channels()
            await self.client.auth.sign_out()
            logger.info("Supabase session closed")
        except Exception as e:
            logger.error(f"Error closing Supabase session: {e}")
        finally:
            for task in list(self._tasks):
                task.cancel()
            self._tasks.clear()

    async def sign_in(self, email: str, password: str) -> str:
        """
        Sign in with email and password.

        Returns:
            str: The signed-in user's id.

        Raises:
            NotAuthenticatedError: If the credentials are rejected.
        """
        self._require_client()
        try:
            response = await self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise NotAuthenticatedError(f"Sign in failed: {e}") from e

        if not response or not response.user:
            raise NotAuthenticatedError("Sign in returned no user")
        logger.info(f"Signed in as {email}")
        return str(response.user.id)

    async def get_current_user_id(self) -> Optional[str]:
        self._require_client()
        try:
            response = await self.client.auth.get_user()
        except Exception as e:
            logger.warning(f"Could not read current user: {e}")
            return None
        if not response or not response.user:
            return None
        return str(response.user.id)

    def _require_client(self) -> None:
        if self.client is None:
            raise GatewayError("Supabase client is not connected; call connect() first")

    # =========================================================================
    # Posts
    # =========================================================================

    async def fetch_user(self, user_id: str) -> Optional[UserRow]:
        self._require_client()
        try:
            response = await (
                self.client.table(settings.USERS_TABLE)
                .select("id, full_name, avatar_url, first_name, last_name")
                .eq("id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteReadError(f"Failed to load user {user_id}: {e}") from e

        if not response.data:
            return None
        try:
            return UserRow.model_validate(response.data[0])
        except SchemaError as e:
            raise RemoteReadError(f"Malformed user row: {e}") from e

    async def fetch_posts(
        self,
        author_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 10
    ) -> Tuple[List[PostRow], Optional[int]]:
        self._require_client()
        try:
            query = self.client.table(settings.POSTS_TABLE).select(settings.POST_SELECT, count="exact")
            if author_id:
                query = query.eq("user_id", author_id)
            response = await query.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        except Exception as e:
            raise RemoteReadError(f"Failed to load posts: {e}") from e

        try:
            rows = [PostRow.model_validate(item) for item in (response.data or [])]
        except SchemaError as e:
            raise RemoteReadError(f"Malformed post row: {e}") from e
        return rows, response.count

    async def fetch_post(self, post_id: str) -> Optional[PostRow]:
        self._require_client()
        try:
            response = await (
                self.client.table(settings.POSTS_TABLE)
                .select(settings.POST_SELECT)
                .eq("id", post_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise RemoteReadError(f"Failed to load post {post_id}: {e}") from e

        if not response.data:
            return None
        try:
            return PostRow.model_validate(response.data[0])
        except SchemaError as e:
            raise RemoteReadError(f"Malformed post row: {e}") from e

    async def fetch_viewer_flags(self, post_ids: Sequence[str], user_id: str) -> Tuple[Set[str], Set[str]]:
        self._require_client()
        if not post_ids or not user_id:
            return set(), set()
        ids = list(post_ids)
        try:
            likes = await (
                self.client.table(settings.LIKES_TABLE)
                .select("post_id")
                .eq("user_id", user_id)
                .in_("post_id", ids)
                .execute()
            )
            bookmarks = await (
                self.client.table(settings.BOOKMARKS_TABLE)
                .select("post_id")
                .eq("user_id", user_id)
                .in_("post_id", ids)
                .execute()
            )
        except Exception as e:
            raise RemoteReadError(f"Failed to load viewer flags: {e}") from e

        liked = {str(row["post_id"]) for row in (likes.data or [])}
        bookmarked = {str(row["post_id"]) for row in (bookmarks.data or [])}
        return liked, bookmarked

    async def insert_post(self, user_id: str, content: str, image_url: Optional[str] = None) -> PostRow:
        self._require_client()
        payload: Dict[str, Any] = {"user_id": user_id, "content": content}
        if image_url:
            payload["image_url"] = image_url
        try:
            response = await self.client.table(settings.POSTS_TABLE).insert(payload).execute()
        except APIError as e:
            raise _write_error("Create post", e) from e
        except Exception as e:
            raise RemoteWriteError(f"Create post failed: {e}") from e

        if not response.data:
            raise RemoteWriteError("Create post returned no row")
        try:
            return PostRow.model_validate(response.data[0])
        except SchemaError as e:
            raise RemoteWriteError(f"Malformed post row: {e}") from e

    async def delete_post(self, post_id: str, user_id: str) -> None:
        await self._delete(settings.POSTS_TABLE, "Delete post", id=post_id, user_id=user_id)

    # =========================================================================
    # Interactions
    # =========================================================================

    async def insert_like(self, post_id: str, user_id: str) -> LikeEdgeRow:
        row = await self._insert(settings.LIKES_TABLE, "Like post", {"post_id": post_id, "user_id": user_id})
        return LikeEdgeRow.model_validate(row)

    async def delete_like(self, post_id: str, user_id: str) -> None:
        await self._delete(settings.LIKES_TABLE, "Unlike post", post_id=post_id, user_id=user_id)

    async def insert_bookmark(self, post_id: str, user_id: str) -> BookmarkEdgeRow:
        row = await self._insert(settings.BOOKMARKS_TABLE, "Bookmark post", {"post_id": post_id, "user_id": user_id})
        return BookmarkEdgeRow.model_validate(row)

    async def delete_bookmark(self, post_id: str, user_id: str) -> None:
        await self._delete(settings.BOOKMARKS_TABLE, "Remove bookmark", post_id=post_id, user_id=user_id)

    async def insert_comment(self, post_id: str, user_id: str, content: str) -> CommentRow:
        row = await self._insert(
            settings.COMMENTS_TABLE, "Add comment",
            {"post_id": post_id, "user_id": user_id, "content": content}
        )
        return CommentRow.model_validate(row)

    async def _insert(self, table: str, action: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._require_client()
        try:
            response = await self.client.table(table).insert(payload).execute()
        except APIError as e:
            raise _write_error(action, e) from e
        except Exception as e:
            raise RemoteWriteError(f"{action} failed: {e}") from e
        return response.data[0] if response.data else payload

    async def _delete(self, table: str, action: str, **filters: str) -> None:
        self._require_client()
        try:
            query = self.client.table(table).delete()
            for column, value in filters.items():
                query = query.eq(column, value)
            await query.execute()
        except APIError as e:
            raise _write_error(action, e) from e
        except Exception as e:
            raise RemoteWriteError(f"{action} failed: {e}") from e

    # =========================================================================
    # Storage
    # =========================================================================

    async def upload_image(self, path: str, data: bytes, content_type: str) -> str:
        self._require_client()
        bucket = self.client.storage.from_(settings.POST_IMAGES_BUCKET)
        try:
            await bucket.upload(
                path=path,
                file=data,
                file_options={
                    "content-type": content_type,
                    "cache-control": settings.IMAGE_CACHE_CONTROL,
                    "upsert": "false",
                },
            )
            public_url = bucket.get_public_url(path)
            if inspect.isawaitable(public_url):
                public_url = await public_url
        except Exception as e:
            raise MediaUploadError(f"Failed to upload image {path}: {e}") from e

        logger.info(f"Uploaded image to {settings.POST_IMAGES_BUCKET}/{path}")
        return public_url

    async def delete_images(self, paths: Sequence[str]) -> None:
        self._require_client()
        if not paths:
            return
        try:
            await self.client.storage.from_(settings.POST_IMAGES_BUCKET).remove(list(paths))
        except Exception as e:
            raise RemoteWriteError(f"Failed to delete images: {e}") from e

    async def list_images(self, prefix: str) -> List[str]:
        self._require_client()
        try:
            entries = await self.client.storage.from_(settings.POST_IMAGES_BUCKET).list(prefix)
        except Exception as e:
            raise RemoteReadError(f"Failed to list images under {prefix}: {e}") from e
        prefix = prefix.rstrip("/")
        return [f"{prefix}/{entry['name']}" if prefix else entry["name"] for entry in (entries or [])]

    # =========================================================================
    # Realtime
    # =========================================================================

    async def subscribe(self, relation: str, events: Sequence[str], handler: ChangeHandler) -> Subscription:
        self._require_client()
        loop = asyncio.get_running_loop()

        def _on_change(payload: Dict[str, Any]) -> None:
            try:
                event = ChangeEvent.from_payload(relation, payload)
            except Exception as e:
                logger.warning(f"Dropping malformed {relation} change payload: {e}")
                return
            task = loop.create_task(handler(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        try:
            channel = self.client.channel(f"{settings.REALTIME_CHANNEL_PREFIX}-{relation}")
            for event_type in events:
                channel.on_postgres_changes(
                    event=event_type,
                    callback=_on_change,
                    table=relation,
                    schema=settings.REALTIME_SCHEMA,
                )
            await channel.subscribe()
        except Exception as e:
            raise SubscriptionError(f"Failed to subscribe to {relation}: {e}") from e

        logger.info(f"Subscribed to {relation} changes ({', '.join(events)})")
        return Subscription(relation=relation, events=tuple(events), handle=channel)

    async def unsubscribe(self, subscription: Subscription) -> None:
        if self.client is None or subscription.handle is None:
            return
        try:
            await self.client.remove_channel(subscription.handle)
            logger.info(f"Unsubscribed from {subscription.relation} changes")
        except Exception as e:
            logger.error(f"Error unsubscribing from {subscription.relation}: {e}")
