"""
Change Feed Merger Module

Folds realtime insert/delete notifications for posts, likes, comments and
bookmarks into the session's post cache.

Events for a post that is not cached (not loaded yet, or arriving before its
own insert event) are dropped. Writes issued by this session are recognized
through the shared EchoLedger and skipped, since the dispatcher has already
applied them.
"""

from typing import Dict, List, Optional, Tuple

from config import settings
from data.protocols import RemoteGateway, Subscription
from data.schemas import ChangeEvent
from services.echo_ledger import EchoLedger, edge_signature
from services.post_cache import PostCache
from utils.exceptions import GatewayError
from utils.helpers import content_signature
from utils.logger import get_logger

logger = get_logger(__name__)

# relation -> (viewer flag field, counter field)
EDGE_FIELDS: Dict[str, Tuple[str, str]] = {
    settings.LIKES_TABLE: ("liked", "likes_count"),
    settings.BOOKMARKS_TABLE: ("bookmarked", "bookmarks_count"),
}

SUBSCRIBED_EVENTS: Dict[str, Tuple[str, ...]] = {
    settings.POSTS_TABLE: ("INSERT", "DELETE"),
    settings.LIKES_TABLE: ("INSERT", "DELETE"),
    settings.COMMENTS_TABLE: ("INSERT", "DELETE"),
    settings.BOOKMARKS_TABLE: ("INSERT", "DELETE"),
}


class ChangeFeedMerger:
    """Keeps a PostCache eventually consistent with remote changes."""

    def __init__(
        self,
        gateway: RemoteGateway,
        cache: PostCache,
        viewer_id: Optional[str] = None,
        author_id: Optional[str] = None,
        ledger: Optional[EchoLedger] = None
    ):
        """
        Initialize the merger.

        Args:
            gateway: Source of change subscriptions and post lookups.
            cache: The session's post cache.
            viewer_id: Current user; only their edges change liked/bookmarked.
            author_id: When set, only posts by this author are merged in.
            ledger: Expected echoes of this session's own writes.
        """
        self.gateway = gateway
        self.cache = cache
        self.viewer_id = viewer_id
        self.author_id = author_id
        self.ledger = ledger or EchoLedger()
        self.subscriptions: List[Subscription] = []

    @property
    def running(self) -> bool:
        return bool(self.subscriptions)

    async def start(self) -> int:
        """
        Subscribe to every relation. A relation that fails to subscribe is
        logged and skipped; there is no reconnection.

        Returns:
            int: Number of active subscriptions.
        """
        if self.subscriptions:
            return len(self.subscriptions)
        for relation, events in SUBSCRIBED_EVENTS.items():
            try:
                subscription = await self.gateway.subscribe(relation, events, self.handle_event)
                self.subscriptions.append(subscription)
            except GatewayError as e:
                logger.error(f"Change feed for {relation} unavailable: {e}")
        return len(self.subscriptions)

    async def stop(self) -> None:
        subscriptions, self.subscriptions = self.subscriptions, []
        for subscription in subscriptions:
            try:
                await self.gateway.unsubscribe(subscription)
            except GatewayError as e:
                logger.error(f"Error unsubscribing from {subscription.relation}: {e}")

    async def handle_event(self, event: ChangeEvent) -> None:
        """Entry point for every change notification. Never raises."""
        try:
            if event.relation == settings.POSTS_TABLE:
                await self._on_post_event(event)
            elif event.relation in EDGE_FIELDS:
                self._on_edge_event(event)
            elif event.relation == settings.COMMENTS_TABLE:
                self._on_comment_event(event)
            else:
                logger.debug(f"Ignoring event for unknown relation {event.relation}")
        except Exception as e:
            logger.error(f"Failed to merge {event.event_type} on {event.relation}: {e}", exc_info=True)

    # =========================================================================
    # Posts
    # =========================================================================

    async def _on_post_event(self, event: ChangeEvent) -> None:
        row = event.row
        post_id = row.get("id")
        if post_id is None:
            logger.debug(f"Post {event.event_type} without id, dropped")
            return
        post_id = str(post_id)

        if event.event_type == "DELETE":
            if self.cache.remove(post_id) is not None:
                logger.info(f"Post {post_id} removed by change feed")
            return

        if event.event_type != "INSERT":
            return

        user_id = str(row.get("user_id", ""))
        if self.author_id and user_id != self.author_id:
            return
        if self._is_own_post_echo(post_id, user_id):
            return
        if self._already_shown(post_id, user_id, row.get("content"), row.get("image_url")):
            return

        try:
            fetched = await self.gateway.fetch_post(post_id)
        except GatewayError as e:
            logger.warning(f"Could not load inserted post {post_id}: {e}")
            return
        if fetched is None:
            return

        # the dispatcher may have confirmed its own post while we were fetching
        if self._is_own_post_echo(post_id, fetched.user_id):
            return
        if self._already_shown(post_id, fetched.user_id, fetched.content, fetched.image_url):
            return

        self.cache.add(fetched.to_post(zero_counters=True))
        logger.info(f"Post {post_id} added by change feed")

    def _is_own_post_echo(self, post_id: str, user_id: str) -> bool:
        return self.ledger.consume(edge_signature(settings.POSTS_TABLE, "INSERT", post_id, user_id))

    def _already_shown(self, post_id: str, user_id: str, content: Optional[str],
                       image_url: Optional[str]) -> bool:
        """
        True if the post is cached, or is the viewer's provisional post that
        the dispatcher has not confirmed yet. Other users' posts never match by
        content, so repeated text from anyone else is always merged in.
        """
        if post_id in self.cache:
            return True
        if not self.viewer_id or user_id != self.viewer_id:
            return False
        twin = self.cache.find_provisional(content_signature(user_id, content, image_url))
        if twin is not None:
            logger.debug(f"Post {post_id} is the confirmation of provisional post {twin.id}")
            return True
        return False

    # =========================================================================
    # Interactions
    # =========================================================================

    def _edge_keys(self, event: ChangeEvent) -> Optional[Tuple[str, str]]:
        row = event.row
        post_id, user_id = row.get("post_id"), row.get("user_id")
        if post_id is None or user_id is None:
            # deletes only carry full rows with REPLICA IDENTITY FULL
            logger.debug(f"{event.relation} {event.event_type} without post/user ids, dropped")
            return None
        return str(post_id), str(user_id)

    def _is_own_echo(self, event: ChangeEvent, post_id: str, user_id: str) -> bool:
        signature = edge_signature(event.relation, event.event_type, post_id, user_id)
        return self.ledger.consume(signature)

    def _on_edge_event(self, event: ChangeEvent) -> None:
        keys = self._edge_keys(event)
        if keys is None or event.event_type not in ("INSERT", "DELETE"):
            return
        post_id, user_id = keys
        if self._is_own_echo(event, post_id, user_id):
            return

        post = self.cache.get(post_id)
        if post is None:
            return

        flag, counter = EDGE_FIELDS[event.relation]
        inserted = event.event_type == "INSERT"
        changes = {counter: getattr(post, counter) + (1 if inserted else -1)}

        if self.viewer_id and user_id == self.viewer_id:
            if getattr(post, flag) == inserted:
                # flag already reflects this edge
                return
            changes[flag] = inserted

        self.cache.update(post_id, **changes)

    def _on_comment_event(self, event: ChangeEvent) -> None:
        keys = self._edge_keys(event)
        if keys is None or event.event_type not in ("INSERT", "DELETE"):
            return
        post_id, user_id = keys
        if self._is_own_echo(event, post_id, user_id):
            return
        self.cache.adjust(post_id, "comments_count", 1 if event.event_type == "INSERT" else -1)
