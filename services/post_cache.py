"""
Post Cache Module

The local, in-memory mirror of the posts a view is showing. Entries are kept
sorted by creation time (newest first) and are unique by id. Observers get a
read-only snapshot after every change.
"""

from typing import Callable, Iterable, List, Optional, Tuple

from data.models import Post
from services.protocols import CacheObserver
from utils.logger import get_logger

logger = get_logger(__name__)


class PostCache:
    """Ordered, id-keyed collection of Post records owned by one session."""

    def __init__(self, posts: Iterable[Post] = ()):
        self._posts: List[Post] = []
        self._observers: List[CacheObserver] = []
        for post in posts:
            self._insert_sorted(post)

    def __len__(self) -> int:
        return len(self._posts)

    def __contains__(self, post_id: object) -> bool:
        return self.index_of(post_id) is not None

    def __iter__(self):
        return iter(self.snapshot())

    # =========================================================================
    # Reads
    # =========================================================================

    def snapshot(self) -> Tuple[Post, ...]:
        return tuple(self._posts)

    def ids(self) -> List[str]:
        return [post.id for post in self._posts]

    def get(self, post_id: str) -> Optional[Post]:
        index = self.index_of(post_id)
        return None if index is None else self._posts[index]

    def index_of(self, post_id: object) -> Optional[int]:
        for index, post in enumerate(self._posts):
            if post.id == post_id:
                return index
        return None

    def find_provisional(self, signature: tuple) -> Optional[Post]:
        """First provisional post with the given (user id, content, image) signature."""
        for post in self._posts:
            if post.provisional and post.signature == signature:
                return post
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    def add(self, post: Post) -> Post:
        """
        Insert a post at its sorted position, replacing any entry with the same id.

        Posts sharing a timestamp with existing entries go in front of them.
        """
        self._insert_sorted(post)
        self._notify()
        return post

    def extend(self, posts: Iterable[Post]) -> None:
        for post in posts:
            self._insert_sorted(post)
        self._notify()

    def reset(self, posts: Iterable[Post] = ()) -> None:
        """Replace the whole content at once."""
        self._posts = []
        for post in posts:
            self._insert_sorted(post)
        self._notify()

    def clear(self) -> None:
        self.reset(())

    def replace(self, old_id: str, post: Post) -> bool:
        """
        Swap the entry with old_id for post (provisional -> confirmed).

        Returns:
            bool: True if old_id was present. The new post is stored either way.
        """
        index = self.index_of(old_id)
        if index is not None:
            del self._posts[index]
        self._insert_sorted(post)
        self._notify()
        return index is not None

    def update(self, post_id: str, **changes) -> Optional[Post]:
        """
        Apply field changes to one post.

        Returns:
            The updated post, or None if post_id is not cached.
        """
        index = self.index_of(post_id)
        if index is None:
            return None
        updated = self._posts[index].with_changes(**changes)
        if "created_at" in changes:
            del self._posts[index]
            self._insert_sorted(updated)
        else:
            self._posts[index] = updated
        self._notify()
        return updated

    def adjust(self, post_id: str, field_name: str, delta: int) -> Optional[Post]:
        """Add delta to a counter field; the Post record clamps it at zero."""
        post = self.get(post_id)
        if post is None:
            return None
        return self.update(post_id, **{field_name: getattr(post, field_name) + delta})

    def remove(self, post_id: str) -> Optional[Post]:
        """
        Remove a post.

        Returns:
            The removed post, or None if it was not cached.
        """
        index = self.index_of(post_id)
        if index is None:
            return None
        removed = self._posts.pop(index)
        self._notify()
        return removed

    # =========================================================================
    # Observers
    # =========================================================================

    def subscribe(self, observer: CacheObserver) -> Callable[[], None]:
        """
        Register an observer called with a snapshot after each change.

        Returns:
            A function that removes the observer.
        """
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                logger.error(f"Post cache observer failed: {e}")

    def _insert_sorted(self, post: Post) -> None:
        existing = self.index_of(post.id)
        if existing is not None:
            del self._posts[existing]
        position = len(self._posts)
        for index, current in enumerate(self._posts):
            if current.created_at <= post.created_at:
                position = index
                break
        self._posts.insert(position, post)
