"""
Shared Test Fixtures for the DeskStaff Feed Core

This module provides common fixtures used across all test modules.
Fixtures include an in-memory gateway standing in for the hosted backend,
a recording notifier, and data factories for posts and backend rows.
"""

import pytest
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
import itertools
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.models import Post, PostAuthor, PostImage
from data.protocols import Subscription
from data.schemas import (
    BookmarkEdgeRow, ChangeEvent, CommentRow, LikeEdgeRow, PostRow, UserRow
)
from services.notifications import LogNotifier
from utils.exceptions import DuplicateEdgeError

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
VIEWER_ID = "viewer-1"
OTHER_ID = "user-2"


# =============================================================================
# Data Factories
# =============================================================================

def make_post(post_id: str, minutes: int = 0, user_id: str = OTHER_ID, **overrides) -> Post:
    """
    Build a cached Post created ``minutes`` after BASE_TIME.

    Larger minutes means newer, so it sorts earlier in the feed.
    """
    fields = dict(
        id=post_id,
        user_id=user_id,
        content=f"content of {post_id}",
        created_at=BASE_TIME + timedelta(minutes=minutes),
        author=PostAuthor(id=user_id, full_name=f"Name {user_id}"),
    )
    fields.update(overrides)
    return Post(**fields)


def make_post_row(post_id: str, minutes: int = 0, user_id: str = OTHER_ID, **overrides) -> Dict[str, Any]:
    """Build a raw posts row the way the backend returns it (with joins)."""
    row = {
        "id": post_id,
        "user_id": user_id,
        "content": f"content of {post_id}",
        "image_url": None,
        "created_at": (BASE_TIME + timedelta(minutes=minutes)).isoformat(),
        "updated_at": None,
        "user": {"id": user_id, "full_name": f"Name {user_id}", "avatar_url": None},
        "likes": [{"count": 0}],
        "comments": [{"count": 0}],
        "bookmarks": [{"count": 0}],
    }
    row.update(overrides)
    return row


def make_image(size: int = 1024, content_type: str = "image/png", filename: str = "photo.png") -> PostImage:
    return PostImage(filename=filename, data=b"\x89" * size, content_type=content_type)


# =============================================================================
# Recording Notifier
# =============================================================================

class RecordingNotifier(LogNotifier):
    """LogNotifier that also keeps (level, message) pairs for assertions."""

    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))
        super().success(message)

    def info(self, message: str) -> None:
        self.messages.append(("info", message))
        super().info(message)

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))
        super().warning(message)

    def error(self, message: str) -> None:
        self.messages.append(("error", message))
        super().error(message)

    def of_level(self, level: str) -> List[str]:
        return [msg for lvl, msg in self.messages if lvl == level]


# =============================================================================
# In-memory Gateway
# =============================================================================

class FakeGateway:
    """
    In-memory RemoteGateway.

    Attributes:
        viewer_id: Id returned by get_current_user_id (None = signed out).
        fail: Method name -> exception raised on the next calls to that method.
        calls: (method name, args) for every call, in order.
        before_write: Optional hook run with the method name at the start of
            every write, used to observe the cache mid-flight.
    """

    def __init__(self, viewer_id: Optional[str] = VIEWER_ID):
        self.viewer_id = viewer_id
        self.users: Dict[str, Dict[str, Any]] = {
            VIEWER_ID: {"id": VIEWER_ID, "full_name": "Viewer One"},
            OTHER_ID: {"id": OTHER_ID, "full_name": "User Two"},
        }
        self.posts: Dict[str, Dict[str, Any]] = {}
        self.likes: set = set()
        self.bookmarks: set = set()
        self.comments: List[Dict[str, Any]] = []
        self.images: Dict[str, bytes] = {}
        self.handlers: Dict[str, Callable] = {}
        self.fail: Dict[str, Exception] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self.before_write: Optional[Callable[[str], None]] = None
        self._ids = itertools.count(1)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail:
            raise self.fail[name]

    def _write(self, name: str, *args) -> None:
        if self.before_write is not None:
            self.before_write(name)
        self._record(name, *args)

    def called(self, name: str) -> List[tuple]:
        return [args for call, args in self.calls if call == name]

    def seed(self, *rows: Dict[str, Any]) -> None:
        for row in rows:
            self.posts[row["id"]] = row

    def _counted(self, row: Dict[str, Any]) -> Dict[str, Any]:
        post_id = row["id"]
        counted = dict(row)
        counted["likes"] = [{"count": sum(1 for p, _ in self.likes if p == post_id)}]
        counted["bookmarks"] = [{"count": sum(1 for p, _ in self.bookmarks if p == post_id)}]
        counted["comments"] = [{"count": sum(1 for c in self.comments if c["post_id"] == post_id)}]
        return counted

    # Connection & auth

    async def connect(self) -> bool:
        self._record("connect")
        return True

    async def close(self) -> None:
        self._record("close")
        self.handlers.clear()

    async def sign_in(self, email: str, password: str) -> str:
        self._record("sign_in", email)
        self.viewer_id = VIEWER_ID
        return VIEWER_ID

    # Reads

    async def get_current_user_id(self) -> Optional[str]:
        self._record("get_current_user_id")
        return self.viewer_id

    async def fetch_user(self, user_id: str) -> Optional[UserRow]:
        self._record("fetch_user", user_id)
        row = self.users.get(user_id)
        return UserRow.model_validate(row) if row else None

    async def fetch_posts(self, author_id=None, offset=0, limit=10):
        self._record("fetch_posts", author_id, offset, limit)
        rows = [r for r in self.posts.values() if not author_id or r["user_id"] == author_id]
        rows.sort(key=lambda r: r["created_at"], reverse=True)
        page = rows[offset:offset + limit]
        return [PostRow.model_validate(self._counted(r)) for r in page], len(rows)

    async def fetch_post(self, post_id: str) -> Optional[PostRow]:
        self._record("fetch_post", post_id)
        row = self.posts.get(post_id)
        return PostRow.model_validate(self._counted(row)) if row else None

    async def fetch_viewer_flags(self, post_ids: Sequence[str], user_id: str):
        self._record("fetch_viewer_flags", tuple(post_ids), user_id)
        ids = set(post_ids)
        liked = {p for p, u in self.likes if u == user_id and p in ids}
        bookmarked = {p for p, u in self.bookmarks if u == user_id and p in ids}
        return liked, bookmarked

    # Writes

    async def insert_post(self, user_id: str, content: str, image_url: Optional[str] = None) -> PostRow:
        self._write("insert_post", user_id, content, image_url)
        post_id = f"srv-{next(self._ids)}"
        row = {
            "id": post_id,
            "user_id": user_id,
            "content": content,
            "image_url": image_url,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        self.posts[post_id] = row
        return PostRow.model_validate(row)

    async def delete_post(self, post_id: str, user_id: str) -> None:
        self._write("delete_post", post_id, user_id)
        if self.posts.get(post_id, {}).get("user_id") == user_id:
            del self.posts[post_id]

    async def insert_like(self, post_id: str, user_id: str) -> LikeEdgeRow:
        self._write("insert_like", post_id, user_id)
        if (post_id, user_id) in self.likes:
            raise DuplicateEdgeError("Like post: already exists", code="23505")
        self.likes.add((post_id, user_id))
        return LikeEdgeRow(post_id=post_id, user_id=user_id)

    async def delete_like(self, post_id: str, user_id: str) -> None:
        self._write("delete_like", post_id, user_id)
        self.likes.discard((post_id, user_id))

    async def insert_bookmark(self, post_id: str, user_id: str) -> BookmarkEdgeRow:
        self._write("insert_bookmark", post_id, user_id)
        if (post_id, user_id) in self.bookmarks:
            raise DuplicateEdgeError("Bookmark post: already exists", code="23505")
        self.bookmarks.add((post_id, user_id))
        return BookmarkEdgeRow(post_id=post_id, user_id=user_id)

    async def delete_bookmark(self, post_id: str, user_id: str) -> None:
        self._write("delete_bookmark", post_id, user_id)
        self.bookmarks.discard((post_id, user_id))

    async def insert_comment(self, post_id: str, user_id: str, content: str) -> CommentRow:
        self._write("insert_comment", post_id, user_id, content)
        row = {"post_id": post_id, "user_id": user_id, "content": content, "id": f"c-{next(self._ids)}"}
        self.comments.append(row)
        return CommentRow.model_validate(row)

    # Storage

    async def upload_image(self, path: str, data: bytes, content_type: str) -> str:
        self._write("upload_image", path, content_type)
        self.images[path] = data
        return f"https://test.supabase.co/storage/v1/object/public/post_images/{path}"

    async def delete_images(self, paths: Sequence[str]) -> None:
        self._write("delete_images", tuple(paths))
        for path in paths:
            self.images.pop(path, None)

    async def list_images(self, prefix: str) -> List[str]:
        self._record("list_images", prefix)
        return [p for p in self.images if p.startswith(prefix)]

    # Realtime

    async def subscribe(self, relation: str, events: Sequence[str], handler) -> Subscription:
        self._record("subscribe", relation, tuple(events))
        self.handlers[relation] = handler
        return Subscription(relation=relation, events=tuple(events), handle=relation)

    async def unsubscribe(self, subscription: Subscription) -> None:
        self._record("unsubscribe", subscription.relation)
        self.handlers.pop(subscription.relation, None)

    async def emit(self, relation: str, event_type: str, new: Optional[dict] = None,
                   old: Optional[dict] = None) -> None:
        """Deliver a change event to the subscribed handler, if any."""
        handler = self.handlers.get(relation)
        if handler is None:
            return
        await handler(ChangeEvent(relation=relation, event_type=event_type, new=new or {}, old=old or {}))


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def gateway():
    """In-memory gateway signed in as VIEWER_ID."""
    return FakeGateway()


@pytest.fixture
def notifier():
    """Notifier that records (level, message) pairs."""
    return RecordingNotifier()


@pytest.fixture
def three_posts():
    """p1 (newest), p2, p3 (oldest), all by OTHER_ID."""
    return [make_post("p1", minutes=3), make_post("p2", minutes=2), make_post("p3", minutes=1)]
