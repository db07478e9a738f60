"""
Cache Bust Module

A version token that tells image observers "something changed, refetch".
One VersionCell is owned by each FeedSession and passed down explicitly.
"""

from typing import Callable, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from config import settings
from utils.helpers import now_millis
from utils.logger import get_logger

logger = get_logger(__name__)


class VersionCell:
    """Monotonically increasing version with subscribe/notify."""

    def __init__(self, initial: Optional[int] = None):
        self._version = initial if initial is not None else now_millis()
        self._subscribers: List[Callable[[int], None]] = []

    @property
    def version(self) -> int:
        return self._version

    def bump(self) -> int:
        """
        Advance the version and notify subscribers.

        Returns:
            int: The new version, strictly greater than the previous one.
        """
        self._version = max(now_millis(), self._version + 1)
        for callback in list(self._subscribers):
            try:
                callback(self._version)
            except Exception as e:
                logger.error(f"Cache bust subscriber failed: {e}")
        return self._version

    def subscribe(self, callback: Callable[[int], None]) -> Callable[[], None]:
        """
        Register a callback run with the new version on every bump.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def bust_url(self, url: str) -> str:
        """Return url with the cache bust parameter set to the current version."""
        if not url:
            return url
        try:
            parts = urlparse(url)
            if not parts.scheme or not parts.netloc:
                return url
            query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True)
                     if k != settings.CACHE_BUST_PARAM]
            query.append((settings.CACHE_BUST_PARAM, str(self._version)))
            return urlunparse(parts._replace(query=urlencode(query)))
        except ValueError:
            return url

    def bust_storage_url(self, url: str) -> str:
        """Bust only URLs served from the backend's object storage."""
        if not url or "supabase.co" not in url:
            return url
        return self.bust_url(url)
