"""
Echo Ledger Module

Tracks the signatures of writes this session has issued, so the change feed
merger can recognize the session's own writes coming back as events and
skip them instead of applying the same delta twice.

An echo that never arrives (merger not running, delete events without full
row data) expires after ECHO_TTL_SECONDS so the ledger stays bounded.
"""

import time
from collections import deque
from typing import Callable, Deque, Dict, Optional, Tuple

from config import settings

EdgeSignature = Tuple[str, str, str, str]   # (relation, event type, post id, user id)


def edge_signature(relation: str, event_type: str, post_id: str, user_id: str) -> EdgeSignature:
    return (relation, event_type.upper(), str(post_id), str(user_id))


class EchoLedger:
    """Multiset of expected self-originated change events, with expiry."""

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            ttl: Seconds an expectation stays valid, defaults to ECHO_TTL_SECONDS.
            clock: Monotonic time source.
        """
        self.ttl = ttl if ttl is not None else settings.ECHO_TTL_SECONDS
        self._clock = clock
        self._expected: Dict[EdgeSignature, Deque[float]] = {}

    def expect(self, signature: EdgeSignature) -> None:
        self._prune()
        self._expected.setdefault(signature, deque()).append(self._clock() + self.ttl)

    def discard(self, signature: EdgeSignature) -> None:
        """Forget one expectation, e.g. because the write failed."""
        deadlines = self._expected.get(signature)
        if not deadlines:
            return
        deadlines.pop()
        if not deadlines:
            del self._expected[signature]

    def consume(self, signature: EdgeSignature) -> bool:
        """
        Match an incoming event against the expectations.

        Returns:
            bool: True if the event is a known echo and must be skipped.
        """
        self._prune()
        deadlines = self._expected.get(signature)
        if not deadlines:
            return False
        deadlines.popleft()
        if not deadlines:
            del self._expected[signature]
        return True

    def pending(self) -> int:
        self._prune()
        return sum(len(deadlines) for deadlines in self._expected.values())

    def clear(self) -> None:
        self._expected.clear()

    def _prune(self) -> None:
        now = self._clock()
        for signature in list(self._expected):
            deadlines = self._expected[signature]
            while deadlines and deadlines[0] <= now:
                deadlines.popleft()
            if not deadlines:
                del self._expected[signature]
