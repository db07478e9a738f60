"""
Service Protocol Definitions

This module defines typing.Protocol interfaces for the collaborators the feed
services talk to besides the backend. These protocols enable loose coupling,
dependency injection, and easier testing.

Protocols defined:
- Notifier: Interface for user-facing notifications (toast equivalent)
- CacheObserver: Callback signature for post cache change notifications
"""

from typing import Callable, Protocol, Tuple

from data.models import Post

CacheObserver = Callable[[Tuple[Post, ...]], None]


class Notifier(Protocol):
    """Protocol defining the outward notification channel.

    Every dispatcher failure is reported through exactly one error()
    call; successes are reported through success() or info().
    """

    def success(self, message: str) -> None:
        ...

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...
