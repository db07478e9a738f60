"""
Notification Module

Default implementation of services.protocols.Notifier. The view layer plugs
in its own toast component; the CLI uses LogNotifier.
"""

from utils.logger import get_logger

logger = get_logger(__name__)


class LogNotifier:
    """Notifier that writes every message through the application logger."""

    def success(self, message: str) -> None:
        logger.info(f"[success] {message}")

    def info(self, message: str) -> None:
        logger.info(message)

    def warning(self, message: str) -> None:
        logger.warning(message)

    def error(self, message: str) -> None:
        logger.error(message)
