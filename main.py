"""
DeskStaff Feed Client

Command-line entry point for the DeskStaff feed core. It signs in to the
hosted backend, opens a feed session and runs one feed action: print the
feed, watch it live, or post, like, bookmark, comment on and delete posts.
"""

import argparse
import asyncio
import logging
import mimetypes
import os
import sys
from typing import List, Optional

from config import settings
from config.validators import get_config_summary, validate_settings
from data.gateway import SupabaseGateway
from data.models import Post, PostImage
from services.feed_session import FeedSession
from services.notifications import LogNotifier
from utils.exceptions import ConfigurationError, DeskStaffError, GatewayError, ValidationError
from utils.logger import get_logger, setup_file_logging

# Set up logging
logger = get_logger(__name__)


def format_post(post: Post) -> str:
    """Render one post as a single console line."""
    author = post.author.full_name if post.author and post.author.full_name else post.user_id
    marks = ("♥" if post.liked else " ") + ("★" if post.bookmarked else " ")
    image = " [image]" if post.image_url else ""
    return (
        f"{marks} {post.id}  {post.created_at:%Y-%m-%d %H:%M}  {author}: {post.content}{image}"
        f"  ({post.likes_count} likes, {post.comments_count} comments)"
    )


def load_image(path: str) -> PostImage:
    """Read an image file from disk into a PostImage."""
    content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    with open(path, "rb") as f:
        data = f.read()
    return PostImage(filename=os.path.basename(path), data=data, content_type=content_type)


class DeskStaffClient:
    """
    Main application class for the command-line client.

    This class wires the gateway into a FeedSession and runs one command.
    """

    def __init__(self, gateway: Optional[SupabaseGateway] = None, validate: bool = True):
        """
        Initialize the client.

        Args:
            gateway: Injected gateway (tests); a SupabaseGateway by default.
            validate: Validate settings before doing anything.
        """
        if validate:
            validate_settings(require_credentials=gateway is None)
        self.gateway = gateway or SupabaseGateway()
        self.notifier = LogNotifier()

    async def run(self, command: str, author: Optional[str] = None, **options) -> bool:
        """
        Sign in, open a feed session and execute command.

        Args:
            command: One of feed, watch, post, like, bookmark, comment, delete.
            author: Restrict the feed to this author's posts.
            **options: Command arguments (content, image, post_id, text, pages, seconds).

        Returns:
            bool: True if the command succeeded.
        """
        if not await self.gateway.connect():
            logger.error("Could not connect to the backend")
            return False

        try:
            if not await self.gateway.get_current_user_id():
                await self.gateway.sign_in(settings.DESKSTAFF_EMAIL, settings.DESKSTAFF_PASSWORD)

            session = FeedSession(
                self.gateway,
                notifier=self.notifier,
                author_id=author,
                realtime=command == "watch",
            )
            async with session:
                if session.error:
                    return False
                return await self._execute(session, command, options)

        except ValidationError as e:
            logger.warning(f"Input rejected: {e}")
            return False
        except GatewayError as e:
            logger.error(f"Backend error: {e}", exc_info=True)
            return False
        except DeskStaffError as e:
            logger.error(f"DeskStaff error: {e}", exc_info=True)
            return False
        finally:
            await self.gateway.close()

    async def _execute(self, session: FeedSession, command: str, options: dict) -> bool:
        if command == "feed":
            for _ in range(max(0, options.get("pages", 1) - 1)):
                if not session.has_more:
                    break
                await session.load_more()
            self._print(session.posts)
            return True

        if command == "watch":
            self._print(session.posts)
            unsubscribe = session.cache.subscribe(self._print)
            try:
                await asyncio.sleep(options.get("seconds", 60))
            finally:
                unsubscribe()
            return True

        if command == "post":
            image = load_image(options["image"]) if options.get("image") else None
            post = await session.create_post(options.get("content") or "", image)
            print(format_post(post))
            return True

        post_id = options.get("post_id")
        if command == "like":
            return await session.toggle_like(post_id)
        if command == "bookmark":
            return await session.toggle_bookmark(post_id)
        if command == "comment":
            return await session.add_comment(post_id, options.get("text") or "")
        if command == "delete":
            return await session.delete_post(post_id)

        logger.error(f"Unknown command: {command}")
        return False

    @staticmethod
    def _print(posts) -> None:
        print("-" * 72)
        if not posts:
            print("No posts yet")
        for post in posts:
            print(format_post(post))


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description='DeskStaff Feed Client')
    parser.add_argument('--log-file', type=str, default=None, help='Log file path')
    parser.add_argument('--log-level', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        default='INFO', help='Logging level')
    parser.add_argument('--author', type=str, default=None,
                        help="Only show posts by this user id")

    sub = parser.add_subparsers(dest='command', required=True)

    feed = sub.add_parser('feed', help='Print the feed')
    feed.add_argument('--pages', type=int, default=1, help='Number of pages to load')

    watch = sub.add_parser('watch', help='Print the feed and follow live changes')
    watch.add_argument('--seconds', type=float, default=60, help='How long to watch')

    post = sub.add_parser('post', help='Create a post')
    post.add_argument('content', nargs='?', default='', help='Post text')
    post.add_argument('--image', type=str, default=None, help='Path of an image to attach')

    for name, help_text in (('like', 'Toggle like on a post'),
                            ('bookmark', 'Toggle bookmark on a post'),
                            ('delete', 'Delete one of your posts')):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument('post_id', help='Post id')

    comment = sub.add_parser('comment', help='Comment on a post')
    comment.add_argument('post_id', help='Post id')
    comment.add_argument('text', help='Comment text')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    # Set up logging
    log_level = getattr(logging, args.log_level)
    setup_file_logging(args.log_file, log_level)

    logger.info("Starting DeskStaff feed client")
    logger.debug(f"Configuration: {get_config_summary()}")

    options = {k: v for k, v in vars(args).items()
               if k not in ('command', 'author', 'log_file', 'log_level')}

    try:
        client = DeskStaffClient()
        success = asyncio.run(client.run(args.command, author=args.author, **options))
        exit_code = 0 if success else 1
    except ConfigurationError as e:
        logger.error(str(e))
        exit_code = 1
    except Exception as e:
        logger.error(f"Unhandled exception in DeskStaff client: {e}", exc_info=True)
        exit_code = 2

    logger.info(f"DeskStaff feed client finished with exit code {exit_code}")
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
