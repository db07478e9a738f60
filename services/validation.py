"""
Input Validation Module

Local checks run before any remote call. A failure here means no state
change and no request.
"""

from typing import Optional

from config import settings
from data.models import PostImage
from utils.exceptions import (
    EmptyCommentError, EmptyPostError, ImageTooLargeError, UnsupportedImageTypeError
)


def validate_image(image: PostImage) -> None:
    """
    Check an attachment's size and type.

    Raises:
        ImageTooLargeError: Larger than MAX_IMAGE_SIZE_MB.
        UnsupportedImageTypeError: Content type is not image/*.
    """
    if image.size > settings.MAX_IMAGE_SIZE_MB * 1024 * 1024:
        raise ImageTooLargeError(f"Image size should be less than {settings.MAX_IMAGE_SIZE_MB}MB")
    if not (image.content_type or "").startswith(settings.ALLOWED_IMAGE_PREFIX):
        raise UnsupportedImageTypeError("Please select an image file")


def validate_new_post(content: Optional[str], image: Optional[PostImage] = None) -> str:
    """
    Validate a post about to be created.

    Args:
        content: Text typed by the user.
        image: Optional attachment.

    Returns:
        str: The trimmed content.

    Raises:
        EmptyPostError: Neither text nor image.
    """
    text = (content or "").strip()
    if not text and image is None:
        raise EmptyPostError("Post cannot be empty")
    if image is not None:
        validate_image(image)
    return text


def validate_comment(text: Optional[str]) -> str:
    text = (text or "").strip()
    if not text:
        raise EmptyCommentError("Comment cannot be empty")
    return text
