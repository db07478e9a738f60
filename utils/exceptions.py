"""
Custom Exception Classes for the DeskStaff Feed Core

This module defines custom exceptions for better error handling and
categorization of failures across the feed, dispatcher and gateway layers.
"""

from typing import Optional


class DeskStaffError(Exception):
    """Base exception for all DeskStaff feed errors."""
    pass


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(DeskStaffError):
    """Raised when configuration validation fails or required settings are missing."""
    pass


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(DeskStaffError):
    """Base exception for malformed user input rejected before any remote call."""
    pass


class EmptyPostError(ValidationError):
    """Raised when a post has neither text content nor an image."""
    pass


class ImageTooLargeError(ValidationError):
    """Raised when an attached image exceeds the configured size limit."""
    pass


class UnsupportedImageTypeError(ValidationError):
    """Raised when an attachment is not an image."""
    pass


class EmptyCommentError(ValidationError):
    """Raised when a comment has no text."""
    pass


# =============================================================================
# Remote Gateway Errors
# =============================================================================

class GatewayError(DeskStaffError):
    """Base exception for failures talking to the hosted backend."""
    pass


class NotAuthenticatedError(GatewayError):
    """Raised when an operation needs a signed-in user and there is none."""
    pass


class RemoteReadError(GatewayError):
    """Raised when a row read (feed hydration, single post fetch) fails."""
    pass


class RemoteWriteError(GatewayError):
    """Raised when an insert or delete is rejected by the backend."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class DuplicateEdgeError(RemoteWriteError):
    """Raised when inserting a like/bookmark edge that already exists."""
    pass


class MediaUploadError(GatewayError):
    """Raised when an image upload to object storage fails."""
    pass


class SubscriptionError(GatewayError):
    """Raised when a change-feed subscription cannot be set up."""
    pass


# =============================================================================
# Feed Errors
# =============================================================================

class FeedError(DeskStaffError):
    """Base exception for local feed state errors."""
    pass


class PostNotFoundError(FeedError):
    """Raised when an operation targets a post that is not in the cache."""
    pass


class PermissionDeniedError(FeedError):
    """Raised when the viewer tries to change a post they do not own."""
    pass
