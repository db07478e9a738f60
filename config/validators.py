"""
Configuration Validation for the DeskStaff Feed Core

This module contains configuration validation logic.
Kept apart from settings.py so settings stays a plain constants module.
"""

import logging

from utils.exceptions import ConfigurationError
from utils.helpers import is_valid_url

logger = logging.getLogger(__name__)


def validate_settings(require_credentials: bool = False) -> bool:
    """
    Validate that all required settings are properly configured.

    Args:
        require_credentials: Also require DESKSTAFF_EMAIL / DESKSTAFF_PASSWORD,
            needed by the command-line client to sign in.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    # Import settings here to avoid circular imports
    from config import settings

    errors = []

    # Required environment variables
    required_vars = [
        ("SUPABASE_URL", settings.SUPABASE_URL),
        ("SUPABASE_ANON_KEY", settings.SUPABASE_ANON_KEY),
    ]
    if require_credentials:
        required_vars += [
            ("DESKSTAFF_EMAIL", settings.DESKSTAFF_EMAIL),
            ("DESKSTAFF_PASSWORD", settings.DESKSTAFF_PASSWORD),
        ]

    for var_name, var_value in required_vars:
        if not var_value:
            errors.append(f"Missing required environment variable: {var_name}")

    if settings.SUPABASE_URL and not is_valid_url(settings.SUPABASE_URL):
        errors.append(f"SUPABASE_URL is not a valid URL: {settings.SUPABASE_URL}")

    if not settings.POST_IMAGES_BUCKET:
        errors.append("POST_IMAGES_BUCKET must not be empty")

    # Validate numeric settings are within reasonable bounds
    numeric_validations = [
        ("POSTS_PER_PAGE", settings.POSTS_PER_PAGE, 1, 100),
        ("MAX_IMAGE_SIZE_MB", settings.MAX_IMAGE_SIZE_MB, 1, 50),
        ("ECHO_TTL_SECONDS", settings.ECHO_TTL_SECONDS, 1, 3600),
    ]

    for name, value, min_val, max_val in numeric_validations:
        if value < min_val or value > max_val:
            errors.append(f"{name} must be between {min_val} and {max_val}, got {value}")

    if not settings.PLACEHOLDER_ID_PREFIX:
        logger.warning("PLACEHOLDER_ID_PREFIX is empty; provisional posts will be hard to tell apart in logs")

    # Raise all errors at once
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return True


def get_config_summary() -> dict:
    """
    Returns a summary of current configuration (without sensitive values).
    Useful for logging startup state.
    """
    # Import settings here to avoid circular imports
    from config import settings

    return {
        "backend": {
            "url": settings.SUPABASE_URL[:30] + "..." if settings.SUPABASE_URL and len(settings.SUPABASE_URL) > 30 else settings.SUPABASE_URL,
            "anon_key_configured": bool(settings.SUPABASE_ANON_KEY),
            "realtime_schema": settings.REALTIME_SCHEMA,
        },
        "account": {
            "email_configured": bool(settings.DESKSTAFF_EMAIL),
        },
        "storage": {
            "bucket": settings.POST_IMAGES_BUCKET,
            "max_image_mb": settings.MAX_IMAGE_SIZE_MB,
        },
        "feed": {
            "posts_per_page": settings.POSTS_PER_PAGE,
            "echo_ttl_seconds": settings.ECHO_TTL_SECONDS,
        },
    }
