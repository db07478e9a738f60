"""
Configuration Settings for the DeskStaff Feed Core

This module centralizes all configuration settings for the feed core,
including environment variables, backend credentials, and application constants.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Determine the application root directory
APP_ROOT = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(dotenv_path=os.path.join(APP_ROOT, '.env'))

# =============================================================================
# Backend (Supabase) Settings
# =============================================================================

SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Credentials used by the command-line client to sign in
DESKSTAFF_EMAIL = os.getenv("DESKSTAFF_EMAIL", "")
DESKSTAFF_PASSWORD = os.getenv("DESKSTAFF_PASSWORD", "")

# Relations
USERS_TABLE = "users"
POSTS_TABLE = "posts"
LIKES_TABLE = "post_likes"
COMMENTS_TABLE = "post_comments"
BOOKMARKS_TABLE = "post_bookmarks"

# Post select with author details and interaction aggregates
POST_SELECT = (
    "*, "
    "user:users (id, full_name, avatar_url, first_name, last_name), "
    "likes:post_likes(count), "
    "comments:post_comments(count), "
    "bookmarks:post_bookmarks(count)"
)

# Postgres unique-violation code returned when an edge already exists
DUPLICATE_KEY_CODE = "23505"

# Realtime
REALTIME_SCHEMA = os.getenv("REALTIME_SCHEMA", "public")
REALTIME_CHANNEL_PREFIX = "deskstaff"

# =============================================================================
# Storage Settings
# =============================================================================

POST_IMAGES_BUCKET = os.getenv("POST_IMAGES_BUCKET", "post_images")
IMAGE_CACHE_CONTROL = "3600"         # Seconds, sent with every upload
MAX_IMAGE_SIZE_MB = 5                # Largest accepted post image
ALLOWED_IMAGE_PREFIX = "image/"      # Accepted MIME type family

# =============================================================================
# Feed Settings
# =============================================================================

POSTS_PER_PAGE = int(os.getenv("POSTS_PER_PAGE", "10"))
PLACEHOLDER_ID_PREFIX = "temp-"      # Marks provisional posts not yet acknowledged
CACHE_BUST_PARAM = "_cb"             # Query parameter appended to busted image URLs
ECHO_TTL_SECONDS = float(os.getenv("ECHO_TTL_SECONDS", "120"))   # How long an own write waits for its realtime echo
