"""
Application Constants for the SocialNet backend.

Centralizes limits, cache key prefixes and magic values.

Note: Environment-driven configuration lives in config.py, and runtime-editable
configuration lives in the environment_variables table (config_store.py).
This file only contains true constants that don't change between environments.
"""

# =============================================================================
# Authentication Configuration
# =============================================================================

JWT_ALGORITHM = "HS256"

# =============================================================================
# User & Content Limits
# =============================================================================

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MIN_PASSWORD_LENGTH = 8
MAX_POST_LENGTH = 5000
MAX_COMMENT_LENGTH = 2000
MAX_CONFIG_VALUE_LENGTH = 10000

# =============================================================================
# Pagination Defaults
# =============================================================================

DEFAULT_FEED_LIMIT = 20
MAX_FEED_LIMIT = 100
DEFAULT_AUDIT_PAGE_SIZE = 20
MAX_AUDIT_PAGE_SIZE = 100
DEFAULT_RECOMMENDED_USERS = 5
DEFAULT_RECOMMENDED_POSTS = 10
MAX_RECOMMENDATIONS = 50

# =============================================================================
# Dynamic Configuration
# =============================================================================

CONFIG_KEY_PATTERN = r"^[A-Z0-9_]+$"
REDACTED = "[REDACTED]"
DEFAULT_CONFIG_CATEGORY = "general"
FEATURE_CATEGORY = "features"
FEATURE_PREFIX = "FEATURE_"
SYSTEM_ACTOR = "system"
ENTITY_ENVIRONMENT_VARIABLE = "ENVIRONMENT_VARIABLE"

CONFIG_CHANGED_CHANNEL = "socialnet:config_changed"
LISTENER_RETRY_BASE_DELAY = 1.0   # seconds, doubled after each failed reconnect
LISTENER_RETRY_MAX_DELAY = 60.0

# Process environment variables copied into the store on first initialization
IMPORTABLE_ENV_KEYS = [
    "GOOGLE_CLIENT_ID",
    "GOOGLE_CLIENT_SECRET",
    "FACEBOOK_CLIENT_ID",
    "FACEBOOK_CLIENT_SECRET",
    "TWITTER_CLIENT_ID",
    "TWITTER_CLIENT_SECRET",
    "GITHUB_CLIENT_ID",
    "GITHUB_CLIENT_SECRET",
    "REDIS_URL",
    "OPENAI_API_KEY",
    "DATABASE_URL",
    "EMAIL_SERVER_HOST",
    "EMAIL_SERVER_PORT",
    "EMAIL_SERVER_USER",
    "EMAIL_SERVER_PASSWORD",
    "EMAIL_FROM",
    "S3_UPLOAD_KEY",
    "S3_UPLOAD_SECRET",
    "S3_UPLOAD_BUCKET",
    "S3_UPLOAD_REGION",
]

SECRET_KEY_MARKERS = ("SECRET", "KEY", "TOKEN", "PASSWORD")

# =============================================================================
# Recommendations
# =============================================================================

RECOMMENDED_USERS_CACHE_PREFIX = "recommendations:users"
RECOMMENDED_POSTS_CACHE_PREFIX = "recommendations:posts"

# =============================================================================
# Content Moderation
# =============================================================================

MODERATION_FALLBACK_SCORE = 0.5
MODERATION_UNAVAILABLE_MESSAGE = "Moderation service unavailable"

# =============================================================================
# Content Summaries & Language Detection
# =============================================================================

CONTENT_AI_MODEL = "gpt-4o"
SUMMARY_MAX_TOKENS = 100
LANGUAGE_MAX_TOKENS = 10
SUMMARY_EMPTY_MESSAGE = "No summary available"
SUMMARY_UNAVAILABLE_MESSAGE = "Summary unavailable"
DEFAULT_CONTENT_LANGUAGE = "en"

# =============================================================================
# Analytics
# =============================================================================

# Reporting windows accepted by GET /admin/stats, in days
STATS_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_STATS_PERIOD = "30d"
