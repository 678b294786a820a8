"""
Redis Cache Client for the SocialNet backend.

Provides:
- JSON cache helpers with TTL (recommendation results)
- Recommendation cache keys and invalidation
- Pub/sub notification when dynamic configuration changes

Redis is optional: every helper degrades to a no-op when the server is
unreachable, so the API keeps working without it (just slower).
"""

import json
import logging
from typing import Optional, Any
import redis
from redis.exceptions import RedisError, ConnectionError

from .config import settings
from .constants import (
    CONFIG_CHANGED_CHANNEL,
    RECOMMENDED_USERS_CACHE_PREFIX,
    RECOMMENDED_POSTS_CACHE_PREFIX,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Redis Connection
# =============================================================================

REDIS_URL = settings.redis_url

try:
    redis_client = redis.from_url(
        REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_keepalive=True,
        health_check_interval=30
    )
    redis_client.ping()
    logger.info(f"Redis connected: {REDIS_URL}")
except (RedisError, ConnectionError) as e:
    logger.warning(f"Redis connection failed: {e}. Caching disabled.")
    redis_client = None


# =============================================================================
# Cache Functions
# =============================================================================

def get_cache(key: str) -> Optional[Any]:
    """
    Get value from cache.

    Args:
        key: Cache key

    Returns:
        Cached value (parsed from JSON) or None if not found
    """
    if not redis_client:
        return None

    try:
        value = redis_client.get(key)
        if value:
            return json.loads(value)
        return None
    except (RedisError, json.JSONDecodeError) as e:
        logger.warning(f"Cache get error for key '{key}': {e}")
        return None


def set_cache(key: str, value: Any, ttl: int = 300) -> bool:
    """
    Set value in cache with TTL.

    Args:
        key: Cache key
        value: Value to cache (JSON-serialized; datetimes become ISO strings)
        ttl: Time-to-live in seconds (default: 5 minutes)

    Returns:
        True if successful, False otherwise
    """
    if not redis_client:
        return False

    try:
        serialized = json.dumps(value, default=str)
        redis_client.setex(key, ttl, serialized)
        return True
    except (RedisError, TypeError) as e:
        logger.warning(f"Cache set error for key '{key}': {e}")
        return False


def delete_cache(*keys: str) -> bool:
    """Delete one or more keys from cache."""
    if not redis_client or not keys:
        return False

    try:
        redis_client.delete(*keys)
        return True
    except RedisError as e:
        logger.warning(f"Cache delete error for keys {keys}: {e}")
        return False


# =============================================================================
# Recommendation Caching
# =============================================================================

def recommended_users_key(user_id: int) -> str:
    return f"{RECOMMENDED_USERS_CACHE_PREFIX}:{user_id}"


def recommended_posts_key(user_id: int) -> str:
    return f"{RECOMMENDED_POSTS_CACHE_PREFIX}:{user_id}"


def invalidate_recommendations(user_id: int) -> bool:
    """Drop both recommendation lists for a user."""
    return delete_cache(recommended_users_key(user_id), recommended_posts_key(user_id))


# =============================================================================
# Configuration Change Notifications
# =============================================================================

def notify_config_changed(key: str) -> bool:
    """
    Tell every API process that a configuration key changed.

    Each process listens on CONFIG_CHANGED_CHANNEL and drops its in-memory
    config cache entries (see main.listen_for_config_changes).
    """
    if not redis_client:
        return False

    try:
        redis_client.publish(CONFIG_CHANGED_CHANNEL, key)
        return True
    except RedisError as e:
        logger.warning(f"Failed to publish config change for '{key}': {e}")
        return False
