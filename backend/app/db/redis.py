"""Redis client for session management

Only login sessions live here. Subscription and credit state is never cached
in Redis; it is always read from the database.
"""
import redis
import logging
from typing import Optional
from app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy initialization - no connection at import time
_client = None


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


# Session TTL (30 days)
SESSION_TTL = 30 * 24 * 60 * 60


def set_session(session_id: str, user_id: int) -> None:
    """Store session in Redis"""
    key = f"session:{session_id}"
    get_redis_client().setex(key, SESSION_TTL, user_id)


def get_session(session_id: str) -> Optional[int]:
    """Get user_id from session"""
    key = f"session:{session_id}"
    user_id = get_redis_client().get(key)
    return int(user_id) if user_id else None


def delete_session(session_id: str) -> None:
    """Delete session from Redis"""
    key = f"session:{session_id}"
    get_redis_client().delete(key)

