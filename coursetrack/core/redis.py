# ruff: noqa: PLW0603
"""Redis connection management.

Provides the async Redis client backing distributed cascade locks, so that
progress updates for one student are serialized across worker processes.
"""

import redis.asyncio as redis

from coursetrack.config import get_settings
from coursetrack.core.logging import get_logger


logger = get_logger(__name__)

# Global Redis client
_redis_client: redis.Redis | None = None


async def init_redis() -> redis.Redis:
    """Initialize Redis connection pool."""
    global _redis_client

    settings = get_settings()

    _redis_client = redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_connect_timeout,
        retry_on_timeout=settings.redis_retry_on_timeout,
        health_check_interval=settings.redis_health_check_interval,
        decode_responses=True,
    )

    # Startup fails when the lock server is unreachable
    try:
        await _redis_client.ping()
    except redis.ConnectionError as e:
        logger.error("redis_connection_failed", error=str(e))
        await _redis_client.aclose()
        _redis_client = None
        raise

    logger.info("redis_connected", max_connections=settings.redis_max_connections)
    return _redis_client


async def shutdown_redis() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client:
        await _redis_client.aclose()
        logger.info("redis_disconnected")
        _redis_client = None


def cascade_lock_name(prefix: str, course_instance_id: str, student_id: str) -> str:
    """Get the lock key guarding one student's progress in a course instance."""
    return f"{prefix}:{course_instance_id}:{student_id}"
