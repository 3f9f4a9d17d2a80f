"""Per-student cascade locks.

Two completion calls for the same (student, course instance) must not
interleave: both could pass the gating check before either writes. The
progress service holds one of these locks for the whole call.

- ``LocalCascadeLock``: asyncio locks, one process
- ``RedisCascadeLock``: Redis lock, shared by every worker
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import TYPE_CHECKING, Protocol

import structlog
from redis.exceptions import LockError

from coursetrack.core.redis import cascade_lock_name

from .exceptions import CascadeLockError


if TYPE_CHECKING:
    import redis.asyncio as redis

    from coursetrack.config.settings import Settings

logger = structlog.get_logger(__name__)


class CascadeLock(Protocol):
    """Exclusion over one student's progress in one course instance."""

    def hold(
        self, student_id: str, course_instance_id: str
    ) -> AbstractAsyncContextManager[None]:
        """Hold the lock for the duration of the ``async with`` block."""
        ...


class LocalCascadeLock:
    """In-process lock registry; entries are dropped once nobody uses them."""

    def __init__(self, blocking_timeout: float | None = None):
        self.blocking_timeout = blocking_timeout
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self._users: dict[tuple[str, str], int] = {}

    @property
    def active_keys(self) -> int:
        """Number of (course instance, student) keys currently held or awaited."""
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, student_id: str, course_instance_id: str) -> AsyncIterator[None]:
        key = (course_instance_id, student_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self.blocking_timeout)
            except TimeoutError:
                logger.warning(
                    "cascade_lock_timeout",
                    student_id=student_id,
                    course_instance_id=course_instance_id,
                )
                raise CascadeLockError(student_id, course_instance_id) from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class RedisCascadeLock:
    """Distributed lock through ``redis.asyncio``.

    The lease (``timeout``) bounds how long a crashed worker can keep a
    student locked.
    """

    def __init__(
        self,
        client: "redis.Redis",
        prefix: str,
        timeout: float,
        blocking_timeout: float | None,
    ):
        self.client = client
        self.prefix = prefix
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout

    @asynccontextmanager
    async def hold(self, student_id: str, course_instance_id: str) -> AsyncIterator[None]:
        name = cascade_lock_name(self.prefix, course_instance_id, student_id)
        lock = self.client.lock(
            name, timeout=self.timeout, blocking_timeout=self.blocking_timeout
        )

        if not await lock.acquire():
            logger.warning("cascade_lock_timeout", lock=name)
            raise CascadeLockError(student_id, course_instance_id)

        try:
            yield
        finally:
            try:
                await lock.release()
            except LockError as e:
                # Lease expired mid-call; another worker may already hold it
                logger.warning("cascade_lock_release_failed", lock=name, error=str(e))


def build_cascade_lock(
    settings: "Settings", redis_client: "redis.Redis | None" = None
) -> CascadeLock:
    """Cascade lock for the configured backend."""
    if settings.uses_redis_lock:
        if redis_client is None:
            msg = "progress_lock_backend=redis requires an initialized Redis client"
            raise RuntimeError(msg)
        return RedisCascadeLock(
            redis_client,
            prefix=settings.progress_lock_prefix,
            timeout=settings.progress_lock_timeout_seconds,
            blocking_timeout=settings.progress_lock_blocking_timeout_seconds,
        )
    return LocalCascadeLock(
        blocking_timeout=settings.progress_lock_blocking_timeout_seconds
    )
