"""Tests for per-student cascade locks."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest
from redis.exceptions import LockError

from coursetrack.config.settings import Settings
from coursetrack.progress.exceptions import CascadeLockError
from coursetrack.progress.locks import (
    LocalCascadeLock,
    RedisCascadeLock,
    build_cascade_lock,
)


# ==============================================================================
# Local Lock
# ==============================================================================


class TestLocalCascadeLock:
    """Tests for the in-process lock registry."""

    @pytest.mark.asyncio
    async def test_same_student_is_serialized(self):
        """Two holders of the same key never overlap."""
        lock = LocalCascadeLock()
        events: list[str] = []

        async def worker(name: str):
            async with lock.hold("u1", "CI1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_students_run_concurrently(self):
        """Keys are per (course instance, student)."""
        lock = LocalCascadeLock()
        events: list[str] = []

        async def worker(student_id: str):
            async with lock.hold(student_id, "CI1"):
                events.append(f"{student_id}-in")
                await asyncio.sleep(0.01)
                events.append(f"{student_id}-out")

        await asyncio.gather(worker("u1"), worker("u2"))

        assert events[:2] == ["u1-in", "u2-in"]

    @pytest.mark.asyncio
    async def test_unused_entries_are_dropped(self):
        """The registry does not grow with every student ever seen."""
        lock = LocalCascadeLock()

        async with lock.hold("u1", "CI1"):
            assert lock.active_keys == 1

        assert lock.active_keys == 0

    @pytest.mark.asyncio
    async def test_entry_dropped_after_error(self):
        """Errors inside the block still release the lock."""
        lock = LocalCascadeLock()

        with pytest.raises(RuntimeError):
            async with lock.hold("u1", "CI1"):
                raise RuntimeError("boom")

        assert lock.active_keys == 0

    @pytest.mark.asyncio
    async def test_blocking_timeout(self):
        """A waiter gives up after the blocking timeout."""
        lock = LocalCascadeLock(blocking_timeout=0.01)

        async with lock.hold("u1", "CI1"):
            with pytest.raises(CascadeLockError) as exc_info:
                async with lock.hold("u1", "CI1"):
                    pass

            assert lock.active_keys == 1

        assert exc_info.value.retryable is True
        assert exc_info.value.code == "cascade_lock_unavailable"
        assert lock.active_keys == 0


# ==============================================================================
# Redis Lock
# ==============================================================================


@pytest.fixture
def redis_lock():
    """Mock redis.asyncio lock object."""
    lock = Mock()
    lock.acquire = AsyncMock(return_value=True)
    lock.release = AsyncMock()
    return lock


@pytest.fixture
def mock_redis(redis_lock):
    """Mock Redis client returning ``redis_lock``."""
    client = Mock()
    client.lock = Mock(return_value=redis_lock)
    return client


class TestRedisCascadeLock:
    """Tests for the distributed lock."""

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, mock_redis, redis_lock):
        """Lock name carries course instance and student."""
        lock = RedisCascadeLock(
            mock_redis, prefix="coursetrack:cascade", timeout=30.0, blocking_timeout=5.0
        )

        async with lock.hold("u1", "CI1"):
            redis_lock.release.assert_not_awaited()

        mock_redis.lock.assert_called_once_with(
            "coursetrack:cascade:CI1:u1", timeout=30.0, blocking_timeout=5.0
        )
        redis_lock.acquire.assert_awaited_once()
        redis_lock.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_not_acquired(self, mock_redis, redis_lock):
        """Blocking timeout elapsed: nothing runs, nothing is released."""
        redis_lock.acquire = AsyncMock(return_value=False)
        lock = RedisCascadeLock(mock_redis, "p", timeout=30.0, blocking_timeout=0.1)

        body = Mock()
        with pytest.raises(CascadeLockError):
            async with lock.hold("u1", "CI1"):
                body()

        body.assert_not_called()
        redis_lock.release.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_expired_lease_on_release(self, mock_redis, redis_lock):
        """Losing the lease is logged, not raised."""
        redis_lock.release = AsyncMock(side_effect=LockError("Cannot release"))
        lock = RedisCascadeLock(mock_redis, "p", timeout=0.1, blocking_timeout=None)

        async with lock.hold("u1", "CI1"):
            pass

        redis_lock.release.assert_awaited_once()


class TestBuildCascadeLock:
    """Tests for lock backend selection."""

    def test_local_backend(self):
        """Default backend is in-process."""
        lock = build_cascade_lock(
            Settings(progress_lock_backend="local", progress_lock_blocking_timeout_seconds=2.0)
        )

        assert isinstance(lock, LocalCascadeLock)
        assert lock.blocking_timeout == 2.0

    def test_redis_backend(self, mock_redis):
        """Redis backend uses the configured prefix and lease."""
        settings = Settings(progress_lock_backend="redis", progress_lock_prefix="ct")

        lock = build_cascade_lock(settings, mock_redis)

        assert isinstance(lock, RedisCascadeLock)
        assert lock.prefix == "ct"
        assert lock.timeout == settings.progress_lock_timeout_seconds

    def test_redis_backend_requires_client(self):
        """Selecting Redis without a client is a startup error."""
        with pytest.raises(RuntimeError, match="requires an initialized Redis client"):
            build_cascade_lock(Settings(progress_lock_backend="redis"))
