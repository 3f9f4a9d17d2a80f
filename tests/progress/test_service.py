"""Tests for the progress service (public operations end to end)."""

from decimal import Decimal

import pytest
import pytest_asyncio

from coursetrack.progress.exceptions import CascadeLockError, GatingViolationError
from coursetrack.progress.locks import LocalCascadeLock
from coursetrack.progress.models import ProgressStatus
from coursetrack.progress.service import ProgressService


@pytest.fixture
def service(repository) -> ProgressService:
    """Progress service over the in-memory repository."""
    return ProgressService(repository, lock=LocalCascadeLock(blocking_timeout=0.05))


@pytest_asyncio.fixture
async def initialized_service(service, course_data) -> ProgressService:
    """Service with u1 initialized on the shared curriculum."""
    await service.initialize_student_progress(course_data)
    return service


class TestProgressService:
    """Tests for ProgressService."""

    def test_keeps_injected_lock(self, repository):
        """An idle local lock is used as given, with its timeout."""
        lock = LocalCascadeLock(blocking_timeout=0.05)

        service = ProgressService(repository, lock=lock)

        assert service.lock is lock
        assert service.lock.blocking_timeout == 0.05

    def test_default_lock(self, repository):
        """Without a lock an in-process one is created."""
        assert isinstance(ProgressService(repository).lock, LocalCascadeLock)

    @pytest.mark.asyncio
    async def test_initialize_then_read(self, service, course_data):
        """Readers see the first chain right after initialization."""
        result = await service.initialize_student_progress(course_data)

        assert result.student_count == 1
        assert await service.get_course_progress("CI1", "u1") is ProgressStatus.IN_PROGRESS
        assert (
            await service.get_module_progress("CI1", "u1", "M1")
            is ProgressStatus.IN_PROGRESS
        )
        assert (
            await service.get_section_progress("CI1", "u1", "S2")
            is ProgressStatus.INCOMPLETE
        )
        assert (
            await service.get_section_item_progress("CI1", "u1", "I1")
            is ProgressStatus.IN_PROGRESS
        )
        assert await service.get_total_progress("CI1", "u1") == Decimal(0)

    @pytest.mark.asyncio
    async def test_unknown_rows_read_as_none(self, service):
        """Lookups without rows return None."""
        assert await service.get_course_progress("CI1", "u1") is None
        assert await service.get_section_item_progress("CI1", "u1", "I1") is None
        assert await service.get_total_progress("CI1", "u1") is None

    @pytest.mark.asyncio
    async def test_walk_whole_course(self, initialized_service):
        """Completing every item in order completes the course."""
        items = ["I1", "I2", "I3", "I4", "I5", "I6", "I7", "I8"]

        updates = await initialized_service.complete_section_items("CI1", "u1", items)

        assert len(updates) == len(items)
        assert updates[-1].course == "CI1"
        assert (
            await initialized_service.get_course_progress("CI1", "u1")
            is ProgressStatus.COMPLETE
        )

    @pytest.mark.asyncio
    async def test_gating_error_propagates(self, initialized_service):
        """Rule violations reach the caller unchanged."""
        with pytest.raises(GatingViolationError):
            await initialized_service.complete_section_items("CI1", "u1", ["I2"])

    @pytest.mark.asyncio
    async def test_completion_waits_for_student_lock(self, repository, course_data):
        """A call for a student whose lock is held fails as retryable."""
        lock = LocalCascadeLock(blocking_timeout=0.05)
        service = ProgressService(repository, lock=lock)
        await service.initialize_student_progress(course_data)

        async with lock.hold("u1", "CI1"):
            with pytest.raises(CascadeLockError):
                await service.complete_section_items("CI1", "u1", ["I1"])

        assert lock.active_keys == 0
        assert (
            await service.get_section_item_progress("CI1", "u1", "I1")
            is ProgressStatus.IN_PROGRESS
        )

    @pytest.mark.asyncio
    async def test_other_students_not_blocked(self, initialized_service):
        """Locks are per student."""
        async with initialized_service.lock.hold("u2", "CI1"):
            updates = await initialized_service.complete_section_items(
                "CI1", "u1", ["I1"]
            )

        assert updates[0].section_items == ["I1", "I2"]
