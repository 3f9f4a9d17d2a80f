"""Student progress service layer.

Public operations of the progress core:
- Progress initialization for a course instance
- Section item completion with cascade
- Progress lookups per level

Completion calls for the same student and course instance are serialized
through a ``CascadeLock``.
"""

from decimal import Decimal

import structlog

from coursetrack.core.context import ProgressContext
from coursetrack.curriculum import CourseProgressData

from .cascade import ProgressCascadeEngine
from .exceptions import ProgressError
from .initializer import ProgressInitializer
from .locks import CascadeLock, LocalCascadeLock
from .models import ProgressStatus
from .reader import ProgressReader
from .repository import ProgressRepository
from .schemas import CascadeUpdate, InitializationResult


logger = structlog.get_logger(__name__)


class ProgressService:
    """Service for student progress tracking."""

    def __init__(
        self,
        repository: ProgressRepository,
        lock: CascadeLock | None = None,
    ):
        """Initialize with a progress repository.

        Args:
            repository: Storage collaborator
            lock: Per-student exclusion for completion calls (defaults to an
                in-process lock)
        """
        self.repository = repository
        self.lock = lock if lock is not None else LocalCascadeLock()
        self.initializer = ProgressInitializer(repository)
        self.engine = ProgressCascadeEngine(repository)
        self.reader = ProgressReader(repository)

    # ==========================================================================
    # Initialization
    # ==========================================================================

    async def initialize_student_progress(
        self, course_data: CourseProgressData
    ) -> InitializationResult:
        """Create progress rows for every student of a course instance.

        Raises:
            InitializationFailedError: Nothing was written; retry the call
        """
        return await self.initializer.initialize(course_data)

    # ==========================================================================
    # Completion
    # ==========================================================================

    async def complete_section_items(
        self,
        course_instance_id: str,
        student_id: str,
        section_item_ids: list[str],
        cascade: bool = True,
    ) -> list[CascadeUpdate]:
        """Complete section items for a student, in the given order.

        Raises:
            GatingViolationError: Item completed before its predecessor
            ProgressNotFoundError: Missing progress row
            AdjacencyNotFoundError: Missing adjacency row or pointer
            CascadeLockError: Another call for this student is running
        """
        with ProgressContext(student_id=student_id, course_instance_id=course_instance_id):
            try:
                async with self.lock.hold(student_id, course_instance_id):
                    return await self.engine.complete_section_items(
                        course_instance_id, student_id, section_item_ids, cascade
                    )
            except ProgressError as e:
                log = logger.error if e.retryable else logger.warning
                log(
                    "section_items_completion_failed",
                    code=e.code,
                    retryable=e.retryable,
                    section_item_ids=section_item_ids,
                )
                raise

    # ==========================================================================
    # Queries
    # ==========================================================================

    async def get_course_progress(
        self, course_instance_id: str, student_id: str
    ) -> ProgressStatus | None:
        """Course-level status of a student."""
        return await self.reader.get_course_progress(course_instance_id, student_id)

    async def get_module_progress(
        self, course_instance_id: str, student_id: str, module_id: str
    ) -> ProgressStatus | None:
        """Module status of a student."""
        return await self.reader.get_module_progress(
            course_instance_id, student_id, module_id
        )

    async def get_section_progress(
        self, course_instance_id: str, student_id: str, section_id: str
    ) -> ProgressStatus | None:
        """Section status of a student."""
        return await self.reader.get_section_progress(
            course_instance_id, student_id, section_id
        )

    async def get_section_item_progress(
        self, course_instance_id: str, student_id: str, section_item_id: str
    ) -> ProgressStatus | None:
        """Section item status of a student."""
        return await self.reader.get_section_item_progress(
            course_instance_id, student_id, section_item_id
        )

    async def get_total_progress(
        self, course_instance_id: str, student_id: str
    ) -> Decimal | None:
        """Aggregate progress of a student (0 right after initialization)."""
        return await self.reader.get_total_progress(course_instance_id, student_id)
