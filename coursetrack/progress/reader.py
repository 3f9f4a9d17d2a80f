"""Read-only progress lookups, straight from the repository."""

from decimal import Decimal

from .models import Level, ProgressStatus
from .repository import ProgressRepository


class ProgressReader:
    """Stored progress of a student, per level."""

    def __init__(self, repository: ProgressRepository):
        self.repository = repository

    async def get_course_progress(
        self, course_instance_id: str, student_id: str
    ) -> ProgressStatus | None:
        """Course-level status (the course row is keyed by the instance ID)."""
        return await self.repository.get_progress(
            Level.COURSE, course_instance_id, student_id, course_instance_id
        )

    async def get_module_progress(
        self, course_instance_id: str, student_id: str, module_id: str
    ) -> ProgressStatus | None:
        return await self.repository.get_progress(
            Level.MODULE, module_id, student_id, course_instance_id
        )

    async def get_section_progress(
        self, course_instance_id: str, student_id: str, section_id: str
    ) -> ProgressStatus | None:
        return await self.repository.get_progress(
            Level.SECTION, section_id, student_id, course_instance_id
        )

    async def get_section_item_progress(
        self, course_instance_id: str, student_id: str, section_item_id: str
    ) -> ProgressStatus | None:
        return await self.repository.get_progress(
            Level.SECTION_ITEM, section_item_id, student_id, course_instance_id
        )

    async def get_total_progress(
        self, course_instance_id: str, student_id: str
    ) -> Decimal | None:
        return await self.repository.get_total_progress(student_id, course_instance_id)
