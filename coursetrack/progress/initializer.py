"""Bulk initialization of student progress.

For every student of a course instance:
- total progress is reset to 0
- a course row is created (IN_PROGRESS) unless one exists
- module/section/item rows are created unless they exist: the first chain
  is IN_PROGRESS, everything else INCOMPLETE
and the adjacency of the curriculum is upserted. All of it is one atomic
batch.

Planning (``plan_initialization``) is pure; storage is only read for the
students' stored module statuses and then written once.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import structlog

from coursetrack.core.context import ProgressContext
from coursetrack.curriculum import (
    CourseProgressData,
    CurriculumAdjacency,
    NormalizedCurriculum,
    build_adjacency,
    normalize_curriculum,
)

from .exceptions import InitializationFailedError
from .models import ADJACENCY_LEVELS, Level, ProgressRecord, ProgressStatus
from .repository import (
    InsertProgress,
    ProgressRepository,
    ResetTotalProgress,
    UpsertAdjacency,
    WriteOperation,
)
from .schemas import InitializationResult


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StudentProgressRows:
    """Progress rows planned for one student."""

    course: ProgressRecord
    modules: tuple[ProgressRecord, ...]
    sections: tuple[ProgressRecord, ...]
    section_items: tuple[ProgressRecord, ...]

    def __len__(self) -> int:
        return 1 + len(self.modules) + len(self.sections) + len(self.section_items)


@dataclass(frozen=True)
class InitializationPlan:
    """Complete write set of one initialization."""

    operations: tuple[WriteOperation, ...]
    student_count: int
    total_records: int


def plan_student_rows(
    curriculum: NormalizedCurriculum,
    student_id: str,
    stored_module_status: Mapping[str, ProgressStatus],
) -> StudentProgressRows:
    """Plan the progress rows of one student.

    A module starts IN_PROGRESS only when the module before it is COMPLETE in
    ``stored_module_status`` (the first module always is). Inside an
    IN_PROGRESS module only the first section, and inside it only the first
    item, start IN_PROGRESS.
    """
    course_instance_id = curriculum.course_instance_id

    def record(level: Level, entity_id: str, status: ProgressStatus) -> ProgressRecord:
        return ProgressRecord(
            level=level,
            student_id=student_id,
            entity_id=entity_id,
            course_instance_id=course_instance_id,
            status=status,
        )

    modules: list[ProgressRecord] = []
    sections: list[ProgressRecord] = []
    section_items: list[ProgressRecord] = []

    previous_complete = True
    for module in curriculum.modules:
        module_status = (
            ProgressStatus.IN_PROGRESS if previous_complete else ProgressStatus.INCOMPLETE
        )
        modules.append(record(Level.MODULE, module.module_id, module_status))

        for section_index, section in enumerate(module.sections):
            section_status = (
                ProgressStatus.IN_PROGRESS
                if module_status is ProgressStatus.IN_PROGRESS and section_index == 0
                else ProgressStatus.INCOMPLETE
            )
            sections.append(record(Level.SECTION, section.section_id, section_status))

            for item_index, item in enumerate(section.section_items):
                item_status = (
                    ProgressStatus.IN_PROGRESS
                    if section_status is ProgressStatus.IN_PROGRESS and item_index == 0
                    else ProgressStatus.INCOMPLETE
                )
                section_items.append(
                    record(Level.SECTION_ITEM, item.section_item_id, item_status)
                )

        # Decided by what is stored, not by what was just planned
        previous_complete = (
            stored_module_status.get(module.module_id) is ProgressStatus.COMPLETE
        )

    return StudentProgressRows(
        course=record(Level.COURSE, course_instance_id, ProgressStatus.IN_PROGRESS),
        modules=tuple(modules),
        sections=tuple(sections),
        section_items=tuple(section_items),
    )


def plan_initialization(
    curriculum: NormalizedCurriculum,
    adjacency: CurriculumAdjacency,
    student_ids: Sequence[str],
    stored_module_status: Mapping[str, Mapping[str, ProgressStatus]],
) -> InitializationPlan:
    """Plan every write of an initialization.

    Args:
        curriculum: Normalized curriculum of the course instance
        adjacency: Adjacency records of the curriculum
        student_ids: Students to initialize
        stored_module_status: Stored module statuses, by student then module

    Returns:
        Operations to run atomically plus the counts reported to callers
    """
    operations: list[WriteOperation] = []
    total_records = 0

    for student_id in student_ids:
        rows = plan_student_rows(
            curriculum, student_id, stored_module_status.get(student_id, {})
        )
        operations.extend(
            [
                ResetTotalProgress(student_id, curriculum.course_instance_id),
                InsertProgress(Level.COURSE, (rows.course,)),
                InsertProgress(Level.MODULE, rows.modules),
                InsertProgress(Level.SECTION, rows.sections),
                InsertProgress(Level.SECTION_ITEM, rows.section_items),
            ]
        )
        total_records += len(rows)

    operations.extend(
        UpsertAdjacency(level, adjacency.for_level(level)) for level in ADJACENCY_LEVELS
    )

    return InitializationPlan(
        operations=tuple(operations),
        student_count=len(student_ids),
        total_records=total_records,
    )


class ProgressInitializer:
    """Creates the progress and adjacency rows of a course instance."""

    def __init__(self, repository: ProgressRepository):
        self.repository = repository

    async def initialize(self, course_data: CourseProgressData) -> InitializationResult:
        """Initialize progress for every student of ``course_data``.

        Safe to re-run: existing progress rows are kept, adjacency is
        refreshed and total progress is reset.

        Raises:
            InitializationFailedError: If the atomic write failed (nothing
                was written)
        """
        course_instance_id = course_data.course_instance_id
        student_ids = course_data.unique_student_ids

        with ProgressContext(course_instance_id=course_instance_id):
            curriculum = normalize_curriculum(course_data)
            adjacency = build_adjacency(curriculum)

            stored_module_status = {
                student_id: await self.repository.get_progress_map(
                    Level.MODULE, student_id, course_instance_id
                )
                for student_id in student_ids
            }

            plan = plan_initialization(
                curriculum, adjacency, student_ids, stored_module_status
            )

            try:
                await self.repository.run_atomic(plan.operations)
            except Exception as e:
                logger.error(
                    "progress_initialization_failed",
                    students=plan.student_count,
                    operations=len(plan.operations),
                    error=str(e),
                )
                raise InitializationFailedError from e

            logger.info(
                "progress_initialized",
                students=plan.student_count,
                total_records=plan.total_records,
                adjacency_records=len(adjacency),
                first_section_item_id=curriculum.first_section_item_id,
            )

        return InitializationResult(
            student_count=plan.student_count, total_records=plan.total_records
        )
