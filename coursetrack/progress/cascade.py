"""Progress cascade engine.

Completing a section item:
1. Gating: the item's predecessor (reversed adjacency) must be COMPLETE.
2. The item becomes COMPLETE.
3. With cascade, its next sibling becomes IN_PROGRESS; the last item of a
   section instead completes the section, which opens the next section (and
   its first item) or completes the module, and so on up to the course.

Every step reads the stored status and only ever moves it forward, so a call
interrupted halfway can simply be repeated. Steps are separate round trips,
not one transaction; callers serialize calls per student (see
``progress.locks``).
"""

import structlog

from coursetrack.core.context import ProgressContext

from .exceptions import AdjacencyNotFoundError, GatingViolationError, ProgressNotFoundError
from .models import AdjacencyRecord, Level, ProgressStatus
from .repository import ProgressRepository
from .schemas import CascadeUpdate


logger = structlog.get_logger(__name__)


class ProgressCascadeEngine:
    """Forward-only progress state machine over the four curriculum levels."""

    def __init__(self, repository: ProgressRepository):
        self.repository = repository

    async def complete_section_items(
        self,
        course_instance_id: str,
        student_id: str,
        section_item_ids: list[str],
        cascade: bool = True,
    ) -> list[CascadeUpdate]:
        """Complete section items in the given order.

        Items are processed exactly in caller order; a later item may rely on
        what an earlier one wrote (e.g. completing two consecutive items).

        Args:
            course_instance_id: Course instance ID
            student_id: Student ID
            section_item_ids: Items to complete, in order
            cascade: Advance to next items and escalate to containers

        Returns:
            One report per item

        Raises:
            GatingViolationError: An item's predecessor is not COMPLETE (items
                before it in the list stay completed)
            ProgressNotFoundError: A progress row is missing
            AdjacencyNotFoundError: An adjacency row or pointer is missing
        """
        updates: list[CascadeUpdate] = []

        with ProgressContext(student_id=student_id, course_instance_id=course_instance_id):
            for section_item_id in section_item_ids:
                update = await self._complete_section_item(
                    course_instance_id, student_id, section_item_id, cascade
                )
                updates.append(update)

        return updates

    async def _complete_section_item(
        self,
        course_instance_id: str,
        student_id: str,
        section_item_id: str,
        cascade: bool,
    ) -> CascadeUpdate:
        await self._check_gating(course_instance_id, student_id, section_item_id)

        if not cascade:
            await self._advance(
                Level.SECTION_ITEM,
                section_item_id,
                student_id,
                course_instance_id,
                ProgressStatus.COMPLETE,
            )
            update = CascadeUpdate.touching(Level.SECTION_ITEM, [section_item_id])
        else:
            update = await self._complete(
                Level.SECTION_ITEM, section_item_id, student_id, course_instance_id
            )

        logger.info(
            "section_item_completed",
            section_item_id=section_item_id,
            cascade=cascade,
            course_completed=update.course is not None,
            modules=update.modules,
            sections=update.sections,
            section_items=update.section_items,
        )
        return update

    # ==========================================================================
    # Gating
    # ==========================================================================

    async def _check_gating(
        self, course_instance_id: str, student_id: str, section_item_id: str
    ) -> None:
        """Raise unless the item's predecessor (if any) is COMPLETE."""
        previous_item_id = await self.repository.find_previous(
            Level.SECTION_ITEM, section_item_id
        )
        if previous_item_id is None:
            return

        previous_status = await self.repository.get_progress(
            Level.SECTION_ITEM, previous_item_id, student_id, course_instance_id
        )
        if previous_status is None:
            raise ProgressNotFoundError(Level.SECTION_ITEM, previous_item_id, student_id)

        if previous_status is not ProgressStatus.COMPLETE:
            logger.warning(
                "section_item_gating_violation",
                section_item_id=section_item_id,
                previous_item_id=previous_item_id,
                previous_status=previous_status.value,
            )
            raise GatingViolationError(section_item_id, previous_item_id)

    # ==========================================================================
    # Cascade
    # ==========================================================================

    async def _complete(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
    ) -> CascadeUpdate:
        """Complete an entity, then open its next sibling or escalate.

        Same rule at every level: complete, advance to the next sibling and
        open its first-child chain, or - when there is no next sibling -
        complete the parent. The course is terminal.
        """
        await self._advance(
            level, entity_id, student_id, course_instance_id, ProgressStatus.COMPLETE
        )

        if level is Level.COURSE:
            logger.info("course_completed")
            return CascadeUpdate(course=entity_id)

        adjacency = await self._require_adjacency(level, entity_id)

        if adjacency.next_id is not None:
            await self._advance(
                level,
                adjacency.next_id,
                student_id,
                course_instance_id,
                ProgressStatus.IN_PROGRESS,
            )
            update = CascadeUpdate.touching(level, [entity_id, adjacency.next_id])
            return await self._open_first_children(
                level, adjacency.next_id, student_id, course_instance_id, update
            )

        parent_level = level.parent
        parent_id = (
            course_instance_id if parent_level is Level.COURSE else adjacency.parent_id
        )
        logger.debug(
            "progress_escalated",
            level=level.value,
            entity_id=entity_id,
            parent_level=parent_level.value,
            parent_id=parent_id,
        )
        parent_update = await self._complete(
            parent_level, parent_id, student_id, course_instance_id
        )
        return parent_update.escalated_from(level, entity_id)

    async def _open_first_children(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
        update: CascadeUpdate,
    ) -> CascadeUpdate:
        """Mark the first-child chain below ``entity_id`` IN_PROGRESS."""
        child_level = level.child
        while child_level is not None:
            adjacency = await self._require_adjacency(level, entity_id)
            if adjacency.first_child_id is None:
                raise AdjacencyNotFoundError(level, entity_id, "first child")

            await self._advance(
                child_level,
                adjacency.first_child_id,
                student_id,
                course_instance_id,
                ProgressStatus.IN_PROGRESS,
            )
            update = update.with_ids(child_level, [adjacency.first_child_id])
            level, entity_id, child_level = (
                child_level,
                adjacency.first_child_id,
                child_level.child,
            )
        return update

    # ==========================================================================
    # Storage Helpers
    # ==========================================================================

    async def _advance(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
        status: ProgressStatus,
    ) -> None:
        """Move the stored status forward to at least ``status``."""
        current = await self.repository.get_progress(
            level, entity_id, student_id, course_instance_id
        )
        if current is None:
            raise ProgressNotFoundError(level, entity_id, student_id)

        target = current.at_least(status)
        if target is current:
            return

        await self.repository.mark_progress(
            level, entity_id, student_id, course_instance_id, target
        )

    async def _require_adjacency(self, level: Level, entity_id: str) -> AdjacencyRecord:
        adjacency = await self.repository.get_adjacency(level, entity_id)
        if adjacency is None:
            raise AdjacencyNotFoundError(level, entity_id)
        return adjacency
