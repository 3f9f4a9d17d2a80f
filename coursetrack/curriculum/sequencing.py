"""Deterministic ordering of a curriculum tree.

Sorts each parent scope by ``sequence`` (stable, ascending) independently:
the module list, each module's sections and each section's items. Sections
are never merged across modules, nor items across sections.
"""

from collections.abc import Sequence
from dataclasses import dataclass

import structlog

from .schemas import CourseProgressData, ModuleData, SectionData


logger = structlog.get_logger(__name__)

FIRST_SEQUENCE = 1


@dataclass(frozen=True)
class NormalizedCurriculum:
    """Curriculum sorted within every parent scope.

    Attributes:
        course_instance_id: Course instance the curriculum belongs to
        modules: Modules in sequence order, with sections and items sorted
        module_ids: Module IDs in sequence order
        section_ids: Section IDs, module by module, each module's in order
        section_item_ids: Item IDs, section by section, each section's in order
        first_module_id: Module with sequence 1 (None if there is none)
        first_section_id: Section with sequence 1 of the first module
        first_section_item_id: Item with sequence 1 of that section
    """

    course_instance_id: str
    modules: tuple[ModuleData, ...]
    module_ids: tuple[str, ...]
    section_ids: tuple[str, ...]
    section_item_ids: tuple[str, ...]
    first_module_id: str | None
    first_section_id: str | None
    first_section_item_id: str | None

    @property
    def first_chain(self) -> tuple[str | None, str | None, str | None]:
        """(first module, first section, first item) of the course instance."""
        return (self.first_module_id, self.first_section_id, self.first_section_item_id)


def _sequence_key(entity) -> int:
    return entity.sequence


def _warn_on_gaps(scope: str, parent_id: str, entities: Sequence) -> None:
    sequences = [entity.sequence for entity in entities]
    if sequences != list(range(FIRST_SEQUENCE, len(sequences) + FIRST_SEQUENCE)):
        logger.warning(
            "curriculum_sequence_gap",
            scope=scope,
            parent_id=parent_id,
            sequences=sequences,
        )


def _sort_section(section: SectionData) -> SectionData:
    items = sorted(section.section_items, key=_sequence_key)
    _warn_on_gaps("section_items", section.section_id, items)
    return section.model_copy(update={"section_items": items})


def _sort_module(module: ModuleData) -> ModuleData:
    sections = [_sort_section(s) for s in sorted(module.sections, key=_sequence_key)]
    _warn_on_gaps("sections", module.module_id, sections)
    return module.model_copy(update={"sections": sections})


def _find_first(entities: Sequence):
    """Entity with sequence 1, or None."""
    return next((e for e in entities if e.sequence == FIRST_SEQUENCE), None)


def normalize_curriculum(course_data: CourseProgressData) -> NormalizedCurriculum:
    """Sort the curriculum and identify its first chain.

    The input model is left untouched; sorted copies are returned.
    """
    modules = tuple(
        _sort_module(m) for m in sorted(course_data.modules, key=_sequence_key)
    )
    _warn_on_gaps("modules", course_data.course_instance_id, modules)

    first_module = _find_first(modules)
    first_section = _find_first(first_module.sections) if first_module else None
    first_item = _find_first(first_section.section_items) if first_section else None

    return NormalizedCurriculum(
        course_instance_id=course_data.course_instance_id,
        modules=modules,
        module_ids=tuple(m.module_id for m in modules),
        section_ids=tuple(s.section_id for m in modules for s in m.sections),
        section_item_ids=tuple(
            i.section_item_id for m in modules for s in m.sections for i in s.section_items
        ),
        first_module_id=first_module.module_id if first_module else None,
        first_section_id=first_section.section_id if first_section else None,
        first_section_item_id=first_item.section_item_id if first_item else None,
    )
