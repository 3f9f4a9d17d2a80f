"""Adjacency ("next" pointer) construction.

Links every module, section and item to its following sibling *within the
same parent*. The last section of a module points to nothing even when
another module follows; crossing container boundaries is the cascade
engine's job. Each record also carries the first entity of the contained
level so the engine can descend without re-sorting.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from coursetrack.progress.models import AdjacencyRecord, Level

from .sequencing import NormalizedCurriculum


@dataclass(frozen=True)
class CurriculumAdjacency:
    """Adjacency records of a course instance, one tuple per level."""

    modules: tuple[AdjacencyRecord, ...]
    sections: tuple[AdjacencyRecord, ...]
    section_items: tuple[AdjacencyRecord, ...]

    def for_level(self, level: Level) -> tuple[AdjacencyRecord, ...]:
        """Records of one level."""
        if level is Level.MODULE:
            return self.modules
        if level is Level.SECTION:
            return self.sections
        if level is Level.SECTION_ITEM:
            return self.section_items
        msg = f"No adjacency for level {level.value}"
        raise ValueError(msg)

    def __len__(self) -> int:
        return len(self.modules) + len(self.sections) + len(self.section_items)


def link_siblings(
    level: Level,
    parent_id: str,
    sibling_ids: Sequence[str],
    first_child_ids: Sequence[str | None],
) -> list[AdjacencyRecord]:
    """Link an ordered sibling list of one parent into adjacency records."""
    return [
        AdjacencyRecord(
            level=level,
            entity_id=entity_id,
            next_id=sibling_ids[index + 1] if index + 1 < len(sibling_ids) else None,
            first_child_id=first_child_ids[index],
            parent_id=parent_id,
        )
        for index, entity_id in enumerate(sibling_ids)
    ]


def build_adjacency(curriculum: NormalizedCurriculum) -> CurriculumAdjacency:
    """Derive the per-parent linked lists of every level."""
    modules = link_siblings(
        Level.MODULE,
        curriculum.course_instance_id,
        [m.module_id for m in curriculum.modules],
        [m.sections[0].section_id if m.sections else None for m in curriculum.modules],
    )

    sections: list[AdjacencyRecord] = []
    section_items: list[AdjacencyRecord] = []
    for module in curriculum.modules:
        sections.extend(
            link_siblings(
                Level.SECTION,
                module.module_id,
                [s.section_id for s in module.sections],
                [
                    s.section_items[0].section_item_id if s.section_items else None
                    for s in module.sections
                ],
            )
        )
        for section in module.sections:
            item_ids = [i.section_item_id for i in section.section_items]
            section_items.extend(
                link_siblings(
                    Level.SECTION_ITEM,
                    section.section_id,
                    item_ids,
                    [None] * len(item_ids),
                )
            )

    return CurriculumAdjacency(
        modules=tuple(modules),
        sections=tuple(sections),
        section_items=tuple(section_items),
    )
