"""Curriculum definitions, ordering and adjacency.

Provides:
- Input schemas for a course instance's module/section/item tree
- Sequence normalization and first-chain detection
- Per-parent "next" pointer construction
"""

from .adjacency import CurriculumAdjacency, build_adjacency
from .schemas import CourseProgressData, ModuleData, SectionData, SectionItemData
from .sequencing import NormalizedCurriculum, normalize_curriculum


__all__ = [
    "CourseProgressData",
    "CurriculumAdjacency",
    "ModuleData",
    "NormalizedCurriculum",
    "SectionData",
    "SectionItemData",
    "build_adjacency",
    "normalize_curriculum",
]
