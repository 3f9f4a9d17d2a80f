"""Pydantic schemas for curriculum definitions.

The curriculum tree handed to progress initialization:
course instance -> modules -> sections -> section items, each entity
carrying a ``sequence`` within its parent. Accepts both snake_case and the
camelCase keys used by the course authoring payloads.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CurriculumModel(BaseModel):
    """Base model accepting snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class SectionItemData(CurriculumModel):
    """Leaf item (video, reading, assessment...) inside a section."""

    section_item_id: str = Field(..., min_length=1, description="Section item ID")
    sequence: int = Field(..., ge=1, description="Position within the section")


class SectionData(CurriculumModel):
    """Section inside a module."""

    section_id: str = Field(..., min_length=1, description="Section ID")
    sequence: int = Field(..., ge=1, description="Position within the module")
    section_items: list[SectionItemData] = Field(default_factory=list)


class ModuleData(CurriculumModel):
    """Module inside a course instance."""

    module_id: str = Field(..., min_length=1, description="Module ID")
    sequence: int = Field(..., ge=1, description="Position within the course")
    sections: list[SectionData] = Field(default_factory=list)


class CourseProgressData(CurriculumModel):
    """Curriculum of one course instance plus the students to initialize."""

    course_instance_id: str = Field(..., min_length=1, description="Course instance ID")
    student_ids: list[str] = Field(default_factory=list)
    modules: list[ModuleData] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_ids(self) -> "CourseProgressData":
        """Reject trees that reuse an entity ID (adjacency is keyed by ID)."""
        seen: set[str] = set()
        for entity_id in self.iter_entity_ids():
            if entity_id in seen:
                msg = f"Duplicate curriculum entity id: {entity_id}"
                raise ValueError(msg)
            seen.add(entity_id)
        return self

    def iter_entity_ids(self):
        """Yield every module, section and item ID in declaration order."""
        for module in self.modules:
            yield module.module_id
            for section in module.sections:
                yield section.section_id
                for item in section.section_items:
                    yield item.section_item_id

    @property
    def unique_student_ids(self) -> list[str]:
        """Student IDs without repeats, first occurrence order."""
        return list(dict.fromkeys(self.student_ids))
