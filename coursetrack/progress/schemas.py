"""Pydantic schemas for student progress tracking.

Results returned to callers of the progress service:
- Initialization summary
- Entities touched by one item completion (cascade report)
"""

from pydantic import BaseModel, ConfigDict, Field

from .models import Level


# ==============================================================================
# Initialization Schemas
# ==============================================================================


class InitializationResult(BaseModel):
    """Summary of a progress initialization."""

    student_count: int = Field(..., ge=0, description="Students initialized")
    total_records: int = Field(
        ..., ge=0, description="Course, module, section and item rows queued"
    )


# ==============================================================================
# Cascade Schemas
# ==============================================================================


class CascadeUpdate(BaseModel):
    """Entities updated while completing one section item.

    Each list holds IDs in the order they were touched; ``None`` means the
    level was not touched at all.
    """

    model_config = ConfigDict(frozen=True)

    course: str | None = None
    modules: list[str] | None = None
    sections: list[str] | None = None
    section_items: list[str] | None = None

    @classmethod
    def touching(cls, level: Level, entity_ids: list[str]) -> "CascadeUpdate":
        """Report touching ``entity_ids`` at ``level`` only."""
        return cls().with_ids(level, entity_ids)

    def with_ids(self, level: Level, entity_ids: list[str]) -> "CascadeUpdate":
        """Copy with ``entity_ids`` appended at ``level``."""
        if level is Level.COURSE:
            return self.model_copy(update={"course": entity_ids[-1]})
        field = _LEVEL_FIELDS[level]
        current = getattr(self, field) or []
        return self.model_copy(update={field: [*current, *entity_ids]})

    def escalated_from(self, level: Level, entity_id: str) -> "CascadeUpdate":
        """Copy with the completed child ``entity_id`` appended at ``level``.

        Used when a container completion report bubbles back down to the
        entity whose completion triggered it.
        """
        field = _LEVEL_FIELDS[level]
        current = getattr(self, field) or []
        return self.model_copy(update={field: [*current, entity_id]})

    def ids_at(self, level: Level) -> list[str]:
        """IDs reported at ``level`` (empty if untouched)."""
        if level is Level.COURSE:
            return [self.course] if self.course else []
        return list(getattr(self, _LEVEL_FIELDS[level]) or [])


_LEVEL_FIELDS = {
    Level.MODULE: "modules",
    Level.SECTION: "sections",
    Level.SECTION_ITEM: "section_items",
}
