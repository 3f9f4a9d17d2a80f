"""Database models for student progress tracking.

Cassandra table definitions for:
- Progress per level (course, module, section, section item) per student
- Adjacency ("next") per level: next sibling, first child and parent
- Total progress: aggregate score per student and course instance

Progress tables are partitioned by (student_id, course_instance_id) so a
student's whole state in a course instance is one partition per level.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class ProgressStatus(str, Enum):
    """Progress status of one entity for one student.

    Ordered: a status only moves forward (INCOMPLETE -> IN_PROGRESS -> COMPLETE).
    """

    INCOMPLETE = "INCOMPLETE"  # Bloqueado, predecessor ainda nao concluido
    IN_PROGRESS = "IN_PROGRESS"  # Liberado / cursando
    COMPLETE = "COMPLETE"  # Concluido

    @property
    def rank(self) -> int:
        """Position in the forward-only ordering."""
        return _STATUS_RANK[self]

    def at_least(self, other: "ProgressStatus") -> "ProgressStatus":
        """The further along of the two statuses (never regresses)."""
        return self if self.rank >= other.rank else other


_STATUS_RANK = {
    ProgressStatus.INCOMPLETE: 0,
    ProgressStatus.IN_PROGRESS: 1,
    ProgressStatus.COMPLETE: 2,
}


class Level(str, Enum):
    """The four fixed levels of the curriculum hierarchy."""

    COURSE = "course"
    MODULE = "module"
    SECTION = "section"
    SECTION_ITEM = "section_item"

    @property
    def parent(self) -> "Level | None":
        """Containing level (None for the course)."""
        return _PARENT_LEVEL.get(self)

    @property
    def child(self) -> "Level | None":
        """Contained level (None for section items)."""
        return _CHILD_LEVEL.get(self)

    @property
    def has_adjacency(self) -> bool:
        """Whether entities of this level are linked to their siblings."""
        return self is not Level.COURSE

    @property
    def progress_table(self) -> str:
        """Name of the per-student progress table of this level."""
        return f"student_{self.value}_progress"

    @property
    def next_table(self) -> str:
        """Name of the adjacency table of this level."""
        if not self.has_adjacency:
            msg = "Course level has no adjacency table"
            raise ValueError(msg)
        return f"{self.value}_next"


_PARENT_LEVEL = {
    Level.MODULE: Level.COURSE,
    Level.SECTION: Level.MODULE,
    Level.SECTION_ITEM: Level.SECTION,
}

_CHILD_LEVEL = {parent: child for child, parent in _PARENT_LEVEL.items()}

ADJACENCY_LEVELS = (Level.MODULE, Level.SECTION, Level.SECTION_ITEM)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Progresso por nivel e por aluno
# Partition key: (student_id, course_instance_id) - estado completo do aluno
# Clustering: entity_id (o proprio course_instance_id no nivel de curso)
PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.{table} (
    student_id TEXT,
    course_instance_id TEXT,
    entity_id TEXT,
    status TEXT,
    updated_at TIMESTAMP,
    PRIMARY KEY ((student_id, course_instance_id), entity_id)
)
"""

# Adjacencia: proximo irmao dentro do mesmo pai, primeiro filho e pai
NEXT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.{table} (
    entity_id TEXT PRIMARY KEY,
    next_id TEXT,
    first_child_id TEXT,
    parent_id TEXT
)
"""

# Index secundario para buscar o predecessor (adjacencia invertida)
NEXT_BY_NEXT_ID_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS {table}_next_id_idx
ON {keyspace}.{table} (next_id)
"""

TOTAL_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.total_progress (
    student_id TEXT,
    course_instance_id TEXT,
    progress DECIMAL,
    updated_at TIMESTAMP,
    PRIMARY KEY ((student_id, course_instance_id))
)
"""


def _progress_tables_cql() -> list[str]:
    statements = [
        PROGRESS_TABLE_CQL.replace("{table}", level.progress_table) for level in Level
    ]
    for level in ADJACENCY_LEVELS:
        statements.append(NEXT_TABLE_CQL.replace("{table}", level.next_table))
        statements.append(NEXT_BY_NEXT_ID_INDEX_CQL.replace("{table}", level.next_table))
    statements.append(TOTAL_PROGRESS_TABLE_CQL)
    return statements


# All CQL statements for table setup ({keyspace} left for formatting)
PROGRESS_TABLES_CQL = _progress_tables_cql()


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass(frozen=True)
class ProgressRecord:
    """Status of one curriculum entity for one student.

    Attributes:
        level: Hierarchy level of the entity
        student_id: Student ID
        entity_id: Module/section/item ID (course instance ID at course level)
        course_instance_id: Course instance ID
        status: Current status
    """

    level: Level
    student_id: str
    entity_id: str
    course_instance_id: str
    status: ProgressStatus

    @property
    def key(self) -> tuple[str, str, str]:
        """Primary key (student_id, entity_id, course_instance_id)."""
        return (self.student_id, self.entity_id, self.course_instance_id)

    @classmethod
    def from_row(cls, level: Level, row: Any) -> "ProgressRecord":
        """Create from Cassandra row."""
        return cls(
            level=level,
            student_id=row.student_id,
            entity_id=row.entity_id,
            course_instance_id=row.course_instance_id,
            status=ProgressStatus(row.status or ProgressStatus.INCOMPLETE.value),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level.value,
            "student_id": self.student_id,
            "entity_id": self.entity_id,
            "course_instance_id": self.course_instance_id,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class AdjacencyRecord:
    """Precomputed links of one module/section/item.

    Attributes:
        level: Hierarchy level of the entity
        entity_id: Entity ID
        next_id: Next sibling within the same parent (None if last)
        first_child_id: First entity of the contained level (None for items)
        parent_id: Containing section/module, or course instance for modules
    """

    level: Level
    entity_id: str
    next_id: str | None
    first_child_id: str | None
    parent_id: str

    @classmethod
    def from_row(cls, level: Level, row: Any) -> "AdjacencyRecord":
        """Create from Cassandra row."""
        return cls(
            level=level,
            entity_id=row.entity_id,
            next_id=row.next_id,
            first_child_id=row.first_child_id,
            parent_id=row.parent_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "level": self.level.value,
            "entity_id": self.entity_id,
            "next_id": self.next_id,
            "first_child_id": self.first_child_id,
            "parent_id": self.parent_id,
        }


def utc_now() -> datetime:
    """Current time, UTC-aware."""
    return datetime.now(UTC)
