"""Progress storage contract and in-memory implementation.

The cascade engine, the initializer and the reader only talk to a
``ProgressRepository``. Writes that must land together are expressed as
``WriteOperation`` values and handed to ``run_atomic``, which applies all of
them or none.
"""

import copy
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Protocol

import structlog

from .models import AdjacencyRecord, Level, ProgressRecord, ProgressStatus


logger = structlog.get_logger(__name__)


# ==============================================================================
# Write Operations
# ==============================================================================


@dataclass(frozen=True)
class ResetTotalProgress:
    """Overwrite a student's total progress with 0 (create if absent)."""

    student_id: str
    course_instance_id: str


@dataclass(frozen=True)
class InsertProgress:
    """Insert progress rows of one level, optionally keeping existing rows."""

    level: Level
    records: tuple[ProgressRecord, ...]
    skip_existing: bool = True


@dataclass(frozen=True)
class UpsertAdjacency:
    """Create adjacency rows, or refresh ``next_id`` of existing ones."""

    level: Level
    records: tuple[AdjacencyRecord, ...]


WriteOperation = ResetTotalProgress | InsertProgress | UpsertAdjacency


def check_operation(operation: WriteOperation) -> None:
    """Validate an operation before it joins a batch."""
    if isinstance(operation, InsertProgress | UpsertAdjacency):
        mismatched = [r for r in operation.records if r.level is not operation.level]
        if mismatched:
            msg = (
                f"{type(operation).__name__} for {operation.level.value} "
                f"got a {mismatched[0].level.value} record"
            )
            raise ValueError(msg)
        if isinstance(operation, UpsertAdjacency) and not operation.level.has_adjacency:
            msg = "Course level has no adjacency"
            raise ValueError(msg)
    elif not isinstance(operation, ResetTotalProgress):
        msg = f"Unsupported write operation: {operation!r}"
        raise TypeError(msg)


# ==============================================================================
# Repository Contract
# ==============================================================================


class ProgressRepository(Protocol):
    """Storage collaborator consumed by the progress core."""

    async def mark_progress(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
        status: ProgressStatus,
    ) -> None:
        """Write the status of one entity for one student."""
        ...

    async def get_progress(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
    ) -> ProgressStatus | None:
        """Stored status of one entity, or None if there is no row."""
        ...

    async def get_progress_map(
        self,
        level: Level,
        student_id: str,
        course_instance_id: str,
    ) -> dict[str, ProgressStatus]:
        """All stored statuses of one level for a student, by entity ID."""
        ...

    async def get_adjacency(self, level: Level, entity_id: str) -> AdjacencyRecord | None:
        """Adjacency of one entity, or None if there is no row."""
        ...

    async def find_previous(self, level: Level, entity_id: str) -> str | None:
        """Entity whose ``next_id`` is ``entity_id`` (reversed adjacency)."""
        ...

    async def get_total_progress(
        self, student_id: str, course_instance_id: str
    ) -> Decimal | None:
        """Aggregate progress of a student, or None if there is no row."""
        ...

    async def upsert_adjacency(
        self, level: Level, records: Sequence[AdjacencyRecord]
    ) -> None:
        """Create adjacency rows or refresh their ``next_id``."""
        ...

    async def bulk_insert_progress(
        self,
        level: Level,
        records: Sequence[ProgressRecord],
        skip_existing: bool = True,
    ) -> None:
        """Insert progress rows, leaving existing rows untouched if asked."""
        ...

    async def reset_total_progress(self, student_id: str, course_instance_id: str) -> None:
        """Overwrite total progress with 0."""
        ...

    async def run_atomic(self, operations: Sequence[WriteOperation]) -> None:
        """Apply every operation or none of them."""
        ...


# ==============================================================================
# In-Memory Implementation
# ==============================================================================


@dataclass
class _State:
    progress: dict[Level, dict[tuple[str, str, str], ProgressStatus]] = field(
        default_factory=lambda: {level: {} for level in Level}
    )
    adjacency: dict[Level, dict[str, AdjacencyRecord]] = field(
        default_factory=lambda: {level: {} for level in Level if level.has_adjacency}
    )
    # next_id -> entity_id, per level
    previous: dict[Level, dict[str, str]] = field(
        default_factory=lambda: {level: {} for level in Level if level.has_adjacency}
    )
    total_progress: dict[tuple[str, str], Decimal] = field(default_factory=dict)


class InMemoryProgressRepository:
    """Dict-backed repository for tests and single-process deployments.

    ``run_atomic`` applies operations to a copy of the state and swaps it in
    only when every operation succeeded.
    """

    def __init__(self) -> None:
        self._state = _State()

    # ==========================================================================
    # Progress
    # ==========================================================================

    async def mark_progress(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
        status: ProgressStatus,
    ) -> None:
        self._state.progress[level][(student_id, entity_id, course_instance_id)] = status

    async def get_progress(
        self,
        level: Level,
        entity_id: str,
        student_id: str,
        course_instance_id: str,
    ) -> ProgressStatus | None:
        return self._state.progress[level].get((student_id, entity_id, course_instance_id))

    async def get_progress_map(
        self,
        level: Level,
        student_id: str,
        course_instance_id: str,
    ) -> dict[str, ProgressStatus]:
        return {
            entity_id: status
            for (student, entity_id, course), status in self._state.progress[level].items()
            if student == student_id and course == course_instance_id
        }

    async def bulk_insert_progress(
        self,
        level: Level,
        records: Sequence[ProgressRecord],
        skip_existing: bool = True,
    ) -> None:
        await self.run_atomic([InsertProgress(level, tuple(records), skip_existing)])

    # ==========================================================================
    # Adjacency
    # ==========================================================================

    async def get_adjacency(self, level: Level, entity_id: str) -> AdjacencyRecord | None:
        if not level.has_adjacency:
            return None
        return self._state.adjacency[level].get(entity_id)

    async def find_previous(self, level: Level, entity_id: str) -> str | None:
        if not level.has_adjacency:
            return None
        return self._state.previous[level].get(entity_id)

    async def upsert_adjacency(
        self, level: Level, records: Sequence[AdjacencyRecord]
    ) -> None:
        await self.run_atomic([UpsertAdjacency(level, tuple(records))])

    # ==========================================================================
    # Total Progress
    # ==========================================================================

    async def get_total_progress(
        self, student_id: str, course_instance_id: str
    ) -> Decimal | None:
        return self._state.total_progress.get((student_id, course_instance_id))

    async def reset_total_progress(self, student_id: str, course_instance_id: str) -> None:
        await self.run_atomic([ResetTotalProgress(student_id, course_instance_id)])

    # ==========================================================================
    # Atomic Batches
    # ==========================================================================

    async def run_atomic(self, operations: Sequence[WriteOperation]) -> None:
        draft = copy.deepcopy(self._state)
        for operation in operations:
            check_operation(operation)
            self._apply(draft, operation)
        self._state = draft
        logger.debug("in_memory_batch_applied", operations=len(operations))

    def _apply(self, state: _State, operation: WriteOperation) -> None:
        if isinstance(operation, ResetTotalProgress):
            key = (operation.student_id, operation.course_instance_id)
            state.total_progress[key] = Decimal(0)
        elif isinstance(operation, InsertProgress):
            rows = state.progress[operation.level]
            for record in operation.records:
                if operation.skip_existing and record.key in rows:
                    continue
                rows[record.key] = record.status
        else:
            self._apply_adjacency(state, operation)

    @staticmethod
    def _apply_adjacency(state: _State, operation: UpsertAdjacency) -> None:
        rows = state.adjacency[operation.level]
        previous = state.previous[operation.level]
        for record in operation.records:
            existing = rows.get(record.entity_id)
            if existing is None:
                stored = record
            else:
                if existing.next_id is not None and (
                    previous.get(existing.next_id) == existing.entity_id
                ):
                    del previous[existing.next_id]
                stored = replace(existing, next_id=record.next_id)
            rows[record.entity_id] = stored
            if stored.next_id is not None:
                previous[stored.next_id] = stored.entity_id
